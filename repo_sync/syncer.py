"""
Main syncer logic: one reconciliation pass between two repositories.

A pass first observes the remotes without cloning anything. When the
destination has never been synced, or has drifted and updates are enabled,
it clones both repositories, copies the source subtree into the destination
subtree, and commits and pushes only if something changed.
"""

from dataclasses import dataclass
from functools import partial
from typing import Callable, Protocol

from rich.console import Console

from .auth import Credentials, GitTransport, NoAuth
from .config import RepoOpts, RepoStatus, SyncConfig, load_values
from .copier import TreeCopier, load_ignore_file, load_target_files, make_renderers
from .errors import AlreadyUpToDate, RepoSyncError
from .git_ops import CloneOptions, GitRepository, IndexOptions
from .ignore import IgnoreFilter
from .remote import ListOptions, get_latest_commit_remote, is_in_git_commit_history

console = Console()

EVENT_NORMAL = "Normal"
EVENT_WARNING = "Warning"


@dataclass
class SyncOutcome:
    """Result of a sync pass."""

    origin_commit: str
    target_commit: str
    origin_branch: str
    target_branch: str
    changed: bool


@dataclass
class Observation:
    """What the remotes look like compared to the recorded status."""

    resource_exists: bool
    resource_up_to_date: bool


class EventRecorder(Protocol):
    """Receives human-readable progress notices. Advisory only."""

    def event(self, event_type: str, reason: str, message: str) -> None: ...


class ConsoleEventRecorder:
    """Prints events on the console."""

    def event(self, event_type: str, reason: str, message: str) -> None:
        if event_type == EVENT_WARNING:
            console.print(f"  [yellow]⚠ {reason}[/yellow] {message}")
        else:
            console.print(f"  [green]✓ {reason}[/green] [dim]{message}[/dim]")


def _wrap(error: RepoSyncError, context: str) -> RepoSyncError:
    """Prefix an error with what was being done, keeping its type."""
    return type(error)(f"{context}: {error}")


class RepoSyncer:
    """Reconciles the destination repository with the source repository."""

    def __init__(
        self,
        config: SyncConfig,
        status: RepoStatus | None = None,
        from_credentials: Credentials | None = None,
        to_credentials: Credentials | None = None,
        recorder: EventRecorder | None = None,
        values_loader: Callable[[], dict] | None = None,
    ):
        """Initialize the syncer with configuration and the last recorded status."""
        self.config = config
        self.status = status or RepoStatus()
        self.recorder = recorder or ConsoleEventRecorder()
        self.from_transport = self._transport(from_credentials)
        self.to_transport = self._transport(to_credentials)
        if values_loader is None and config.values_file is not None:
            values_loader = partial(load_values, config.values_file)
        self.values_loader = values_loader

    def _transport(self, credentials: Credentials | None) -> GitTransport:
        return GitTransport(
            credentials=credentials or NoAuth(),
            insecure=self.config.insecure,
            unsupported_capabilities=self.config.unsupported_capabilities,
        )

    def _list_options(self, opts: RepoOpts, transport: GitTransport) -> ListOptions:
        return ListOptions(
            url=opts.url,
            branch=opts.branch,
            transport=transport,
            home_dir=self.config.home_dir,
        )

    def observe(self) -> Observation:
        """
        Compare the remotes with the recorded status, without cloning.

        The source is up to date when its branch still points at the
        recorded source commit; the destination when the recorded destination
        commit is still in the history of its branch.
        """
        status = self.status
        if not status.last_source_commit or not status.last_dest_commit:
            console.print("[dim]No previous sync recorded[/dim]")
            return Observation(resource_exists=False, resource_up_to_date=True)

        from_opts, to_opts = self.config.from_repo, self.config.to_repo
        if (
            status.last_source_branch != from_opts.branch
            or status.last_dest_branch != to_opts.branch
        ):
            console.print("[dim]Configured branches differ from the last sync[/dim]")
            return Observation(resource_exists=True, resource_up_to_date=False)

        try:
            latest = get_latest_commit_remote(
                self._list_options(from_opts, self.from_transport)
            )
        except RepoSyncError as e:
            raise _wrap(e, f"listing {from_opts.url}") from e
        if latest != status.last_source_commit:
            console.print(
                f"[dim]Source moved: {status.last_source_commit[:8]} → {latest[:8]}[/dim]"
            )
            return Observation(resource_exists=True, resource_up_to_date=False)

        try:
            in_history = is_in_git_commit_history(
                self._list_options(to_opts, self.to_transport), status.last_dest_commit
            )
        except RepoSyncError as e:
            raise _wrap(e, f"reading history of {to_opts.url}") from e
        if not in_history:
            console.print(
                f"[dim]Destination no longer contains {status.last_dest_commit[:8]}[/dim]"
            )
            return Observation(resource_exists=True, resource_up_to_date=False)

        return Observation(resource_exists=True, resource_up_to_date=True)

    def reconcile(self) -> SyncOutcome | None:
        """Observe, then sync if the destination is missing or has drifted."""
        observation = self.observe()
        if not observation.resource_exists:
            return self.sync()
        if not observation.resource_up_to_date:
            if self.config.enable_update:
                return self.sync()
            console.print("[yellow]Drift detected but updates are disabled.[/yellow]")
            return None
        console.print("[green]Destination is up to date.[/green]")
        return None

    def sync(self) -> SyncOutcome:
        """
        Perform a full sync pass.

        Both working copies are removed when this returns, on every path.
        """
        if self.status.last_dest_commit is None:
            self.status.condition = "Creating"

        from_opts, to_opts = self.config.from_repo, self.config.to_repo
        console.print(f"\n[bold]Syncing {from_opts.url} → {to_opts.url}[/bold]\n")

        try:
            try:
                to_repo = GitRepository.clone(
                    CloneOptions(
                        url=to_opts.url,
                        branch=to_opts.branch,
                        transport=self.to_transport,
                        alternative_branch=to_opts.parent_branch,
                        home_dir=self.config.home_dir,
                    )
                )
            except RepoSyncError as e:
                raise _wrap(e, f"cloning target repo {to_opts.url}") from e

            with to_repo:
                self.recorder.event(
                    EVENT_NORMAL,
                    "TargetRepoCloned",
                    f"Successfully cloned target repo: {to_opts.url}",
                )
                try:
                    from_repo = GitRepository.clone(
                        CloneOptions(
                            url=from_opts.url,
                            branch=from_opts.branch,
                            transport=self.from_transport,
                            create_missing=False,
                            home_dir=self.config.home_dir,
                        )
                    )
                except RepoSyncError as e:
                    raise _wrap(e, f"cloning origin repo {from_opts.url}") from e

                with from_repo:
                    self.recorder.event(
                        EVENT_NORMAL,
                        "OriginRepoCloned",
                        f"Successfully cloned origin repo: {from_opts.url}",
                    )
                    outcome = self._sync_trees(from_repo, to_repo)
        except RepoSyncError:
            self.status.condition = "Unavailable"
            raise

        self._print_summary(outcome)
        return outcome

    def _load_values(self) -> dict | None:
        if self.values_loader is None:
            return None
        try:
            return self.values_loader()
        except (OSError, ValueError) as e:
            self.recorder.event(
                EVENT_WARNING, "CannotLoadValues", f"Unable to load template values: {e}"
            )
            return None

    def _load_render_ignore(self, from_repo: GitRepository) -> IgnoreFilter | None:
        try:
            return load_ignore_file(from_repo, self.config.ignore_file_path)
        except (OSError, ValueError) as e:
            self.recorder.event(
                EVENT_WARNING,
                "CannotLoadIgnoreFile",
                f"Unable to load '{self.config.ignore_file_path}' file: {e}",
            )
            return None

    def _sync_trees(self, from_repo: GitRepository, to_repo: GitRepository) -> SyncOutcome:
        from_opts, to_opts = self.config.from_repo, self.config.to_repo
        from_path, to_path = from_opts.normalized_path, to_opts.normalized_path

        render_content = render_name = None
        values = self._load_values()
        if values is not None:
            render_content, render_name = make_renderers(values)

        protect = None
        if not self.config.override_existing_files:
            protect = load_target_files(to_repo, to_path)
            console.print(f"[dim]Protecting {len(protect)} existing files[/dim]")

        copier = TreeCopier(
            from_repo,
            to_repo,
            render_content=render_content,
            render_name=render_name,
            render_ignore=self._load_render_ignore(from_repo),
            protect=protect,
        )
        try:
            copied = copier.copy_dir(from_path, to_path)
        except RepoSyncError as e:
            raise _wrap(e, f"copying /{from_path} to /{to_path}") from e
        self.recorder.event(
            EVENT_NORMAL,
            "RepoSyncSuccess",
            f"Origin and target repo synchronized ({len(copied)} files copied)",
        )

        try:
            commit_id = to_repo.commit(
                ".",
                self.config.commit_message,
                IndexOptions(origin_repo=from_repo, from_path=from_path, to_path=to_path),
            )
        except AlreadyUpToDate:
            self.recorder.event(
                EVENT_NORMAL,
                "RepoAlreadyUpToDate",
                f"Target branch {to_opts.branch} already up to date",
            )
            return self._record(from_repo, to_repo, changed=False)
        except RepoSyncError as e:
            raise _wrap(e, f"committing to {to_opts.url}") from e
        self.recorder.event(
            EVENT_NORMAL,
            "RepoCommitSuccess",
            f"Target repo committed branch {to_opts.branch} ({commit_id[:8]})",
        )

        try:
            to_repo.push("origin", to_opts.branch)
        except RepoSyncError as e:
            raise _wrap(e, f"pushing {to_opts.branch} to {to_opts.url}") from e
        self.recorder.event(
            EVENT_NORMAL, "RepoPushSuccess", f"Target repo pushed branch {to_opts.branch}"
        )

        return self._record(from_repo, to_repo, changed=True)

    def _record(
        self, from_repo: GitRepository, to_repo: GitRepository, changed: bool
    ) -> SyncOutcome:
        from_branch = self.config.from_repo.branch
        to_branch = self.config.to_repo.branch
        outcome = SyncOutcome(
            origin_commit=from_repo.get_latest_commit(from_branch),
            target_commit=to_repo.get_latest_commit(to_branch),
            origin_branch=from_branch,
            target_branch=to_branch,
            changed=changed,
        )
        self.status.record(
            source_commit=outcome.origin_commit,
            dest_commit=outcome.target_commit,
            source_branch=from_branch,
            dest_branch=to_branch,
        )
        return outcome

    def delete(self) -> None:
        """Forget the recorded sync. Nothing is removed from the remotes."""
        self.status.condition = "Deleting"
        self.status.last_source_commit = None
        self.status.last_dest_commit = None
        console.print("[dim]Sync bookkeeping cleared; remote repositories untouched[/dim]")

    def _print_summary(self, outcome: SyncOutcome) -> None:
        """Print sync summary."""
        console.print("\n[bold]Sync Summary:[/bold]")
        if outcome.changed:
            console.print(f"  [green]✓ Pushed {outcome.target_commit[:8]}[/green]")
        else:
            console.print("  [green]✓ Already up to date, nothing pushed[/green]")
        console.print(f"  Origin: {outcome.origin_branch}@{outcome.origin_commit[:8]}")
        console.print(f"  Target: {outcome.target_branch}@{outcome.target_commit[:8]}")

