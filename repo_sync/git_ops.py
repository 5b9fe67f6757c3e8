"""
Git operations for the syncer.

Provides a wrapper around one ephemeral working copy of one remote
repository using GitPython: cloning (creating the branch when the remote
lacks it), branch switching, idempotent commits, pushing and pulling.
"""

import os
import shutil
import stat
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from git import Head, Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from .auth import GitTransport
from .errors import (
    AlreadyUpToDate,
    BranchNotFoundError,
    CommitError,
    EmptyRemoteRepositoryError,
    PushError,
    RemoteError,
    RepoSyncError,
    classify_git_error,
)
from .remote import ListOptions, get_latest_commit_remote

COMMIT_AUTHOR_NAME = "repo-sync"
COMMIT_AUTHOR_EMAIL = "repo-sync@noreply.localhost"


@dataclass(frozen=True)
class CheckoutExisting:
    """Switch to a branch that already exists locally."""


@dataclass(frozen=True)
class CreateFromParent:
    """Create a branch starting at ``parent`` (HEAD if it is not a local branch)."""

    parent: str


@dataclass(frozen=True)
class CreateOrphan:
    """Create a branch with no history and an empty tree."""


BranchDirective = CheckoutExisting | CreateFromParent | CreateOrphan


@dataclass
class CloneOptions:
    """Options for cloning a remote into a fresh temporary working copy."""

    url: str
    branch: str
    transport: GitTransport = field(default_factory=GitTransport)
    # Branch to fork ``branch`` from when the remote does not have it
    alternative_branch: str | None = None
    # When False a missing branch is an error instead of being created
    create_missing: bool = True
    home_dir: Path | None = None


@dataclass
class IndexOptions:
    """
    Where to copy file modes from when committing.

    Staged entries under ``to_path`` take the mode of the origin's staged
    entry at the same path relative to ``from_path``.
    """

    origin_repo: "GitRepository"
    from_path: str = ""
    to_path: str = ""


def _relative_to(path: str, prefix: str) -> str | None:
    """Get ``path`` relative to the directory ``prefix`` or None if outside it."""
    if not prefix:
        return path
    if path.startswith(prefix + "/"):
        return path[len(prefix) + 1 :]
    return None


class GitRepository:
    """Wrapper around a git working copy for sync operations."""

    def __init__(
        self,
        path: Path,
        url: str | None = None,
        transport: GitTransport | None = None,
        lease: Path | None = None,
        is_new_branch: bool = False,
    ):
        """
        Initialize repository wrapper.

        ``lease`` is a temporary directory owned by this handle and removed by
        ``cleanup()``; repositories opened without one are never deleted.
        """
        self.path = Path(path).resolve()
        try:
            self.repo = Repo(self.path)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise ValueError(f"Not a valid git repository: {self.path}") from e
        self.url = url or self._origin_url()
        self.transport = transport or GitTransport()
        self.is_new_branch = is_new_branch
        self._lease = lease

    @classmethod
    def clone(cls, opts: CloneOptions) -> "GitRepository":
        """
        Clone a remote into a new temporary directory.

        If ``opts.branch`` is not on the remote, the remote's default branch
        (or ``opts.alternative_branch``) is cloned instead and the branch is
        created: as an orphan without an alternative branch, forked from the
        alternative branch otherwise. The returned handle owns its temporary
        directory; use it as a context manager or call ``cleanup()``.
        """
        lease = Path(tempfile.mkdtemp(prefix="repo-sync-clone-", dir=opts.home_dir))
        try:
            return cls._clone_into(lease, opts)
        except BaseException:
            shutil.rmtree(lease, ignore_errors=True)
            raise

    @classmethod
    def _clone_into(cls, lease: Path, opts: CloneOptions) -> "GitRepository":
        try:
            get_latest_commit_remote(
                ListOptions(
                    url=opts.url,
                    branch=opts.branch,
                    transport=opts.transport,
                    home_dir=opts.home_dir,
                )
            )
            branch_exists = True
        except BranchNotFoundError:
            if not opts.create_missing:
                raise
            branch_exists = False

        clone_args: dict = {}
        directive: BranchDirective = CheckoutExisting()
        if branch_exists:
            clone_args = {"branch": opts.branch, "single_branch": True}
        elif opts.alternative_branch:
            clone_args = {"branch": opts.alternative_branch, "single_branch": True}
            directive = CreateFromParent(opts.alternative_branch)
        else:
            directive = CreateOrphan()

        work_dir = lease / "repo"
        try:
            Repo.clone_from(
                opts.url,
                work_dir,
                env=opts.transport.environ(lease),
                **clone_args,
            )
        except GitCommandError as e:
            raise classify_git_error(e, opts.url) from e

        handle = cls(
            work_dir,
            url=opts.url,
            transport=opts.transport,
            lease=lease,
            is_new_branch=not branch_exists,
        )
        # Only an orphan branch can be born in an empty repository
        if handle.is_empty() and not isinstance(directive, CreateOrphan):
            handle.repo.close()
            raise EmptyRemoteRepositoryError(f"remote repository is empty: {opts.url}")

        try:
            handle.branch(opts.branch, directive)
        except BaseException:
            handle.repo.close()
            raise
        return handle

    def __enter__(self) -> "GitRepository":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        """Remove the temporary directory owned by this handle (idempotent)."""
        self.repo.close()
        lease, self._lease = self._lease, None
        if lease is not None and lease.exists():
            shutil.rmtree(lease)

    def _origin_url(self) -> str | None:
        try:
            return self.repo.remote("origin").url
        except ValueError:
            return None

    def _scratch_dir(self) -> Path:
        """Get a private directory outside the working tree for transport files."""
        if self._lease is not None:
            return self._lease
        return Path(self.repo.git_dir)

    def _remote_env(self) -> dict[str, str]:
        return self.transport.environ(self._scratch_dir())

    def _find_head(self, name: str) -> Head | None:
        for head in self.repo.heads:
            if head.name == name:
                return head
        return None

    def is_empty(self) -> bool:
        """Check if the repository has no commits at all."""
        return not self.repo.head.is_valid() and len(self.repo.heads) == 0

    def exists(self, path: str) -> bool:
        """Check if a path exists in the working tree."""
        return os.path.lexists(self.path / path.lstrip("/"))

    def current_branch(self) -> str:
        """Get the current branch name (also for a branch without commits yet)."""
        return self.repo.active_branch.name

    def get_current_commit(self) -> str:
        """Get the current HEAD commit hash."""
        return self.repo.head.commit.hexsha

    def get_latest_commit(self, branch: str) -> str:
        """Get the commit a local branch points to."""
        head = self._find_head(branch)
        if head is None:
            raise BranchNotFoundError(f"reference refs/heads/{branch} not found")
        return head.commit.hexsha

    def branch(self, name: str, directive: BranchDirective | None = None) -> None:
        """
        Switch branches, or create one according to ``directive``.

        - CheckoutExisting: ``git checkout name``; the branch must exist
        - CreateFromParent: ``git checkout -b name parent``
        - CreateOrphan: ``git switch --orphan name``, the tree is emptied
        """
        directive = directive or CheckoutExisting()
        ref = f"refs/heads/{name}"
        try:
            if isinstance(directive, CreateOrphan):
                self.repo.git.symbolic_ref("HEAD", ref)
                self.repo.git.read_tree("--empty")
                self._clear_worktree()
            elif isinstance(directive, CreateFromParent):
                start = directive.parent if self._find_head(directive.parent) else "HEAD"
                self.repo.git.checkout("-b", name, start)
            else:
                head = self._find_head(name)
                if head is None:
                    raise BranchNotFoundError(f"reference {ref} not found")
                head.checkout()
        except GitCommandError as e:
            raise RepoSyncError(f"failed to switch to branch {name}: {e}") from e

    def _clear_worktree(self) -> None:
        for entry in self.path.iterdir():
            if entry.name == ".git":
                continue
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()

    def stage(self, path: str = ".") -> None:
        """Stage additions, modifications and deletions under ``path``."""
        self.repo.git.add("-A", "--", path)

    def has_changes(self) -> bool:
        """Check if there are any uncommitted changes, untracked files included."""
        status = self.repo.git.status("--porcelain", "--untracked-files=all")
        return bool(status.strip())

    def update_index(self, opts: IndexOptions) -> None:
        """
        Mirror file modes from the origin's index into this one.

        The equivalent of ``git update-index --chmod`` for every staged file
        under ``opts.to_path`` whose counterpart in the origin has a different
        executable bit. Files without a counterpart are left alone.
        """
        from_prefix = opts.from_path.strip("/")
        to_prefix = opts.to_path.strip("/")

        source_modes = {
            path: entry.mode
            for (path, _stage), entry in opts.origin_repo.repo.index.entries.items()
        }

        make_executable: list[str] = []
        make_regular: list[str] = []
        for (path, _stage), entry in self.repo.index.entries.items():
            rel = _relative_to(path, to_prefix)
            if rel is None:
                continue
            source_path = f"{from_prefix}/{rel}" if from_prefix else rel
            source_mode = source_modes.get(source_path)
            if source_mode is None or source_mode == entry.mode:
                continue
            if stat.S_ISLNK(source_mode) or stat.S_ISLNK(entry.mode):
                continue
            if source_mode & 0o111:
                make_executable.append(path)
            else:
                make_regular.append(path)

        if make_executable:
            self.repo.git.update_index("--chmod=+x", "--", *make_executable)
        if make_regular:
            self.repo.git.update_index("--chmod=-x", "--", *make_regular)

    def commit(
        self,
        path: str = ".",
        message: str = "",
        index_options: IndexOptions | None = None,
    ) -> str:
        """
        Stage ``path`` and commit it.

        Returns the new commit hash.

        Raises:
            AlreadyUpToDate: nothing changed and the branch is not new
            CommitError: staging or committing failed
        """
        try:
            self.stage(path)
            if index_options is not None:
                self.update_index(index_options)
            changed = self.has_changes()
        except GitCommandError as e:
            raise CommitError(f"failed to add {path} to index: {e}") from e

        if not changed and not self.is_new_branch:
            raise AlreadyUpToDate(f"nothing to commit on {self.current_branch()}")

        args = ["--no-verify", "--no-gpg-sign", "-m", message or "[sync]"]
        # A new branch is committed even when empty so that it can be pushed
        if self.is_new_branch:
            args.append("--allow-empty")

        identity = {
            "GIT_AUTHOR_NAME": COMMIT_AUTHOR_NAME,
            "GIT_AUTHOR_EMAIL": COMMIT_AUTHOR_EMAIL,
            "GIT_COMMITTER_NAME": COMMIT_AUTHOR_NAME,
            "GIT_COMMITTER_EMAIL": COMMIT_AUTHOR_EMAIL,
        }
        try:
            with self.repo.git.custom_environment(**identity):
                self.repo.git.commit(*args)
        except GitCommandError as e:
            raise CommitError(f"failed to commit on {self.current_branch()}: {e}") from e

        self.is_new_branch = False
        return self.repo.head.commit.hexsha

    def push(self, remote: str = "origin", branch: str = "") -> None:
        """
        Push to remote, never forced.

        Without ``branch`` the current branch is pushed to its namesake.
        Otherwise ``refs/heads/<branch>`` is pushed explicitly, creating the
        local branch at HEAD first if it does not exist.
        """
        args = self.transport.push_args()
        if not branch:
            args += [remote, "HEAD"]
        else:
            ref = f"refs/heads/{branch}"
            if self._find_head(branch) is None:
                if not self.repo.head.is_valid():
                    raise PushError(f"cannot push {branch}: HEAD has no commits")
                self.repo.create_head(branch, self.repo.head.commit)
            args += [remote, f"{ref}:{ref}"]

        try:
            with self.repo.git.custom_environment(**self._remote_env()):
                self.repo.git.push(*args)
        except GitCommandError as e:
            error = classify_git_error(e, self.url or remote)
            if isinstance(error, RemoteError):
                raise PushError(f"failed to push {branch or 'HEAD'} to {remote}: {error}") from e
            raise error from e

    def pull(self, remote: str = "origin") -> bool:
        """
        Fast-forward the current branch from remote.

        Returns False when it was already up to date.
        """
        before = self.get_current_commit() if self.repo.head.is_valid() else None
        try:
            with self.repo.git.custom_environment(**self._remote_env()):
                self.repo.git.pull("--ff-only", remote, self.current_branch())
        except GitCommandError as e:
            raise classify_git_error(e, self.url or remote) from e
        return self.get_current_commit() != before
