"""
CLI entry point for repo_sync.

Each command runs at most one reconciliation pass; scheduling repeated
passes (cron, CI, a controller loop) is left to the caller.
"""

from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from .auth import resolve_credentials
from .config import RepoStatus, SyncConfig, create_default_config
from .errors import RepoSyncError
from .syncer import RepoSyncer

console = Console()

config_option = click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("repo_sync.yaml"),
    help="Path to the sync configuration file",
)


def load_config(config_path: Path) -> SyncConfig:
    """Load the configuration or exit with a readable message."""
    try:
        return SyncConfig.from_yaml(config_path)
    except FileNotFoundError:
        console.print(f"[red]Config file not found: {config_path}[/red]")
        console.print("Run 'repo-sync init' to create a configuration file.")
        raise SystemExit(1)
    except (ValidationError, ValueError, OSError) as e:
        console.print(f"[red]Error loading config: {e}[/red]")
        raise SystemExit(1)


def build_syncer(config: SyncConfig) -> RepoSyncer:
    """Create a syncer with the recorded status and resolved credentials."""
    return RepoSyncer(
        config,
        status=RepoStatus.load(config.state_file),
        from_credentials=resolve_credentials(config.from_repo),
        to_credentials=resolve_credentials(config.to_repo),
    )


@click.group()
@click.version_option(package_name="repo-sync")
def cli():
    """Repo Sync - Mirror a templated subtree of one git repository into another."""
    pass


@cli.command()
@click.option("--from-url", "-f", required=True, help="Git URL of the source repository")
@click.option("--to-url", "-t", required=True, help="Git URL of the destination repository")
@click.option("--from-path", default="/", help="Folder in the source repo to copy from")
@click.option("--to-path", default="/", help="Folder in the destination repo to copy to")
@click.option(
    "--values",
    "values_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML/JSON file with template values",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("repo_sync.yaml"),
    help="Output config file path",
)
def init(
    from_url: str,
    to_url: str,
    from_path: str,
    to_path: str,
    values_file: Path | None,
    output: Path,
):
    """Initialize a new sync configuration file."""
    config = create_default_config(
        from_url=from_url,
        to_url=to_url,
        from_path=from_path,
        to_path=to_path,
        values_file=values_file,
    )
    config.to_yaml(output)
    console.print(f"[green]Created configuration file: {output}[/green]")
    console.print(f"  From: {from_url} ({config.from_repo.path})")
    console.print(f"  To:   {to_url} ({config.to_repo.path})")
    console.print("\nEdit this file to set branches, credentials and behaviour.")


@cli.command()
@config_option
def observe(config_path: Path):
    """Check whether the destination has drifted, without cloning."""
    config = load_config(config_path)
    syncer = build_syncer(config)
    try:
        observation = syncer.observe()
    except RepoSyncError as e:
        console.print(f"[red]Observe failed: {e}[/red]")
        raise SystemExit(1)

    if not observation.resource_exists:
        console.print("[yellow]Never synced.[/yellow]")
    elif observation.resource_up_to_date:
        console.print("[green]Up to date.[/green]")
    else:
        console.print("[yellow]Drift detected.[/yellow]")


@cli.command()
@config_option
@click.option(
    "--force",
    is_flag=True,
    help="Run a full sync pass even if no drift is observed",
)
def sync(config_path: Path, force: bool):
    """Reconcile the destination with the source (one pass)."""
    config = load_config(config_path)
    syncer = build_syncer(config)
    try:
        if force:
            syncer.sync()
        else:
            syncer.reconcile()
    except RepoSyncError as e:
        console.print(f"[red]Sync failed: {e}[/red]")
        raise SystemExit(1)
    finally:
        syncer.status.save(config.state_file)


@cli.command()
@config_option
def status(config_path: Path):
    """Show the configuration and the recorded sync status."""
    config = load_config(config_path)
    recorded = RepoStatus.load(config.state_file)

    table = Table(title="Repo Sync Status")
    table.add_column("", style="cyan")
    table.add_column("Source", style="white")
    table.add_column("Destination", style="white")
    table.add_row("URL", config.from_repo.url, config.to_repo.url)
    table.add_row("Path", config.from_repo.path, config.to_repo.path)
    table.add_row("Branch", config.from_repo.branch, config.to_repo.branch)
    table.add_row(
        "Last synced commit",
        (recorded.last_source_commit or "never")[:8],
        (recorded.last_dest_commit or "never")[:8],
    )
    console.print(table)
    console.print(f"  Condition: {recorded.condition or 'unknown'}")
    if recorded.last_sync_timestamp:
        console.print(f"  Last sync: {recorded.last_sync_timestamp}")


@cli.command()
@config_option
def delete(config_path: Path):
    """Forget the recorded sync state (remote repositories are untouched)."""
    config = load_config(config_path)
    syncer = build_syncer(config)
    syncer.delete()
    syncer.status.save(config.state_file)
    console.print(f"[green]Cleared sync state in {config.state_file}[/green]")


if __name__ == "__main__":
    cli()
