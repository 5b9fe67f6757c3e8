"""
Configuration handling for repo_sync.

Defines the desired-state descriptor (which repositories, which subtrees,
which behaviours) and the observed status written back after every pass,
with helpers for loading/saving them from YAML and JSON files.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator


AuthMethod = Literal["basic", "bearer", "cookiefile"]
Condition = Literal["Creating", "Available", "Deleting", "Unavailable"]


class RepoOpts(BaseModel):
    """One side (source or destination) of a sync."""

    url: str = Field(..., description="Git remote URL of the repository")
    # Path relative to the repo root, "/" for the whole repository
    path: str = Field(
        default="/", description="Folder in the repository to copy from (or to)"
    )
    branch: str = Field(default="main", description="Branch to read or write")
    # Only meaningful for the destination: where to fork a missing branch from
    parent_branch: str | None = Field(
        default=None,
        description="Existing branch to create a missing branch from (orphan if unset)",
    )

    # Credentials: the secret itself never lives in the config file
    auth_method: AuthMethod | None = Field(
        default=None,
        description="One of 'basic', 'bearer' or 'cookiefile' (basic if a secret is set)",
    )
    username: str | None = Field(
        default=None, description="Username for basic auth (defaults to 'git')"
    )
    token_env: str | None = Field(
        default=None,
        description="Environment variable holding the password, token or cookie file",
    )
    token_file: Path | None = Field(
        default=None, description="File holding the password, token or cookie file"
    )

    @field_validator("branch")
    @classmethod
    def _branch_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("branch must not be empty")
        return value.strip()

    @property
    def normalized_path(self) -> str:
        """Get the path relative to the repository root ("" for the root)."""
        return self.path.strip().strip("/")


class SyncConfig(BaseModel):
    """Main configuration for the repo syncer."""

    from_repo: RepoOpts = Field(..., description="Repository to copy from")
    to_repo: RepoOpts = Field(..., description="Repository to copy to")

    # Template values (YAML or JSON document), optional
    values_file: Path | None = Field(
        default=None, description="File with the values used to render templates"
    )
    # Read from the root of the source repository
    ignore_file_path: str = Field(
        default=".repoignore",
        description="Gitignore-style file listing source paths copied without rendering",
    )

    insecure: bool = Field(
        default=False, description="Skip TLS verification (hand made certificates)"
    )
    unsupported_capabilities: bool = Field(
        default=False,
        description="Disable thin packs for hosts that cannot handle them (e.g. Azure DevOps)",
    )
    enable_update: bool = Field(
        default=True,
        description="Re-sync when drift is observed after the first sync",
    )
    override_existing_files: bool = Field(
        default=False,
        description="Overwrite files already present in the destination",
    )

    commit_message: str = Field(
        default="[sync] update from source",
        description="Message used for commits created in the destination",
    )

    # State file recording what was last synced
    state_file: Path = Field(
        default=Path(".repo_sync_state.json"),
        description="Path to the sync state file",
    )
    home_dir: Path | None = Field(
        default=None,
        description="Directory for temporary clones (system temp dir if unset)",
    )

    @classmethod
    def from_yaml(cls, path: Path) -> "SyncConfig":
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data)

    def to_yaml(self, path: Path) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w") as f:
            yaml.dump(
                self.model_dump(mode="json", exclude_none=True),
                f,
                default_flow_style=False,
                sort_keys=False,
            )


class RepoStatus(BaseModel):
    """Observed state written back after each reconciliation pass."""

    last_source_commit: str | None = Field(
        None, description="Source commit the destination was last synced from"
    )
    last_dest_commit: str | None = Field(
        None, description="Destination commit produced (or found) by the last sync"
    )
    last_source_branch: str | None = Field(None, description="Source branch synced")
    last_dest_branch: str | None = Field(None, description="Destination branch synced")
    condition: Condition | None = Field(None, description="Readiness of the resource")
    last_sync_timestamp: str | None = Field(
        None, description="ISO timestamp of last sync"
    )

    def record(
        self,
        source_commit: str,
        dest_commit: str,
        source_branch: str,
        dest_branch: str,
    ) -> None:
        """Record the identifiers observed at the end of a sync."""
        self.last_source_commit = source_commit
        self.last_dest_commit = dest_commit
        self.last_source_branch = source_branch
        self.last_dest_branch = dest_branch
        self.condition = "Available"
        self.last_sync_timestamp = datetime.now(timezone.utc).isoformat()

    @classmethod
    def load(cls, path: Path) -> "RepoStatus":
        """Load status from a JSON file."""
        if not path.exists():
            return cls()
        with open(path) as f:
            data = json.load(f)
        return cls.model_validate(data)

    def save(self, path: Path) -> None:
        """Save status to a JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2)


def load_values(path: Path) -> dict:
    """Load template values from a YAML (or JSON) document.

    Values are sometimes stored quoted as a single string, e.g. ``'{"a": 1}'``;
    the surrounding single quotes are stripped before parsing.
    """
    text = path.read_text().strip()
    if text.startswith("'") and text.endswith("'"):
        text = text[1:-1]
    data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ValueError(f"template values in {path} must be a mapping")
    return data


def create_default_config(
    from_url: str,
    to_url: str,
    from_path: str = "/",
    to_path: str = "/",
    values_file: Path | None = None,
) -> SyncConfig:
    """Create a default configuration with sensible defaults."""
    return SyncConfig(
        from_repo=RepoOpts(url=from_url, path=from_path),
        to_repo=RepoOpts(url=to_url, path=to_path),
        values_file=values_file,
    )
