"""Tests for configuration module."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from repo_sync.config import (
    RepoOpts,
    RepoStatus,
    SyncConfig,
    create_default_config,
    load_values,
)


class TestRepoOpts:
    """Tests for RepoOpts."""

    def test_defaults(self):
        """Test default path and branch."""
        opts = RepoOpts(url="https://example.com/org/repo.git")
        assert opts.path == "/"
        assert opts.branch == "main"
        assert opts.parent_branch is None
        assert opts.auth_method is None

    def test_normalized_path_root(self):
        """Test that the root folder normalizes to an empty path."""
        assert RepoOpts(url="u", path="/").normalized_path == ""
        assert RepoOpts(url="u", path="").normalized_path == ""

    def test_normalized_path_nested(self):
        """Test that leading and trailing slashes are dropped."""
        opts = RepoOpts(url="u", path="/skeleton/app/")
        assert opts.normalized_path == "skeleton/app"

    def test_blank_branch_rejected(self):
        """Test that an empty branch name is invalid."""
        with pytest.raises(ValidationError):
            RepoOpts(url="u", branch="  ")

    def test_invalid_auth_method(self):
        """Test that unknown auth methods are rejected."""
        with pytest.raises(ValidationError):
            RepoOpts(url="u", auth_method="kerberos")


class TestSyncConfig:
    """Tests for SyncConfig."""

    def test_create_config(self):
        """Test creating a basic config."""
        config = SyncConfig(
            from_repo=RepoOpts(url="https://example.com/org/skeleton.git"),
            to_repo=RepoOpts(url="https://example.com/org/app.git"),
        )
        assert config.ignore_file_path == ".repoignore"
        assert config.enable_update is True
        assert config.override_existing_files is False
        assert config.insecure is False
        assert config.unsupported_capabilities is False

    def test_yaml_round_trip(self, temp_dir: Path):
        """Test saving and loading a config file."""
        config = create_default_config(
            from_url="https://example.com/org/skeleton.git",
            to_url="https://example.com/org/app.git",
            from_path="/skeleton",
            to_path="/",
            values_file=temp_dir / "values.yaml",
        )
        config.to_repo.parent_branch = "main"
        config.to_repo.branch = "feature"
        config_path = temp_dir / "repo_sync.yaml"
        config.to_yaml(config_path)

        loaded = SyncConfig.from_yaml(config_path)
        assert loaded.from_repo.path == "/skeleton"
        assert loaded.to_repo.branch == "feature"
        assert loaded.to_repo.parent_branch == "main"
        assert loaded.values_file == temp_dir / "values.yaml"

    def test_from_yaml_missing_field(self, temp_dir: Path):
        """Test that a config without destination is invalid."""
        config_path = temp_dir / "repo_sync.yaml"
        config_path.write_text("from_repo:\n  url: https://example.com/a.git\n")
        with pytest.raises(ValidationError):
            SyncConfig.from_yaml(config_path)


class TestRepoStatus:
    """Tests for RepoStatus persistence."""

    def test_load_missing_file(self, temp_dir: Path):
        """Test that a missing state file gives an empty status."""
        status = RepoStatus.load(temp_dir / "missing.json")
        assert status.last_source_commit is None
        assert status.condition is None

    def test_record(self):
        """Test recording the identifiers of a sync."""
        status = RepoStatus()
        status.record("a" * 40, "b" * 40, "main", "deploy")
        assert status.last_source_commit == "a" * 40
        assert status.last_dest_commit == "b" * 40
        assert status.last_source_branch == "main"
        assert status.last_dest_branch == "deploy"
        assert status.condition == "Available"
        assert status.last_sync_timestamp is not None

    def test_save_and_load(self, temp_dir: Path):
        """Test that status survives a save/load cycle."""
        path = temp_dir / "state" / "status.json"
        status = RepoStatus()
        status.record("a" * 40, "b" * 40, "main", "main")
        status.save(path)

        assert json.loads(path.read_text())["last_dest_commit"] == "b" * 40
        assert RepoStatus.load(path) == status


class TestLoadValues:
    """Tests for template value loading."""

    def test_yaml_values(self, temp_dir: Path):
        """Test loading YAML values."""
        path = temp_dir / "values.yaml"
        path.write_text("name: foo\nreplicas: 2\n")
        assert load_values(path) == {"name": "foo", "replicas": 2}

    def test_quoted_json_values(self, temp_dir: Path):
        """Test loading JSON wrapped in single quotes."""
        path = temp_dir / "values.json"
        path.write_text("'{\"name\": \"foo\"}'\n")
        assert load_values(path) == {"name": "foo"}

    def test_non_mapping_rejected(self, temp_dir: Path):
        """Test that values must be a mapping."""
        path = temp_dir / "values.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="must be a mapping"):
            load_values(path)

    def test_missing_file(self, temp_dir: Path):
        """Test that a missing file raises."""
        with pytest.raises(FileNotFoundError):
            load_values(temp_dir / "nope.yaml")
