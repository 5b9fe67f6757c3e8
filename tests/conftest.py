"""Pytest configuration and fixtures for repo_sync tests."""

import os
import tempfile
from functools import partial
from pathlib import Path

import pytest
from git import Repo


def write_files(root: Path, files: dict, executable: tuple = ()) -> None:
    """Write ``{relative path: text or bytes}`` under root."""
    for rel_path, content in files.items():
        path = root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content)
    for rel_path in executable:
        os.chmod(root / rel_path, 0o755)


def configure_user(repo: Repo) -> None:
    """Configure a git user so test commits work anywhere."""
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()


def make_remote(
    base: Path,
    name: str,
    files: dict | None = None,
    branch: str = "main",
    executable: tuple = (),
) -> str:
    """
    Create a bare repository acting as a remote and return its URL.

    With ``files`` the remote gets one commit on ``branch`` holding them;
    without, it stays empty.
    """
    bare_path = base / f"{name}.git"
    bare = Repo.init(bare_path, bare=True)
    bare.git.symbolic_ref("HEAD", f"refs/heads/{branch}")
    bare.close()

    url = str(bare_path)
    if files:
        push_files(
            base, url, files, branch=branch, message="Initial commit", executable=executable
        )
    return url


def push_files(
    base: Path,
    url: str,
    files: dict,
    branch: str = "main",
    message: str = "Update",
    executable: tuple = (),
) -> str:
    """Commit ``files`` on ``branch`` of a remote and return the new commit hash."""
    work_path = Path(tempfile.mkdtemp(prefix="work-", dir=base))
    repo = Repo.init(work_path)
    configure_user(repo)
    repo.create_remote("origin", url)

    remote_heads = repo.git.ls_remote("--heads", "origin", branch)
    if remote_heads.strip():
        repo.git.fetch("origin", branch)
        repo.git.checkout("-b", branch, f"origin/{branch}")
    else:
        repo.git.symbolic_ref("HEAD", f"refs/heads/{branch}")

    write_files(work_path, files, executable)
    repo.git.add("-A")
    repo.git.commit("-m", message)
    repo.git.push("origin", f"refs/heads/{branch}:refs/heads/{branch}")
    sha = repo.head.commit.hexsha
    repo.close()
    return sha


def remote_head(url: str, branch: str = "main") -> str | None:
    """Get the commit a branch points to in a local bare remote."""
    repo = Repo(url)
    try:
        for head in repo.heads:
            if head.name == branch:
                return head.commit.hexsha
        return None
    finally:
        repo.close()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def source_remote(temp_dir: Path) -> str:
    """A remote with templates, an ignore file and an executable script."""
    return make_remote(
        temp_dir,
        "source",
        {
            "README.md": "# Source Repo\n",
            ".repoignore": "raw/\n",
            "templates/app.yaml": "name: {{name}}\n",
            "templates/raw/chart.yaml": "image: {{image}}\n",
            "templates/bin/run.sh": "#!/bin/sh\necho {{name}}\n",
        },
        executable=("templates/bin/run.sh",),
    )


@pytest.fixture
def dest_remote(temp_dir: Path) -> str:
    """A remote with a single commit on main."""
    return make_remote(temp_dir, "dest", {"README.md": "# Destination Repo\n"})


@pytest.fixture
def empty_remote(temp_dir: Path) -> str:
    """A remote without any commit."""
    return make_remote(temp_dir, "empty")


@pytest.fixture
def remote_factory(temp_dir: Path):
    """Create extra remotes: ``remote_factory(name, files=None, branch="main")``."""
    return partial(make_remote, temp_dir)


@pytest.fixture
def push(temp_dir: Path):
    """Commit files to a remote: ``push(url, files, branch="main")``."""
    return partial(push_files, temp_dir)


@pytest.fixture
def head():
    """Read a branch tip of a local remote: ``head(url, branch="main")``."""
    return remote_head
