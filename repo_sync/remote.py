"""
Remote inspection without a working copy.

Both queries run inside a throwaway temporary directory that is removed
before they return, whatever the outcome.
"""

import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from git import Repo
from git.exc import GitCommandError

from .auth import GitTransport
from .errors import BranchNotFoundError, RepoSyncError, classify_git_error


@dataclass
class ListOptions:
    """Which remote branch to look at, and how to reach it."""

    url: str
    branch: str
    transport: GitTransport = field(default_factory=GitTransport)
    # Parent directory for temporary files (system default if None)
    home_dir: Path | None = None


def get_latest_commit_remote(opts: ListOptions) -> str:
    """
    Get the commit a branch points to on the remote.

    Lists the refs advertised by the remote from a transient bare
    repository; nothing is fetched.

    Raises:
        BranchNotFoundError: the remote has no ``refs/heads/<branch>``
    """
    with tempfile.TemporaryDirectory(prefix="repo-sync-list-", dir=opts.home_dir) as tmp:
        tmp_dir = Path(tmp)
        repo = Repo.init(tmp_dir / "repo", mkdir=True, bare=True)
        try:
            repo.create_remote("origin", opts.url)
            with repo.git.custom_environment(**opts.transport.environ(tmp_dir)):
                output = repo.git.ls_remote("--heads", "origin")
        except GitCommandError as e:
            raise classify_git_error(e, opts.url) from e
        finally:
            repo.close()

    wanted = f"refs/heads/{opts.branch}"
    for line in output.splitlines():
        sha, _, ref = line.partition("\t")
        if ref.strip() == wanted:
            return sha.strip()

    raise BranchNotFoundError(
        f"branch {opts.branch} reference {wanted} not found on remote {opts.url}"
    )


def is_in_git_commit_history(opts: ListOptions, commit_hash: str) -> bool:
    """
    Check whether a commit is reachable from the tip of a remote branch.

    A branch that does not exist on the remote contains no commits, so this
    returns False for it rather than raising. Any other failure raises.
    """
    with tempfile.TemporaryDirectory(prefix="repo-sync-history-", dir=opts.home_dir) as tmp:
        tmp_dir = Path(tmp)
        try:
            # git negotiates multi_ack itself; unsupported_capabilities only affects push
            repo = Repo.clone_from(
                opts.url,
                tmp_dir / "repo",
                env=opts.transport.environ(tmp_dir),
                bare=True,
                branch=opts.branch,
                single_branch=True,
            )
        except GitCommandError as e:
            error = classify_git_error(e, opts.url)
            if isinstance(error, BranchNotFoundError):
                return False
            raise error from e

        try:
            if not repo.head.is_valid():
                raise RepoSyncError(f"failed to get HEAD of {opts.url} ({opts.branch})")
            for commit in repo.iter_commits("HEAD"):
                if commit.hexsha == commit_hash:
                    return True
            return False
        except GitCommandError as e:
            raise RepoSyncError(f"failed to walk commit history of {opts.url}: {e}") from e
        finally:
            repo.close()
