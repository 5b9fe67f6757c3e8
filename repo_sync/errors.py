"""
Exception types for repo_sync.

Git failures surface from GitPython as ``GitCommandError`` carrying git's
stderr; ``classify_git_error`` maps the known messages onto this taxonomy.
"""

from git.exc import GitCommandError


class RepoSyncError(Exception):
    """Base exception for sync operations."""


class RepositoryNotFoundError(RepoSyncError):
    """The remote repository does not exist."""


class EmptyRemoteRepositoryError(RepoSyncError):
    """The remote repository has no commits."""


class AuthenticationRequiredError(RepoSyncError):
    """The remote asked for credentials or rejected the ones given."""


class AuthorizationFailedError(RepoSyncError):
    """The credentials were accepted but lack access."""


class BranchNotFoundError(RepoSyncError):
    """The requested branch does not exist."""


class RemoteError(RepoSyncError):
    """Network or other git transport failure."""


class CommitError(RepoSyncError):
    """Creating a commit failed."""


class PushError(RepoSyncError):
    """Pushing to the remote failed."""


class FilesystemError(RepoSyncError):
    """Reading or writing a working copy failed."""


class TemplateError(RepoSyncError):
    """Rendering a template failed."""


class AlreadyUpToDate(Exception):
    """Nothing to commit: the working tree matches HEAD.

    Not a failure, so not a RepoSyncError.
    """


_NOT_FOUND_MARKERS = (
    "repository not found",
    "does not appear to be a git repository",
    "does not exist",
)
_AUTH_REQUIRED_MARKERS = (
    "authentication failed",
    "could not read username",
    "could not read password",
    "terminal prompts disabled",
    "returned error: 401",
)
_AUTH_FORBIDDEN_MARKERS = (
    "returned error: 403",
    "permission denied",
    "access denied",
    "not authorized",
)
_BRANCH_MISSING_MARKERS = (
    "not found in upstream",
    "couldn't find remote ref",
)


def git_error_text(error: GitCommandError) -> str:
    """Get the lowercase stderr (falling back to the message) of a git error."""
    stderr = error.stderr if isinstance(error.stderr, str) else ""
    return (stderr or str(error)).strip().lower()


def classify_git_error(error: GitCommandError, url: str) -> RepoSyncError:
    """Translate a git command failure into the repo_sync taxonomy."""
    text = git_error_text(error)

    if any(marker in text for marker in _BRANCH_MISSING_MARKERS):
        return BranchNotFoundError(f"branch not found on remote {url}: {text}")
    if any(marker in text for marker in _AUTH_FORBIDDEN_MARKERS):
        return AuthorizationFailedError(f"authorization failed for {url}")
    if any(marker in text for marker in _AUTH_REQUIRED_MARKERS):
        return AuthenticationRequiredError(f"authentication required for {url}")
    # "repository 'x' not found" is how git reports HTTP 404
    if any(marker in text for marker in _NOT_FOUND_MARKERS) or (
        "repository" in text and "not found" in text
    ):
        return RepositoryNotFoundError(f"repository not found: {url}")
    return RemoteError(f"git operation on {url} failed: {text}")
