"""
Credentials and per-call git transport settings.

Every git invocation gets its own environment: credentials, TLS and
capability settings are passed as git configuration through the
``GIT_CONFIG_COUNT``/``GIT_CONFIG_KEY_n``/``GIT_CONFIG_VALUE_n`` variables
instead of touching any global or on-disk git configuration, so operations
for different repositories never interfere with each other.
"""

import base64
import os
from dataclasses import dataclass, field
from pathlib import Path

from .config import RepoOpts

DEFAULT_USERNAME = "git"
COOKIE_FILE_NAME = "cookies.txt"


@dataclass(frozen=True)
class NoAuth:
    """Anonymous access."""


@dataclass(frozen=True)
class BasicAuth:
    """HTTP basic authentication (username + password or token)."""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"BasicAuth(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class BearerAuth:
    """HTTP bearer token authentication."""

    token: str

    def __repr__(self) -> str:
        return "BearerAuth(token='***')"


@dataclass(frozen=True)
class CookieAuth:
    """Netscape-format cookie jar, the format read by git's ``http.cookieFile``."""

    cookies: bytes

    def __repr__(self) -> str:
        return "CookieAuth(cookies=<redacted>)"


Credentials = NoAuth | BasicAuth | BearerAuth | CookieAuth


@dataclass(frozen=True)
class GitTransport:
    """How to talk to one remote: credentials plus transport switches."""

    credentials: Credentials = field(default_factory=NoAuth)
    insecure: bool = False
    # Some hosts (Azure DevOps) choke on thin packs
    unsupported_capabilities: bool = False

    def git_config(self, work_dir: Path) -> list[tuple[str, str]]:
        """
        Get the git configuration entries for one invocation.

        A cookie jar is written to ``work_dir`` so it lives and dies with the
        caller's temporary directory.
        """
        entries: list[tuple[str, str]] = []
        if self.insecure:
            entries.append(("http.sslVerify", "false"))

        creds = self.credentials
        if isinstance(creds, BasicAuth):
            raw = f"{creds.username}:{creds.password}".encode()
            encoded = base64.b64encode(raw).decode("ascii")
            entries.append(("http.extraHeader", f"Authorization: Basic {encoded}"))
        elif isinstance(creds, BearerAuth):
            entries.append(("http.extraHeader", f"Authorization: Bearer {creds.token}"))
        elif isinstance(creds, CookieAuth) and creds.cookies.strip():
            cookie_file = Path(work_dir) / COOKIE_FILE_NAME
            cookie_file.write_bytes(creds.cookies.strip(b"\n") + b"\n")
            os.chmod(cookie_file, 0o600)
            entries.append(("http.cookieFile", str(cookie_file)))

        return entries

    def environ(self, work_dir: Path) -> dict[str, str]:
        """Get the environment variables for one git invocation."""
        # Fail fast instead of hanging on a credential prompt
        env = {
            "GIT_TERMINAL_PROMPT": "0",
            "GCM_INTERACTIVE": "never",
        }
        entries = self.git_config(work_dir)
        env["GIT_CONFIG_COUNT"] = str(len(entries))
        for index, (key, value) in enumerate(entries):
            env[f"GIT_CONFIG_KEY_{index}"] = key
            env[f"GIT_CONFIG_VALUE_{index}"] = value
        return env

    def push_args(self) -> list[str]:
        """Get extra ``git push`` arguments."""
        return ["--no-thin"] if self.unsupported_capabilities else []


def _read_secret(opts: RepoOpts) -> str | None:
    """Read the secret for a repository from its environment variable or file."""
    if opts.token_env:
        value = os.environ.get(opts.token_env)
        if value:
            return value
    if opts.token_file and opts.token_file.exists():
        return opts.token_file.read_text()
    return None


def resolve_credentials(opts: RepoOpts) -> Credentials:
    """
    Build the credentials for a repository from its configuration.

    Without a secret the repository is accessed anonymously. With one, the
    auth method decides how it is used: ``bearer`` as a token, ``cookiefile``
    as a cookie jar, anything else as the password of basic auth.
    """
    secret = _read_secret(opts)
    if secret is None:
        return NoAuth()

    method = (opts.auth_method or "basic").lower()
    if method == "bearer":
        return BearerAuth(token=secret.strip())
    if method == "cookiefile":
        return CookieAuth(cookies=secret.encode())
    return BasicAuth(username=opts.username or DEFAULT_USERNAME, password=secret.strip())
