"""Gitignore-style path filters.

Pattern syntax follows gitignore rules (implemented by
``dulwich.ignore.IgnoreFilter``). A filter can additionally hold literal
paths, matched exactly, which is how existing destination files are
protected without having to escape glob characters in their names.
"""

from pathlib import Path
from typing import Iterable, Sequence

from dulwich.ignore import IgnoreFilter as _DulwichFilter


def _normalize(path: str) -> str:
    return path.replace("\\", "/").strip("/")


class IgnoreFilter:
    """A compiled set of gitignore-style rules plus literal paths."""

    def __init__(
        self,
        patterns: Sequence[str] | None = None,
        paths: Iterable[str] | None = None,
    ) -> None:
        lines: list[bytes] = []
        for raw in patterns or ():
            line = raw.rstrip("\r\n")
            if line.strip() and not line.startswith("#"):
                lines.append(line.encode("utf-8"))
        self._rule_count = len(lines)
        self._rules: _DulwichFilter | None = _DulwichFilter(lines) if lines else None
        self._paths = frozenset(_normalize(p) for p in paths or () if _normalize(p))

    @classmethod
    def from_lines(cls, text: str) -> "IgnoreFilter":
        """Compile the contents of an ignore file."""
        return cls(patterns=text.splitlines())

    @classmethod
    def from_file(cls, path: Path) -> "IgnoreFilter":
        """Compile an ignore file on disk."""
        return cls.from_lines(Path(path).read_text(encoding="utf-8"))

    @classmethod
    def from_paths(cls, paths: Iterable[str]) -> "IgnoreFilter":
        """Build a filter matching exactly the given paths."""
        return cls(paths=paths)

    @property
    def active(self) -> bool:
        """True if any rule or path is configured."""
        return self._rules is not None or bool(self._paths)

    def __len__(self) -> int:
        return len(self._paths) + self._rule_count

    def matches(self, path: str, *, is_dir: bool = False) -> bool:
        """
        Check whether ``path`` (relative to the repository root) is matched.

        As in git, a path inside an ignored directory is ignored too, and the
        last matching rule wins so ``!`` negations are honoured.
        """
        rel = _normalize(path)
        if not rel:
            return False
        parts = rel.split("/")
        # A listed path covers everything below it
        for depth in range(1, len(parts) + 1):
            if "/".join(parts[:depth]) in self._paths:
                return True
        if self._rules is None:
            return False

        for depth in range(1, len(parts)):
            parent = "/".join(parts[:depth]) + "/"
            if self._rules.is_ignored(parent) is True:
                return True

        check = rel + "/" if is_dir else rel
        return self._rules.is_ignored(check) is True
