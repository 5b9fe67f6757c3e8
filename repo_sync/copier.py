"""
Copy a subtree of one working copy into another.

Two independent filters apply to every file: the render filter (files it
matches are copied verbatim instead of being rendered) and the protection
filter (files it matches are not copied at all). Content and names can be
rendered with mustache templates.
"""

import os
import shutil
import stat
from pathlib import Path
from typing import Callable

import chevron

from .errors import FilesystemError, TemplateError
from .git_ops import GitRepository
from .ignore import IgnoreFilter

Renderer = Callable[[str], str]


def _clean(path: str) -> str:
    """Normalize a repository path: "", "/" and "." all mean the root."""
    cleaned = os.path.normpath("/" + path.replace("\\", "/")).lstrip("/")
    return "" if cleaned == "." else cleaned


def _join(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


class TreeCopier:
    """Recursive directory copier between two working copies."""

    def __init__(
        self,
        from_repo: GitRepository,
        to_repo: GitRepository,
        render_content: Renderer | None = None,
        render_name: Renderer | None = None,
        render_ignore: IgnoreFilter | None = None,
        protect: IgnoreFilter | None = None,
    ):
        self.from_repo = from_repo
        self.to_repo = to_repo
        self.render_content = render_content
        self.render_name = render_name
        # Source paths copied without rendering
        self.render_ignore = render_ignore
        # Destination paths that must not be touched
        self.protect = protect

    def copy_dir(self, src: str = "", dst: str = "") -> list[str]:
        """
        Recursively copy the directory ``src`` of the source working copy to
        ``dst`` in the destination, preserving permissions.

        Symlinks and ``.git`` entries are skipped. A linked directory in the
        destination is left alone when protecting and replaced otherwise;
        nothing is written outside the destination working copy. The first
        error stops the walk; files already copied stay in place.

        Returns the destination paths of the copied files.
        """
        copied: list[str] = []
        self._copy_dir(_clean(src), _clean(dst), copied)
        return copied

    def _copy_dir(self, src: str, dst: str, copied: list[str]) -> None:
        src_abs = self.from_repo.path / src
        dst_abs = self.to_repo.path / dst

        try:
            info = os.stat(src_abs)
        except OSError as e:
            raise FilesystemError(f"cannot read source directory {src or '/'}: {e}") from e
        if not stat.S_ISDIR(info.st_mode):
            raise FilesystemError(f"source is not a directory: {src or '/'}")

        if dst_abs.is_symlink():
            # A linked directory in the destination is existing content
            if self.protect is not None:
                return
            try:
                dst_abs.unlink()
            except OSError as e:
                raise FilesystemError(f"cannot replace link {dst}: {e}") from e
        self._check_inside(dst_abs, dst)

        try:
            dst_abs.mkdir(parents=True, exist_ok=True)
            os.chmod(dst_abs, stat.S_IMODE(info.st_mode))
            entries = sorted(os.scandir(src_abs), key=lambda entry: entry.name)
        except OSError as e:
            raise FilesystemError(f"cannot copy directory {src or '/'}: {e}") from e

        for entry in entries:
            if entry.name == ".git" or entry.is_symlink():
                continue

            src_path = _join(src, entry.name)
            dst_path = _join(dst, self._rename(entry.name))

            if entry.is_dir():
                self._copy_dir(src_path, dst_path, copied)
                continue

            if self.protect is not None and self.protect.matches(dst_path):
                continue

            do_not_render = self.render_ignore is not None and self.render_ignore.matches(
                src_path
            )
            self.copy_file(src_path, dst_path, do_not_render)
            copied.append(dst_path)

    def _check_inside(self, target: Path, rel: str) -> None:
        """Refuse targets that resolve outside the destination working copy."""
        if not target.resolve().is_relative_to(self.to_repo.path):
            raise FilesystemError(f"{rel or '/'} resolves outside the working copy")

    def _rename(self, name: str) -> str:
        if self.render_name is None:
            return name
        try:
            rendered = self.render_name(name)
        except SyntaxError as e:
            raise TemplateError(f"cannot render name {name!r}: {e}") from e
        parts = rendered.split("/")
        if any(part in ("", ".", "..") for part in parts):
            raise TemplateError(f"name {name!r} renders to invalid path {rendered!r}")
        return rendered

    def copy_file(self, src: str, dst: str, do_not_render: bool = False) -> None:
        """Copy one file, rendering it unless ``do_not_render`` (or it is binary)."""
        src_abs = self.from_repo.path / src
        try:
            data = src_abs.read_bytes()
        except OSError as e:
            raise FilesystemError(f"cannot read {src}: {e}") from e

        if not do_not_render and self.render_content is not None:
            try:
                text = data.decode("utf-8")
            except UnicodeDecodeError:
                pass
            else:
                try:
                    data = self.render_content(text).encode("utf-8")
                except SyntaxError as e:
                    raise TemplateError(f"cannot render {src}: {e}") from e

        self.write_bytes(data, dst)
        try:
            shutil.copymode(src_abs, self.to_repo.path / dst)
        except OSError as e:
            raise FilesystemError(f"cannot set mode of {dst}: {e}") from e

    def write_bytes(self, data: bytes, dst: str) -> None:
        """Write ``data`` to ``dst`` in the destination working copy."""
        dst_abs = self.to_repo.path / _clean(dst)
        self._check_inside(dst_abs.parent, dst)
        try:
            dst_abs.parent.mkdir(parents=True, exist_ok=True)
            # Never write through a link into another location
            if dst_abs.is_symlink():
                dst_abs.unlink()
            dst_abs.write_bytes(data)
        except OSError as e:
            raise FilesystemError(f"cannot write {dst}: {e}") from e


def make_renderers(values: dict) -> tuple[Renderer, Renderer]:
    """
    Create the content and name renderers for a set of template values.

    Partials always render empty; they are never loaded from disk.
    """

    def render_content(text: str) -> str:
        return chevron.render(text, values, partials_path=None)

    def render_name(name: str) -> str:
        return chevron.render(name, values, partials_path=None)

    return render_content, render_name


def load_ignore_file(repo: GitRepository, path: str) -> IgnoreFilter:
    """
    Compile the ignore file at ``path`` in a working copy.

    Raises:
        FileNotFoundError: there is no such file
    """
    return IgnoreFilter.from_file(repo.path / _clean(path))


def list_files(repo: GitRepository, path: str) -> list[str]:
    """List the files under ``path`` in a working copy (none if it does not exist)."""
    root = repo.path / _clean(path)
    if not root.is_dir():
        return []

    files: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d != ".git")
        # os.walk does not descend into linked directories; protect the link
        for dirname in dirnames:
            full = Path(dirpath) / dirname
            if full.is_symlink():
                files.append(full.relative_to(repo.path).as_posix())
        for filename in sorted(filenames):
            full = Path(dirpath) / filename
            files.append(full.relative_to(repo.path).as_posix())
    return files


def load_target_files(repo: GitRepository, path: str) -> IgnoreFilter:
    """Build a protection filter matching every file already under ``path``."""
    return IgnoreFilter.from_paths(list_files(repo, path))
