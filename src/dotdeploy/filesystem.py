"""Filesystem helpers for dotdeploy."""

from __future__ import annotations

import os
import shutil
import tempfile
from fnmatch import fnmatch
from pathlib import Path
from typing import Iterable, Iterator

DEFAULT_IGNORE = (
    ".git",
    ".gitignore",
    ".gitmodules",
    ".stow-local-ignore",
    "README*",
    "LICENSE*",
)


def ensure_parent(path: Path) -> None:
    """Ensure the parent directory exists."""

    path.parent.mkdir(parents=True, exist_ok=True)


def lexists(path: Path) -> bool:
    """Return ``True`` if ``path`` exists, counting dangling symlinks."""

    return path.exists() or path.is_symlink()


def is_ignored(relative: Path, patterns: Iterable[str]) -> bool:
    """Return ``True`` if any component of ``relative`` matches a pattern."""

    patterns = tuple(patterns)
    return any(fnmatch(part, pattern) for part in relative.parts for pattern in patterns)


def iter_package_files(root: Path, *, ignore: Iterable[str] = DEFAULT_IGNORE) -> Iterator[Path]:
    """Yield paths relative to ``root`` for every file in the tree.

    Symlinks inside the tree are treated as files and never followed.
    """

    patterns = tuple(ignore)
    for child in sorted(root.iterdir()):
        relative = child.relative_to(root)
        if is_ignored(relative, patterns):
            continue
        if child.is_dir() and not child.is_symlink():
            for nested in iter_package_files(child, ignore=patterns):
                yield relative / nested
        else:
            yield relative


def symlink_points_to(link: Path, target: Path) -> bool:
    """Return ``True`` if ``link`` is a symlink that resolves to ``target``."""

    if not link.is_symlink():
        return False
    current = Path(os.readlink(link))
    current_resolved = (link.parent / current).resolve(strict=False)
    target_resolved = target.resolve(strict=False)
    return current_resolved == target_resolved


def blocking_ancestor(path: Path, *, stop: Path) -> Path | None:
    """Return the first ancestor of ``path`` below ``stop`` that exists but is not a directory."""

    for ancestor in reversed(path.relative_to(stop).parents):
        candidate = stop / ancestor
        if candidate == stop:
            continue
        if lexists(candidate) and not candidate.is_dir():
            return candidate
    return None


def create_symlink(link: Path, target: Path, *, relative: bool = True) -> None:
    """Create ``link`` pointing at ``target``, creating parent directories."""

    ensure_parent(link)
    if not relative:
        link.symlink_to(target)
        return
    try:
        # Relative links resolve from the real parent, which may sit behind a symlink.
        relative_target = os.path.relpath(target.resolve(strict=False), start=link.parent.resolve(strict=False))
        link.symlink_to(relative_target)
    except ValueError:
        link.symlink_to(target)


def replace_file(source: Path, destination: Path) -> None:
    """Atomically move the contents of ``source`` over ``destination``.

    The copy is staged next to ``destination`` so the final rename never
    crosses a filesystem boundary. ``source`` is removed afterwards.
    """

    ensure_parent(destination)
    fd, temp_name = tempfile.mkstemp(prefix=f".{destination.name}.dotdeploy-tmp-", dir=destination.parent)
    os.close(fd)
    temp_path = Path(temp_name)
    try:
        shutil.copy2(source, temp_path)
        os.replace(temp_path, destination)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise
    source.unlink()


def write_text_atomic(path: Path, content: str, *, mode: int = 0o644) -> None:
    """Write ``content`` to ``path`` via a temporary file and rename."""

    ensure_parent(path)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.dotdeploy-tmp-", dir=path.parent)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.chmod(temp_path, mode)
        os.replace(temp_path, path)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise


def is_executable(path: Path) -> bool:
    """Return ``True`` if ``path`` is a regular file the current user may execute."""

    return path.is_file() and os.access(path, os.X_OK)
