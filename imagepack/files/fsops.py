"""Attribute-preserving file operations.

This module handles:
- Recursive copies that keep permissions, timestamps and symlinks
- Moving directory contents into an existing directory
- Recursive deletion of files, links and trees
- Making files owner-writable after copying read-only sources
- Scoped scratch directories that are removed on every exit path
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

EXECUTABLE_MODE = 0o755


def copy_files(source: Path, dest: Path) -> None:
    """Copy the contents of ``source`` into ``dest``.

    ``dest`` is created if needed and may already contain files. A regular
    file source is copied to ``dest`` itself.

    Args:
        source: Directory (or file) to copy.
        dest: Destination directory (or file path).
    """
    if source.is_dir():
        shutil.copytree(source, dest, symlinks=True, dirs_exist_ok=True)
    else:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, dest, follow_symlinks=False)
    logger.debug("Copied %s to %s", source, dest)


def move_files(source: Path, dest: Path) -> None:
    """Move the children of ``source`` into ``dest``.

    Directories that already exist at the destination are merged; files
    are replaced.

    Args:
        source: Directory whose entries are moved.
        dest: Destination directory, created if needed.
    """
    dest.mkdir(parents=True, exist_ok=True)
    for child in sorted(source.iterdir()):
        target = dest / child.name
        if target.is_dir() and child.is_dir() and not child.is_symlink():
            move_files(child, target)
            child.rmdir()
        else:
            if target.is_symlink() or target.is_file():
                target.unlink()
            shutil.move(str(child), str(target))
    logger.debug("Moved contents of %s to %s", source, dest)


def delete_files(path: Path) -> None:
    """Delete a file, symlink or directory tree. Missing paths are ignored."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)
    else:
        return
    logger.debug("Deleted %s", path)


def ensure_writable(path: Path) -> None:
    """Add the owner-write bit to ``path`` if it is missing.

    Directories are processed recursively. Symlinks are left alone.
    """
    targets = [path]
    if path.is_dir() and not path.is_symlink():
        targets.extend(path.rglob("*"))
    for target in targets:
        if target.is_symlink():
            continue
        mode = target.stat().st_mode
        if not mode & stat.S_IWUSR:
            target.chmod(stat.S_IMODE(mode) | stat.S_IWUSR)


def set_executable(path: Path) -> bool:
    """Set rwxr-xr-x on ``path``.

    Returns:
        False when the platform has no POSIX permission support.
    """
    if os.name != "posix":
        return False
    path.chmod(EXECUTABLE_MODE)
    return True


def directory_size(path: Path) -> int:
    """Total size in bytes of the regular files below ``path``."""
    return sum(
        p.stat().st_size for p in path.rglob("*") if p.is_file() and not p.is_symlink()
    )


@contextmanager
def scratch_directory(
    prefix: str = "imagepack-", base: Path | None = None
) -> Iterator[Path]:
    """Create a temporary directory removed when the block exits.

    Args:
        prefix: Directory name prefix.
        base: Parent directory; the system default is used when None.

    Yields:
        Path to the scratch directory.
    """
    if base is not None:
        base.mkdir(parents=True, exist_ok=True)
    with tempfile.TemporaryDirectory(prefix=prefix, dir=base) as tmp:
        logger.debug("Using scratch directory %s", tmp)
        yield Path(tmp)


__all__ = [
    "copy_files",
    "delete_files",
    "directory_size",
    "ensure_writable",
    "move_files",
    "scratch_directory",
    "set_executable",
]
