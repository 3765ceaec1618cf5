"""Archive extraction and creation.

This module handles:
- Extracting zip and tar archives (plain, gzip, bzip2, xz) with permission
  bits preserved and path traversal rejected
- Creating zip and tar archives from a directory's contents
- Creating self-extracting shell scripts with an appended tar.gz payload
- Rewriting selected entries of JAR files in place
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import tarfile
import time
import zipfile
from collections.abc import Callable
from pathlib import Path, PurePosixPath

from imagepack.errors import ArchiveError
from imagepack.files.fsops import scratch_directory
from imagepack.files.patterns import PathPattern

logger = logging.getLogger(__name__)

ZIP_SUFFIXES = (".zip", ".jar")
TAR_SUFFIXES = (".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tbz2", ".tar.xz", ".txz")

# Marker line separating an embedded tar script from its payload
TARFILE_MARKER = "__TARFILE_FOLLOWS__"


def archive_format(path: Path) -> str | None:
    """Return ``"zip"`` or ``"tar"`` for a supported archive name, else None."""
    name = path.name.lower()
    if name.endswith(ZIP_SUFFIXES):
        return "zip"
    if name.endswith(TAR_SUFFIXES):
        return "tar"
    return None


def _safe_member_path(dest_dir: Path, name: str) -> Path:
    member = PurePosixPath(name)
    if member.is_absolute() or ".." in member.parts:
        raise ArchiveError(
            f"Refusing to extract {name}: path traversal detected",
            code="path_traversal",
        )
    return dest_dir.joinpath(*member.parts)


def _check_link_target(dest_dir: Path, link_path: Path, target: str) -> None:
    resolved = os.path.normpath(os.path.join(link_path.parent, target))
    inside = os.path.commonpath([resolved, str(dest_dir)]) == str(dest_dir)
    if os.path.isabs(target) or not inside:
        raise ArchiveError(
            f"Refusing to extract link {link_path.name} -> {target}: "
            "path traversal detected",
            code="path_traversal",
        )


def _extract_zip(archive_path: Path, dest_dir: Path) -> None:
    with zipfile.ZipFile(archive_path) as archive:
        for info in archive.infolist():
            target = _safe_member_path(dest_dir, info.filename)
            mode = info.external_attr >> 16
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            if stat.S_ISLNK(mode):
                link = archive.read(info).decode("utf-8")
                _check_link_target(dest_dir, target, link)
                os.symlink(link, target)
                continue
            with archive.open(info) as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
            if stat.S_IMODE(mode):
                target.chmod(stat.S_IMODE(mode))
            mtime = time.mktime(info.date_time + (0, 0, -1))
            os.utime(target, (mtime, mtime))


def extract_archive(archive_path: Path, dest_dir: Path) -> Path:
    """Extract a zip or tar archive into ``dest_dir``.

    Args:
        archive_path: Archive to extract.
        dest_dir: Destination directory, created if needed.

    Returns:
        The destination directory.

    Raises:
        ArchiveError: If the format is unsupported or extraction fails.
    """
    fmt = archive_format(archive_path)
    if fmt is None:
        raise ArchiveError(
            f"Unsupported archive format: {archive_path.name}",
            code="unsupported_format",
        )

    logger.info("Extracting %s to %s", archive_path.name, dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)
    try:
        if fmt == "zip":
            _extract_zip(archive_path, dest_dir)
        else:
            with tarfile.open(archive_path, "r:*") as tar:
                tar.extractall(dest_dir, filter="data")
    except (zipfile.BadZipFile, tarfile.TarError) as e:
        raise ArchiveError(f"Failed to extract {archive_path}: {e}") from e
    except OSError as e:
        raise ArchiveError(
            f"OS error extracting {archive_path}: {e}", code="os_error"
        ) from e
    return dest_dir


def _symlink_info(path: Path, arcname: str) -> zipfile.ZipInfo:
    mtime = time.localtime(os.lstat(path).st_mtime)
    info = zipfile.ZipInfo(arcname, date_time=mtime[:6])
    info.external_attr = (stat.S_IFLNK | 0o777) << 16
    return info


def create_zip_archive(source_dir: Path, archive_path: Path) -> Path:
    """Create a zip archive of the contents of ``source_dir``.

    Permission bits are stored in the entries' external attributes and
    symlinks are stored as links.
    """
    logger.info("Creating %s from %s", archive_path.name, source_dir)
    with zipfile.ZipFile(archive_path, "w", zipfile.ZIP_DEFLATED) as archive:
        for path in sorted(source_dir.rglob("*")):
            arcname = path.relative_to(source_dir).as_posix()
            if path.is_symlink():
                archive.writestr(_symlink_info(path, arcname), os.readlink(path))
            elif path.is_dir():
                archive.write(path, arcname + "/")
            else:
                archive.write(path, arcname)
    return archive_path


def _add_tree(tar: tarfile.TarFile, source_dir: Path) -> None:
    for child in sorted(source_dir.iterdir()):
        tar.add(child, arcname=child.name)


def create_embedded_tar_script(script: str, source_dir: Path, dest: Path) -> Path:
    """Write a shell script followed by a tar.gz of ``source_dir``.

    The script must end with a line consisting of the payload marker; the
    marker is appended when missing.

    Args:
        script: Script text.
        source_dir: Directory to embed.
        dest: Output script path.

    Returns:
        The written script path.
    """
    text = script.rstrip("\n")
    if not text.endswith(TARFILE_MARKER):
        text += "\n" + TARFILE_MARKER
    text += "\n"

    logger.info("Creating self-extracting script %s", dest)
    with open(dest, "wb") as out:
        out.write(text.encode("utf-8"))
        with tarfile.open(fileobj=out, mode="w:gz") as tar:
            _add_tree(tar, source_dir)
    return dest


def process_jar_contents(
    jar_path: Path,
    pattern: str,
    processor: Callable[[Path, str], bool],
    scratch_base: Path | None = None,
) -> int:
    """Run ``processor`` on JAR entries whose names match ``pattern``.

    Each matching entry is extracted to a scratch file and passed to
    ``processor(file, entry_name)``. Entries for which the processor returns
    True are written back into the JAR, which is replaced atomically.

    Returns:
        Number of entries rewritten.
    """
    compiled = PathPattern(pattern)
    with zipfile.ZipFile(jar_path) as jar:
        selected = [
            info
            for info in jar.infolist()
            if not info.is_dir() and compiled.matches(info.filename)
        ]
    if not selected:
        return 0

    with scratch_directory("imagepack-jar-", scratch_base) as scratch:
        replacements: dict[str, Path] = {}
        with zipfile.ZipFile(jar_path) as jar:
            for info in selected:
                extracted = _safe_member_path(scratch, info.filename)
                extracted.parent.mkdir(parents=True, exist_ok=True)
                extracted.write_bytes(jar.read(info))
                if processor(extracted, info.filename):
                    replacements[info.filename] = extracted

        if not replacements:
            return 0

        rewritten = jar_path.with_name(jar_path.name + ".imagepack-tmp")
        with zipfile.ZipFile(jar_path) as src, zipfile.ZipFile(
            rewritten, "w", zipfile.ZIP_DEFLATED
        ) as dst:
            for info in src.infolist():
                replacement = replacements.get(info.filename)
                data = replacement.read_bytes() if replacement else src.read(info)
                dst.writestr(info, data)
        shutil.copystat(jar_path, rewritten)
        os.replace(rewritten, jar_path)

    logger.info("Rewrote %d entr(ies) in %s", len(replacements), jar_path.name)
    return len(replacements)


__all__ = [
    "TARFILE_MARKER",
    "archive_format",
    "create_embedded_tar_script",
    "create_zip_archive",
    "extract_archive",
    "process_jar_contents",
]
