"""Package artifact description and manifests.

This module handles:
- Computing checksums of produced packages (files or bundle directories)
- Generating a JSON manifest describing a packaging run
"""

from __future__ import annotations

import hashlib
import json
import logging
import stat
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from imagepack.types import ArtifactInfo

logger = logging.getLogger(__name__)

HASH_CHUNK_SIZE = 64 * 1024  # 64KB


def compute_file_hash(file_path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """Compute SHA-256 hash of a file."""
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def compute_tree_hash(directory: Path) -> str:
    """Compute a deterministic hash of a directory tree.

    The hash covers sorted relative paths, permission bits and contents of
    every regular file.
    """
    hasher = hashlib.sha256()
    for path in sorted(directory.rglob("*")):
        if not path.is_file() or path.is_symlink():
            continue
        hasher.update(path.relative_to(directory).as_posix().encode("utf-8"))
        hasher.update(b"\0")
        hasher.update(f"{stat.S_IMODE(path.stat().st_mode):o}".encode())
        hasher.update(b"\0")
        hasher.update(compute_file_hash(path).encode())
        hasher.update(b"\0")
    return hasher.hexdigest()


def describe_artifact(path: Path, packager: str) -> ArtifactInfo:
    """Describe a produced package.

    Directory artifacts (such as macOS app bundles) are sized and hashed as
    a tree.
    """
    if path.is_dir():
        size = sum(p.stat().st_size for p in path.rglob("*") if p.is_file())
        digest = compute_tree_hash(path)
        labels = {"kind": "directory"}
    else:
        size = path.stat().st_size
        digest = compute_file_hash(path)
        labels = {"kind": "file"}
    return ArtifactInfo(
        filename=path.name,
        path=str(path),
        size_bytes=size,
        sha256=digest,
        packager=packager,
        labels=labels,
    )


def generate_manifest(
    artifact: ArtifactInfo,
    image: Path | None = None,
    options: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Generate a manifest dictionary for one packaging run."""
    manifest: dict[str, Any] = {
        "version": "1.0",
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "artifact": asdict(artifact),
    }
    if image is not None:
        manifest["image"] = str(image)
    if options:
        manifest["options"] = options
    return manifest


def write_manifest(manifest: dict[str, Any], output_path: Path) -> Path:
    """Write manifest to a JSON file."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2, sort_keys=True)
    logger.info("Wrote manifest to %s", output_path)
    return output_path


__all__ = [
    "compute_file_hash",
    "compute_tree_hash",
    "describe_artifact",
    "generate_manifest",
    "write_manifest",
]
