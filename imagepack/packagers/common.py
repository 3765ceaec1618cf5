"""Helpers shared by the packagers."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING

from imagepack.architecture import Architecture
from imagepack.errors import AmbiguousTreeError, InvalidInputError
from imagepack.files import fsops
from imagepack.files.patterns import find
from imagepack.options import PACKAGE_ARCH, PACKAGE_RUNTIME, Option
from imagepack.templates.resources import copy_resource

if TYPE_CHECKING:
    from imagepack.context import ExecutionContext

logger = logging.getLogger(__name__)

_PACKAGE_NAME_CHARS = re.compile(r"[^a-z0-9+\-.]")


def sanitize_package_name(value: str) -> str:
    """Lowercase ``value`` and replace characters outside ``[a-z0-9+-.]``."""
    return _PACKAGE_NAME_CHARS.sub("-", value.lower())


def find_launcher(bin_dir: Path) -> str:
    """Name of the first non-``.exe`` file in an application's ``bin``.

    Raises:
        InvalidInputError: If there is no such file.
    """
    if bin_dir.is_dir():
        for entry in sorted(bin_dir.iterdir()):
            if entry.is_file() and not entry.name.lower().endswith(".exe"):
                return entry.name
    raise InvalidInputError(f"No launcher found in {bin_dir}")


def locate_app(
    search_root: Path, placeholder: Path, is_app: Callable[[Path], bool]
) -> Path:
    """Application directory of a backend that renames its placeholder.

    While ``placeholder`` exists (or nothing qualifies yet) it is returned.
    Otherwise the single ``*/bin`` parent under ``search_root`` accepted by
    ``is_app`` is used, so merged directories with their own ``bin`` are
    ignored.

    Raises:
        AmbiguousTreeError: If several directories qualify.
    """
    if placeholder.exists():
        return placeholder
    roots = [
        match.parent
        for match in find(search_root, "*/bin")
        if is_app(match.parent)
    ]
    if len(roots) > 1:
        raise AmbiguousTreeError(
            f"Expected one application directory in {search_root},"
            f" found {len(roots)}",
            candidates=[str(root) for root in roots],
        )
    return roots[0] if roots else placeholder


def set_executable(context: ExecutionContext, path: Path) -> None:
    """Make ``path`` rwxr-xr-x, warning when permissions are unsupported."""
    if not fsops.set_executable(path):
        context.warn(f"Cannot set executable permissions on {path.name}")


def resolve_arch_label(
    context: ExecutionContext,
    labels: Mapping[Architecture, str],
    fallback: str,
) -> str:
    """Pick a backend's architecture label.

    An explicit ``package.arch`` wins (mapped through ``labels`` when it is a
    known synonym, used verbatim otherwise). Without it the runtime's file
    name is inspected. No runtime means ``fallback``; an undetectable
    runtime warns and also uses ``fallback``.
    """
    explicit = context.get_value(PACKAGE_ARCH)
    if explicit:
        arch = Architecture.from_name(explicit)
        if arch is not None and arch in labels:
            return labels[arch]
        return explicit

    runtime = context.get_path(PACKAGE_RUNTIME)
    if runtime is None:
        return fallback
    arch = Architecture.detect_from_path(runtime)
    if arch is None or arch not in labels:
        context.warn(
            f"Cannot determine architecture of {runtime.name}, using '{fallback}'"
        )
        return fallback
    return labels[arch]


def install_icon(
    context: ExecutionContext, option: Option, resource: str, dest: Path
) -> Path:
    """Copy the configured icon, or the packaged default, to ``dest``."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    icon = context.get_path(option)
    if icon is not None:
        fsops.copy_files(icon, dest)
    else:
        copy_resource(resource, dest)
    return dest


def write_text(path: Path, text: str, newline: str = "\n") -> Path:
    """Write ``text`` to ``path`` with normalized line endings."""
    path.parent.mkdir(parents=True, exist_ok=True)
    normalized = text.replace("\r\n", "\n")
    with open(path, "w", encoding="utf-8", newline=newline) as f:
        f.write(normalized)
    return path


def optional_line(prefix: str, value: str | None) -> str:
    """``prefix + value`` when value is set, else an empty string."""
    return f"{prefix}{value}" if value else ""


__all__ = [
    "find_launcher",
    "install_icon",
    "locate_app",
    "optional_line",
    "resolve_arch_label",
    "sanitize_package_name",
    "set_executable",
    "write_text",
]
