"""Staged image construction shared by every packager.

This module handles:
- Creating the image directory and installing the application into it
- Installing an optional Java runtime and pointing launcher configs at it
- Running backend customization and finalization hooks
- Removing files that match the configured filter pattern
- Merging extra files into the image (``__ROOT`` and ``__APP`` aliases)

Backends never subclass the pipeline; they provide an :class:`ImageHooks`
bundle of callables. Stages run in a fixed order::

    CREATED -> APP_EXTRACTED -> RUNTIME_EXTRACTED? -> CUSTOMIZED
            -> FILTERED? -> MERGED? -> FINALIZED -> PACKAGE_BUILT

The filter runs after customization and before merging, so files added by
``customize_image`` can be removed while merged and finalized files are
kept.
"""

from __future__ import annotations

import logging
import re
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from imagepack.errors import AmbiguousTreeError, ImageExistsError, InvalidInputError
from imagepack.files.archives import extract_archive
from imagepack.files.fsops import copy_files, delete_files, ensure_writable, move_files
from imagepack.files.patterns import find, find_dirs
from imagepack.options import (
    PACKAGE_MERGE,
    PACKAGE_NAME,
    PACKAGE_REMOVE,
    PACKAGE_RUNTIME,
    PACKAGE_VERSION,
)
from imagepack.types import ImageStage

if TYPE_CHECKING:
    from imagepack.context import ExecutionContext

logger = logging.getLogger(__name__)

SEARCH_DEPTH = 5
APP_ROOT_PATTERNS = ("bin/*", "etc/*.conf")
RUNTIME_ROOT_PATTERNS = ("bin/java*",)

MERGE_ROOT = "__ROOT"
MERGE_APP = "__APP"

JDKHOME_PLACEHOLDER = '#jdkhome="/path/to/jdk"'

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9\-_.]")


def sanitize_image_name(value: str) -> str:
    """Replace characters outside ``[a-zA-Z0-9-_.]`` with ``_``."""
    return _UNSAFE_NAME_CHARS.sub("_", value)


def default_image_name(context: ExecutionContext) -> str:
    """``<name>-<version>`` with both parts sanitized."""
    name = context.require_value(PACKAGE_NAME)
    version = context.require_value(PACKAGE_VERSION)
    return f"{sanitize_image_name(name)}-{sanitize_image_name(version)}"


def default_app_path(image: Path) -> Path:
    return image


def default_runtime_path(image: Path, app: Path) -> Path:
    return app / "jdk"


def default_root_path(image: Path, app: Path) -> Path:
    return image


def _no_op(*args: object) -> None:
    return None


@dataclass(frozen=True)
class ImageHooks:
    """Backend-specific behavior plugged into the pipeline.

    Attributes:
        customize_image: Lay out backend files after app and runtime install.
        build_package: Produce the final package from a finished image.
        image_name: Image directory name for an input; None uses the
            default ``<name>-<version>``.
        app_path: Where the application is installed inside the image.
        runtime_path: Where the runtime is installed, given image and app.
        root_path: Target of ``__ROOT`` merges, given image and app.
        finalize_image: Write descriptors that depend on the final tree.
        check_image_requirements: Pre-flight checks for image creation.
        check_package_requirements: Pre-flight checks for package building.
    """

    customize_image: Callable[[Path], None]
    build_package: Callable[[Path], Path]
    image_name: Callable[[Path], str] | None = None
    app_path: Callable[[Path], Path] = default_app_path
    runtime_path: Callable[[Path, Path], Path] = default_runtime_path
    root_path: Callable[[Path, Path], Path] = default_root_path
    finalize_image: Callable[[Path], None] = _no_op
    check_image_requirements: Callable[[], None] = _no_op
    check_package_requirements: Callable[[], None] = _no_op


class ImagePipeline:
    """Runs the image stages for one execution context."""

    def __init__(self, context: ExecutionContext, hooks: ImageHooks) -> None:
        self.context = context
        self.hooks = hooks
        self.stage: ImageStage | None = None

    def _advance(self, stage: ImageStage) -> None:
        self.stage = stage
        logger.debug("Image stage: %s", stage.value)

    def validate_create_image(self) -> None:
        self.hooks.check_image_requirements()

    def validate_create_package(self) -> None:
        self.hooks.check_package_requirements()

    def image_name(self, input_path: Path) -> str:
        if self.hooks.image_name is not None:
            return self.hooks.image_name(input_path)
        return default_image_name(self.context)

    def create_image(self, input_path: Path) -> Path:
        """Build the image directory from an application directory or archive.

        Args:
            input_path: Application directory or archive.

        Returns:
            Path of the created image directory.

        Raises:
            InvalidInputError: If an input is neither file nor directory.
            ImageExistsError: If the image directory already exists.
            AmbiguousTreeError: If no unique application or runtime root
                is found.
        """
        input_path = Path(input_path)
        _check_input(input_path, "application")

        image = self.context.destination / self.image_name(input_path)
        self.context.destination.mkdir(parents=True, exist_ok=True)
        try:
            image.mkdir()
        except FileExistsError as e:
            raise ImageExistsError(f"Image directory already exists: {image}") from e
        self._advance(ImageStage.CREATED)
        logger.info("Creating image %s", image)

        app_dir = self.hooks.app_path(image)
        app_dir.mkdir(parents=True, exist_ok=True)
        self._install_tree(input_path, app_dir, APP_ROOT_PATTERNS, "application")
        self._advance(ImageStage.APP_EXTRACTED)

        runtime = self.context.get_path(PACKAGE_RUNTIME)
        if runtime is not None:
            _check_input(runtime, "runtime")
            runtime_dir = self.hooks.runtime_path(image, app_dir)
            runtime_dir.mkdir(parents=True, exist_ok=True)
            self._install_tree(runtime, runtime_dir, RUNTIME_ROOT_PATTERNS, "runtime")
            if runtime_dir.is_relative_to(app_dir):
                _set_jdkhome(app_dir, runtime_dir.relative_to(app_dir))
            self._advance(ImageStage.RUNTIME_EXTRACTED)

        self.hooks.customize_image(image)
        self._advance(ImageStage.CUSTOMIZED)

        remove_pattern = self.context.get_value(PACKAGE_REMOVE)
        if remove_pattern:
            self._remove_files(image, remove_pattern)
            self._advance(ImageStage.FILTERED)

        merge = self.context.get_path(PACKAGE_MERGE)
        if merge is not None:
            self._merge(image, merge)
            self._advance(ImageStage.MERGED)

        self.hooks.finalize_image(image)
        self._advance(ImageStage.FINALIZED)
        logger.info("Image created at %s", image)
        return image

    def create_package(self, image: Path) -> Path:
        """Build the final package from a finished image."""
        logger.info("Building package from %s", image)
        package = self.hooks.build_package(image)
        self._advance(ImageStage.PACKAGE_BUILT)
        logger.info("Package created at %s", package)
        return package

    def _install_tree(
        self, source: Path, target: Path, patterns: tuple[str, ...], label: str
    ) -> None:
        if source.is_dir():
            root = _unique_root(source, patterns, label)
            copy_files(root, target)
            return
        with self.context.scratch_directory(f"imagepack-{label}-") as scratch:
            extract_archive(source, scratch)
            root = _unique_root(scratch, patterns, label)
            move_files(root, target)

    def _remove_files(self, image: Path, pattern: str) -> None:
        matches = find(image, pattern)
        removed = 0
        for path in matches:
            # Descendants of an already removed directory are gone
            if not path.exists() and not path.is_symlink():
                continue
            delete_files(path)
            removed += 1
        logger.info("Removed %d path(s) matching %s", removed, pattern)

    def _merge(self, image: Path, source: Path) -> None:
        _check_input(source, "merge")
        if source.is_dir():
            self._merge_tree(image, source)
            return
        with self.context.scratch_directory("imagepack-merge-") as scratch:
            extract_archive(source, scratch)
            self._merge_tree(image, scratch)

    def _merge_tree(self, image: Path, source: Path) -> None:
        # Backends may have moved the app during customization
        app_dir = self.hooks.app_path(image)
        root_dir = self.hooks.root_path(image, app_dir)
        for entry in sorted(source.iterdir()):
            try:
                self._merge_entry(image, entry, app_dir, root_dir)
            except OSError as e:
                raise InvalidInputError(
                    f"Cannot merge {entry.name} into {image}: {e}"
                ) from e

    def _merge_entry(
        self, image: Path, entry: Path, app_dir: Path, root_dir: Path
    ) -> None:
        if entry.is_dir():
            if entry.name == MERGE_ROOT:
                target = root_dir
            elif entry.name == MERGE_APP:
                target = app_dir
            else:
                target = image / entry.name
            logger.debug("Merging %s into %s", entry.name, target)
            copy_files(entry, target)
            return

        target = image / entry.name
        if target.is_dir() and not target.is_symlink():
            raise InvalidInputError(
                f"Cannot merge {entry.name} into {image}: {target} is a directory"
            )
        # Existing files are replaced, read-only ones included
        if target.is_file() or target.is_symlink():
            target.unlink()
        shutil.copy2(entry, target, follow_symlinks=False)
        if not target.is_symlink():
            ensure_writable(target)


def _check_input(path: Path, label: str) -> None:
    if not (path.is_dir() or path.is_file()):
        raise InvalidInputError(
            f"The {label} input {path} is not a file or a directory"
        )


def _unique_root(search_root: Path, patterns: tuple[str, ...], label: str) -> Path:
    candidates = find_dirs(search_root, SEARCH_DEPTH, *patterns)
    if len(candidates) != 1:
        names = [str(c) for c in candidates]
        raise AmbiguousTreeError(
            f"Expected exactly one {label} root matching {list(patterns)}"
            f" in {search_root}, found {len(candidates)}",
            candidates=names,
        )
    logger.debug("Found %s root %s", label, candidates[0])
    return candidates[0]


def _set_jdkhome(app_dir: Path, relative_runtime: Path) -> None:
    replacement = f'jdkhome="{relative_runtime}"'
    for conf in find(app_dir / "etc", "*.conf"):
        if not conf.is_file():
            continue
        with open(conf, encoding="utf-8", newline="") as f:
            text = f.read()
        if JDKHOME_PLACEHOLDER not in text:
            continue
        with open(conf, "w", encoding="utf-8", newline="") as f:
            f.write(text.replace(JDKHOME_PLACEHOLDER, replacement))
        logger.info("Set %s in %s", replacement, conf.name)


__all__ = [
    "APP_ROOT_PATTERNS",
    "MERGE_APP",
    "MERGE_ROOT",
    "RUNTIME_ROOT_PATTERNS",
    "ImageHooks",
    "ImagePipeline",
    "default_app_path",
    "default_image_name",
    "default_root_path",
    "default_runtime_path",
    "sanitize_image_name",
]
