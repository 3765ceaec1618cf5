"""Packaged template and icon resources.

Every backend ships default templates under ``imagepack/templates/data``.
A template can be overridden per run by pointing its override option at a
user file; :func:`save_templates` writes the defaults out as a starting
point for such customization.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import TYPE_CHECKING

from imagepack.errors import TemplateNotFoundError

if TYPE_CHECKING:
    from imagepack.context import ExecutionContext
    from imagepack.options import Option

logger = logging.getLogger(__name__)

RESOURCE_PACKAGE = "imagepack.templates"
RESOURCE_DIR = "data"


def _resource(name: str) -> Traversable:
    resource = resources.files(RESOURCE_PACKAGE) / RESOURCE_DIR / name
    if not resource.is_file():
        raise TemplateNotFoundError(f"No packaged resource named '{name}'")
    return resource


def resource_text(name: str) -> str:
    """Read a packaged text resource."""
    return _resource(name).read_text(encoding="utf-8")


def resource_bytes(name: str) -> bytes:
    """Read a packaged binary resource."""
    return _resource(name).read_bytes()


def copy_resource(name: str, dest: Path) -> Path:
    """Copy a packaged resource to ``dest``, creating parent directories."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(resource_bytes(name))
    return dest


@dataclass(frozen=True)
class Template:
    """A text template with a packaged default and an optional override.

    Attributes:
        resource: File name of the packaged default under ``data/``.
        override: Path option that replaces the default when configured.
    """

    resource: str
    override: Option | None = None

    @property
    def name(self) -> str:
        return self.resource

    def default_text(self) -> str:
        return resource_text(self.resource)

    def load(self, context: ExecutionContext) -> str:
        """Load the override file if configured, else the packaged default.

        Raises:
            TemplateNotFoundError: If the override file cannot be read.
        """
        if self.override is not None:
            path = context.get_path(self.override)
            if path is not None:
                try:
                    text = path.read_text(encoding="utf-8")
                except OSError as e:
                    raise TemplateNotFoundError(
                        f"Cannot read template override {path}: {e}"
                    ) from e
                logger.debug("Using template override %s for %s", path, self.name)
                return text
        return self.default_text()


def save_templates(templates: tuple[Template, ...], directory: Path) -> list[Path]:
    """Write the packaged defaults of ``templates`` into ``directory``.

    Existing files are not overwritten.

    Returns:
        Paths of the files written.
    """
    directory.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for template in templates:
        dest = directory / template.resource
        if dest.exists():
            logger.warning("Not overwriting existing template %s", dest)
            continue
        dest.write_text(template.default_text(), encoding="utf-8")
        written.append(dest)
    return written


__all__ = [
    "Template",
    "copy_resource",
    "resource_bytes",
    "resource_text",
    "save_templates",
]
