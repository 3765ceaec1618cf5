"""Execution context for a single packaging run.

This module handles:
- Describing packagers (name, hook factory, options, templates)
- Resolving option values from the configuration with defaults
- Token resolution for templates
- Running external tools and collecting warnings
- Driving validation, image creation and package building
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from imagepack.config import Settings, get_settings
from imagepack.errors import ConfigurationError, InvalidInputError
from imagepack.files.fsops import scratch_directory
from imagepack.image.pipeline import ImageHooks, ImagePipeline
from imagepack.image.tools import check_tool
from imagepack.image.tools import require_tools as _require_tools
from imagepack.options import COMMON_OPTIONS, Configuration, Option
from imagepack.templates.resources import Template
from imagepack.templates.tokens import layered, substitute
from imagepack.templates.tokens import passthrough as _passthrough
from imagepack.types import ToolResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Packager:
    """A named installer backend.

    Attributes:
        name: Packager name used on the command line, e.g. ``linux-deb``.
        create_hooks: Builds the pipeline hooks for a context.
        description: One-line description.
        options: Backend-specific options.
        templates: Backend templates, for listing and saving defaults.
    """

    name: str
    create_hooks: Callable[[ExecutionContext], ImageHooks]
    description: str = ""
    options: tuple[Option, ...] = ()
    templates: tuple[Template, ...] = ()


class ExecutionContext:
    """Inputs and shared services for one packaging run.

    Args:
        packager: Backend to use.
        input_path: Application directory or archive (None when packaging
            an existing image).
        configuration: Option values.
        destination: Directory receiving the image and package.
        image_only: Stop after the image is created.
        settings: Process settings; loaded from the environment if omitted.
    """

    def __init__(
        self,
        packager: Packager,
        input_path: Path | None,
        configuration: Configuration,
        destination: Path,
        image_only: bool = False,
        settings: Settings | None = None,
    ) -> None:
        self.packager = packager
        self.input_path = Path(input_path) if input_path is not None else None
        self.configuration = configuration
        self.destination = Path(destination)
        self.image_only = image_only
        self.settings = settings or get_settings()
        self.warnings: list[str] = []
        self._options = {o.key: o for o in (*COMMON_OPTIONS, *packager.options)}

    @property
    def options(self) -> tuple[Option, ...]:
        return tuple(self._options.values())

    def _option(self, option: Option | str) -> tuple[str, Option | None]:
        if isinstance(option, Option):
            return option.key, option
        return option, self._options.get(option)

    def get_value(self, option: Option | str) -> str | None:
        """Configured value of an option, falling back to its default.

        Empty configured values count as unset.
        """
        key, known = self._option(option)
        value = self.configuration.get(key)
        if value:
            return value
        return known.default if known is not None else None

    def get_path(self, option: Option | str) -> Path | None:
        """Option value as an absolute path, or None when unset."""
        value = self.get_value(option)
        if not value:
            return None
        return Path(value).expanduser().absolute()

    def require_value(self, option: Option | str) -> str:
        """Option value, raising if it is unset.

        Raises:
            ConfigurationError: If the option has no value or default.
        """
        value = self.get_value(option)
        if not value:
            key, _ = self._option(option)
            raise ConfigurationError(f"Option '{key}' is required")
        return value

    def warn(self, message: str) -> None:
        """Report a non-fatal problem."""
        logger.warning(message)
        self.warnings.append(message)

    def _option_token(self, key: str) -> str | None:
        value = self.get_value(key)
        if value is None and key in self._options:
            # Known options without a value render empty
            return ""
        return value

    def token_resolver(
        self, tokens: Mapping[str, str] | None = None, *, passthrough: bool = False
    ) -> Callable[[str], str | None]:
        """Resolve explicit tokens first, then option values.

        Args:
            tokens: Explicit token values.
            passthrough: Render unknown keys as their placeholder instead
                of failing.
        """
        lookup = layered(dict(tokens or {}), self._option_token)
        return _passthrough(lookup) if passthrough else lookup

    def replace_tokens(
        self,
        template: str,
        tokens: Mapping[str, str] | None = None,
        *,
        passthrough: bool = False,
    ) -> str:
        resolver = self.token_resolver(tokens, passthrough=passthrough)
        return substitute(template, resolver)

    def run_tool(self, *cmd: str | Path, cwd: Path | None = None) -> ToolResult:
        """Run an external tool; a non-zero exit raises ToolExecutionError."""
        return check_tool([str(part) for part in cmd], cwd=cwd)

    def require_tools(self, *names: str) -> None:
        _require_tools(*names)

    @contextmanager
    def scratch_directory(self, prefix: str = "imagepack-") -> Iterator[Path]:
        with scratch_directory(prefix, self.settings.tmp_dir) as scratch:
            yield scratch

    def pipeline(self) -> ImagePipeline:
        return ImagePipeline(self, self.packager.create_hooks(self))

    def execute(self) -> Path:
        """Validate, create the image and (unless image-only) the package.

        Returns:
            The package path, or the image path when image-only.
        """
        if self.input_path is None:
            raise InvalidInputError("No input application given")

        pipeline = self.pipeline()
        pipeline.validate_create_image()
        if not self.image_only:
            pipeline.validate_create_package()

        self.destination.mkdir(parents=True, exist_ok=True)
        image = pipeline.create_image(self.input_path)
        if self.image_only:
            return image
        return pipeline.create_package(image)

    def package_image(self, image: Path) -> Path:
        """Build a package from an existing image directory."""
        if not image.is_dir():
            raise InvalidInputError(f"Image {image} is not a directory")
        pipeline = self.pipeline()
        pipeline.validate_create_package()
        self.destination.mkdir(parents=True, exist_ok=True)
        return pipeline.create_package(image)


__all__ = ["ExecutionContext", "Packager"]
