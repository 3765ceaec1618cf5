"""Packaging options and configuration.

This module handles:
- The option registry (key, default, help text, value kind)
- Immutable key/value configurations
- Loading configurations from YAML files and ``key=value`` overrides
- Saving configurations back to YAML

A configuration file is a flat YAML mapping of option keys to scalars::

    package.name: My App
    package.version: "1.2"
    package.runtime: jdk-17_linux-x64_bin.tar.gz

Relative values of path options are resolved against the file's directory.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Optional, Union

import yaml
from pydantic import (
    RootModel,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    field_validator,
)

from imagepack.errors import ConfigurationError
from imagepack.types import OptionKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Option:
    """A named packaging option.

    Attributes:
        key: Dotted option key, e.g. ``package.deb.maintainer``.
        default: Value used when the option is not configured.
        help: One-line description.
        kind: How the value is interpreted.
    """

    key: str
    default: str | None = None
    help: str = ""
    kind: OptionKind = OptionKind.STRING

    @property
    def is_path(self) -> bool:
        return self.kind == OptionKind.PATH


PACKAGE_NAME = Option("package.name", help="Application name")
PACKAGE_VERSION = Option("package.version", "1.0", "Application version")
PACKAGE_DESCRIPTION = Option("package.description", "", "Application description")
PACKAGE_PUBLISHER = Option("package.publisher", "", "Application publisher")
PACKAGE_URL = Option("package.url", "", "Application homepage")
PACKAGE_ARCH = Option(
    "package.arch", help="Architecture override (default: detected from runtime)"
)
PACKAGE_RUNTIME = Option(
    "package.runtime",
    help="Java runtime directory or archive to bundle",
    kind=OptionKind.PATH,
)
PACKAGE_MERGE = Option(
    "package.merge",
    help="Directory or archive merged into the image (__ROOT, __APP supported)",
    kind=OptionKind.PATH,
)
PACKAGE_REMOVE = Option(
    "package.remove", help="Pattern of image files to remove, e.g. {**/*.exe}"
)

COMMON_OPTIONS: tuple[Option, ...] = (
    PACKAGE_NAME,
    PACKAGE_VERSION,
    PACKAGE_DESCRIPTION,
    PACKAGE_PUBLISHER,
    PACKAGE_URL,
    PACKAGE_ARCH,
    PACKAGE_RUNTIME,
    PACKAGE_MERGE,
    PACKAGE_REMOVE,
)

Scalar = Union[StrictBool, StrictInt, StrictFloat, StrictStr]


class ConfigurationFile(RootModel[dict[str, Optional[Scalar]]]):
    """Schema of a configuration file: a flat mapping of scalar values."""

    @field_validator("root")
    @classmethod
    def validate_keys(cls, v: dict[str, Scalar | None]) -> dict[str, Scalar | None]:
        for key in v:
            if not key.strip():
                raise ValueError("option keys must not be empty")
        return v

    def to_strings(self) -> dict[str, str]:
        values: dict[str, str] = {}
        for key, value in self.root.items():
            if value is None:
                continue
            if isinstance(value, bool):
                values[key] = "true" if value else "false"
            else:
                values[key] = str(value)
        return values


class Configuration(Mapping[str, str]):
    """Immutable mapping of option keys to string values."""

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        self._values = MappingProxyType(dict(values or {}))

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Configuration({dict(self._values)!r})"

    def merged(self, values: Mapping[str, str]) -> Configuration:
        """Return a new configuration with ``values`` taking precedence."""
        return Configuration({**self._values, **values})

    def as_dict(self) -> dict[str, str]:
        return dict(self._values)

    def unknown_keys(self, options: Iterable[Option]) -> list[str]:
        """Keys not declared by any of ``options``."""
        known = {option.key for option in options}
        return sorted(key for key in self._values if key not in known)


def load_configuration(
    path: Path, path_options: Iterable[Option] = COMMON_OPTIONS
) -> Configuration:
    """Load a configuration from a YAML file.

    Args:
        path: YAML file to read.
        path_options: Options whose relative path values are resolved
            against the file's directory.

    Returns:
        Loaded configuration.

    Raises:
        ConfigurationError: If the file cannot be read or is not a flat
            mapping of scalars.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Expected a YAML mapping in {path}, got {type(data).__name__}"
        )

    try:
        values = ConfigurationFile.model_validate(data).to_strings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e

    base = path.parent
    for option in path_options:
        value = values.get(option.key)
        if option.is_path and value:
            candidate = Path(value).expanduser()
            if not candidate.is_absolute():
                values[option.key] = str(base / candidate)

    logger.debug("Loaded %d option(s) from %s", len(values), path)
    return Configuration(values)


def parse_overrides(items: Iterable[str]) -> dict[str, str]:
    """Parse ``key=value`` strings.

    Raises:
        ConfigurationError: If an item has no ``=`` or an empty key.
    """
    values: dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ConfigurationError(f"Expected key=value, got '{item}'")
        values[key] = value
    return values


def save_configuration(configuration: Mapping[str, str], path: Path) -> Path:
    """Write a configuration to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(dict(configuration), f, sort_keys=True, allow_unicode=True)
    logger.info("Saved configuration to %s", path)
    return path


__all__ = [
    "COMMON_OPTIONS",
    "PACKAGE_ARCH",
    "PACKAGE_DESCRIPTION",
    "PACKAGE_MERGE",
    "PACKAGE_NAME",
    "PACKAGE_PUBLISHER",
    "PACKAGE_REMOVE",
    "PACKAGE_RUNTIME",
    "PACKAGE_URL",
    "PACKAGE_VERSION",
    "Configuration",
    "ConfigurationFile",
    "Option",
    "load_configuration",
    "parse_overrides",
    "save_configuration",
]
