"""Installer backends and their registry."""

from __future__ import annotations

from imagepack.context import Packager
from imagepack.errors import ConfigurationError
from imagepack.options import COMMON_OPTIONS, Option
from imagepack.packagers import deb, innosetup, macos, rpm, tar

PACKAGERS: dict[str, Packager] = {
    packager.name: packager
    for packager in (
        deb.PACKAGER,
        rpm.PACKAGER,
        tar.PACKAGER,
        macos.APP_PACKAGER,
        macos.PKG_PACKAGER,
        innosetup.PACKAGER,
    )
}


def get_packager(name: str) -> Packager:
    """Look up a packager by name.

    Raises:
        ConfigurationError: If no packager has that name.
    """
    try:
        return PACKAGERS[name]
    except KeyError:
        known = ", ".join(sorted(PACKAGERS))
        raise ConfigurationError(
            f"Unknown packager '{name}' (available: {known})", code="unknown_packager"
        ) from None


def list_packagers() -> list[Packager]:
    return [PACKAGERS[name] for name in sorted(PACKAGERS)]


def all_options() -> list[Option]:
    """Common options followed by every packager's options, without duplicates."""
    options: dict[str, Option] = {option.key: option for option in COMMON_OPTIONS}
    for packager in list_packagers():
        for option in packager.options:
            options.setdefault(option.key, option)
    return list(options.values())


__all__ = ["PACKAGERS", "all_options", "get_packager", "list_packagers"]
