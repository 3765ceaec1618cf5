"""CPU architecture names and detection.

Architecture labels vary between ecosystems (``amd64`` for Debian,
``x86_64`` for RPM, ``x64`` in JDK archive names). This module normalizes
them to a closed set and detects the architecture of a runtime archive
from its file name.
"""

from __future__ import annotations

from enum import Enum
from pathlib import PurePath


class Architecture(Enum):
    """Supported CPU architectures and their synonyms."""

    X86_64 = ("x86_64", "x86-64", "amd64", "x64")
    AARCH64 = ("aarch64", "arm64")

    @property
    def synonyms(self) -> tuple[str, ...]:
        return self.value

    def is_synonym(self, value: str) -> bool:
        """Check whether ``value`` names this architecture (case-insensitive)."""
        return value.lower() in self.value

    @classmethod
    def from_name(cls, value: str) -> Architecture | None:
        """Look up an architecture by any of its synonyms."""
        for arch in cls:
            if arch.is_synonym(value):
                return arch
        return None

    @classmethod
    def detect_from_path(cls, path: str | PurePath) -> Architecture | None:
        """Detect an architecture from the file name of ``path``.

        Only the final path component is inspected. Members are tried in
        declaration order and the first one with a synonym occurring in the
        (lowercased) file name wins.

        Example:
            >>> Architecture.detect_from_path("aarch64/jdk-17_windows-x64_bin.zip")
            <Architecture.X86_64: ('x86_64', 'x86-64', 'amd64', 'x64')>
        """
        name = PurePath(path).name.lower()
        for arch in cls:
            if any(synonym in name for synonym in arch.value):
                return arch
        return None


__all__ = ["Architecture"]
