"""Shared type definitions for imagepack.

This module contains enums and dataclasses shared across subpackages to
avoid circular imports.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class ImageStage(str, Enum):
    """Last completed stage of an image construction run."""

    CREATED = "created"
    APP_EXTRACTED = "app-extracted"
    RUNTIME_EXTRACTED = "runtime-extracted"
    CUSTOMIZED = "customized"
    FILTERED = "filtered"
    MERGED = "merged"
    FINALIZED = "finalized"
    PACKAGE_BUILT = "package-built"


class OptionKind(str, Enum):
    """How an option value is interpreted."""

    STRING = "str"
    PATH = "path"


@dataclass
class ToolResult:
    """Result of an external tool invocation.

    Attributes:
        command: The command line that was executed.
        exit_code: Process exit code.
        started_at: Start time.
        finished_at: Finish time.
        cwd: Working directory, if one was set.
    """

    command: str
    exit_code: int
    started_at: datetime
    finished_at: datetime
    cwd: Path | None = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


@dataclass
class ArtifactInfo:
    """Information about a produced package artifact."""

    filename: str
    path: str
    size_bytes: int
    sha256: str
    packager: str
    labels: dict[str, str] = field(default_factory=dict)


__all__ = ["ArtifactInfo", "ImageStage", "OptionKind", "ToolResult"]
