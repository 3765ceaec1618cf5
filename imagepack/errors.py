"""Error types for imagepack.

Every error carries a stable ``code`` so that callers (the CLI, tests,
automation) can branch on the failure category without parsing messages.
"""

from __future__ import annotations


class ImagePackError(Exception):
    """Base class for all imagepack errors."""

    def __init__(self, message: str, code: str = "imagepack_error") -> None:
        super().__init__(message)
        self.code = code


class AmbiguousTreeError(ImagePackError):
    """Raised when a tree search finds zero or several candidate roots."""

    def __init__(
        self,
        message: str,
        candidates: list[str] | None = None,
        code: str = "ambiguous_tree",
    ) -> None:
        super().__init__(message, code)
        self.candidates = candidates or []


class ImageExistsError(ImagePackError):
    """Raised when the image directory already exists."""

    def __init__(self, message: str, code: str = "image_exists") -> None:
        super().__init__(message, code)


class RequirementError(ImagePackError):
    """Raised when a required tool or option is missing."""

    def __init__(self, message: str, code: str = "missing_requirement") -> None:
        super().__init__(message, code)


class ToolExecutionError(ImagePackError):
    """Raised when an external tool fails or cannot be started."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "tool_failed",
    ) -> None:
        super().__init__(message, code)
        self.exit_code = exit_code


class ConfigurationError(ImagePackError):
    """Raised for invalid or incomplete configuration."""

    def __init__(self, message: str, code: str = "invalid_config") -> None:
        super().__init__(message, code)


class InvalidInputError(ImagePackError):
    """Raised when an input path is neither a file nor a directory."""

    def __init__(self, message: str, code: str = "invalid_input") -> None:
        super().__init__(message, code)


class ArchiveError(ImagePackError):
    """Raised when archive extraction or creation fails."""

    def __init__(self, message: str, code: str = "archive_error") -> None:
        super().__init__(message, code)


class TemplateError(ImagePackError):
    """Base class for template loading and rendering errors."""


class UnresolvedTokenError(TemplateError):
    """Raised when a ``${key}`` placeholder has no replacement."""

    def __init__(self, key: str, code: str = "unresolved_token") -> None:
        super().__init__(f"No replacement for token '${{{key}}}'", code)
        self.key = key


class TemplateNotFoundError(TemplateError):
    """Raised when a template resource or override file cannot be read."""

    def __init__(self, message: str, code: str = "template_not_found") -> None:
        super().__init__(message, code)


__all__ = [
    "AmbiguousTreeError",
    "ArchiveError",
    "ConfigurationError",
    "ImageExistsError",
    "ImagePackError",
    "InvalidInputError",
    "RequirementError",
    "TemplateError",
    "TemplateNotFoundError",
    "ToolExecutionError",
    "UnresolvedTokenError",
]
