"""imagepack - build platform installers from application images.

This package turns an extracted application directory or archive, plus an
optional bundled Java runtime, into installable images for Debian, RPM,
macOS, Windows (InnoSetup) and self-extracting tar scripts.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
