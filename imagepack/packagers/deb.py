"""Debian package backend (``linux-deb``).

Image layout::

    <pkg>_<version>_<arch>/
        DEBIAN/control
        usr/bin/<exec>                      launcher script
        usr/lib/<pkg>/                      application (runtime in jdk/)
        usr/share/applications/<pkg>.desktop
        usr/share/icons/hicolor/48x48/apps/<pkg>.png
        usr/share/icons/hicolor/scalable/apps/<pkg>.svg

The package is built with ``fakeroot dpkg-deb --build``.
"""

from __future__ import annotations

import logging
import math
import re
from pathlib import Path

from imagepack.architecture import Architecture
from imagepack.context import ExecutionContext, Packager
from imagepack.errors import ConfigurationError
from imagepack.files.fsops import directory_size
from imagepack.image.pipeline import ImageHooks
from imagepack.options import (
    PACKAGE_DESCRIPTION,
    PACKAGE_NAME,
    PACKAGE_PUBLISHER,
    PACKAGE_RUNTIME,
    PACKAGE_URL,
    PACKAGE_VERSION,
    Option,
)
from imagepack.packagers.common import (
    find_launcher,
    install_icon,
    optional_line,
    resolve_arch_label,
    sanitize_package_name,
    set_executable,
    write_text,
)
from imagepack.templates.resources import Template
from imagepack.types import OptionKind

logger = logging.getLogger(__name__)

DEB_PACKAGE = Option("package.deb.package", help="Debian package name override")
DEB_MAINTAINER = Option(
    "package.deb.maintainer", help="Maintainer, e.g. 'Jane Doe <jane@example.org>'"
)
DEB_SECTION = Option("package.deb.section", "devel", "Debian archive section")
DEB_CATEGORY = Option(
    "package.deb.category", "Development;Java;IDE;", "Desktop file categories"
)
DEB_WMCLASS = Option("package.deb.wmclass", help="StartupWMClass for the desktop file")
DEB_ICON = Option("package.deb.icon", help="48x48 PNG icon", kind=OptionKind.PATH)
DEB_SVG_ICON = Option("package.deb.svg-icon", help="SVG icon", kind=OptionKind.PATH)
DEB_CONTROL_TEMPLATE = Option(
    "package.deb.control-template",
    help="Override control template",
    kind=OptionKind.PATH,
)
DEB_LAUNCHER_TEMPLATE = Option(
    "package.deb.launcher-template",
    help="Override launcher template",
    kind=OptionKind.PATH,
)
DEB_DESKTOP_TEMPLATE = Option(
    "package.deb.desktop-template",
    help="Override desktop file template",
    kind=OptionKind.PATH,
)

CONTROL_TEMPLATE = Template("deb.control.template", DEB_CONTROL_TEMPLATE)
LAUNCHER_TEMPLATE = Template("deb.launcher.template", DEB_LAUNCHER_TEMPLATE)
DESKTOP_TEMPLATE = Template("deb.desktop.template", DEB_DESKTOP_TEMPLATE)

ARCH_LABELS = {Architecture.X86_64: "amd64", Architecture.AARCH64: "arm64"}
NO_ARCH = "all"
RUNTIME_RECOMMENDS = "java17-sdk"

_VERSION_CHARS = re.compile(r"[^a-zA-Z0-9+.~\-]")


class DebTask:
    """Debian image layout and package build for one context."""

    def __init__(self, context: ExecutionContext) -> None:
        self.context = context
        name = context.get_value(DEB_PACKAGE) or context.require_value(PACKAGE_NAME)
        self.package_name = sanitize_package_name(name)
        if len(self.package_name) < 2 or not self.package_name[0].isalnum():
            raise ConfigurationError(
                f"Invalid Debian package name '{self.package_name}'"
            )
        version = context.require_value(PACKAGE_VERSION)
        self.package_version = _VERSION_CHARS.sub("~", version)
        self.package_arch = resolve_arch_label(context, ARCH_LABELS, NO_ARCH)

    def hooks(self) -> ImageHooks:
        return ImageHooks(
            customize_image=self.customize_image,
            build_package=self.build_package,
            image_name=self.image_name,
            app_path=self.app_path,
            finalize_image=self.finalize_image,
            check_package_requirements=self.check_package_requirements,
        )

    def image_name(self, input_path: Path) -> str:
        return f"{self.package_name}_{self.package_version}_{self.package_arch}"

    def app_path(self, image: Path) -> Path:
        return image / "usr" / "lib" / self.package_name

    def check_package_requirements(self) -> None:
        self.context.require_tools("dpkg-deb", "fakeroot")

    def customize_image(self, image: Path) -> None:
        exec_name = find_launcher(self.app_path(image) / "bin")
        share = image / "usr" / "share"
        icons = share / "icons" / "hicolor"

        launcher = write_text(
            image / "usr" / "bin" / exec_name,
            self.context.replace_tokens(
                LAUNCHER_TEMPLATE.load(self.context),
                {"PACKAGE": f"/usr/lib/{self.package_name}", "EXEC": exec_name},
            ),
        )
        set_executable(self.context, launcher)

        install_icon(
            self.context,
            DEB_ICON,
            "imagepack.png",
            icons / "48x48" / "apps" / f"{self.package_name}.png",
        )
        install_icon(
            self.context,
            DEB_SVG_ICON,
            "imagepack.svg",
            icons / "scalable" / "apps" / f"{self.package_name}.svg",
        )

        write_text(
            share / "applications" / f"{self.package_name}.desktop",
            self.context.replace_tokens(
                DESKTOP_TEMPLATE.load(self.context),
                {
                    "EXEC": f"/usr/bin/{exec_name}",
                    "ICON": self.package_name,
                    "CATEGORY": self.context.get_value(DEB_CATEGORY) or "",
                    "WMCLASS": self.context.get_value(DEB_WMCLASS) or exec_name,
                },
            ),
        )

    def finalize_image(self, image: Path) -> None:
        description = self.context.get_value(PACKAGE_DESCRIPTION) or ""
        lines = description.strip().splitlines()
        summary = lines[0] if lines else self.context.require_value(PACKAGE_NAME)
        extended = "\n".join(f" {line}" if line.strip() else " ." for line in lines[1:])

        maintainer = self.context.get_value(DEB_MAINTAINER) or self.context.get_value(
            PACKAGE_PUBLISHER
        )
        if not maintainer:
            self.context.warn("No maintainer configured, using 'unknown'")
            maintainer = "unknown"

        recommends = None
        if self.context.get_value(PACKAGE_RUNTIME) is None:
            recommends = RUNTIME_RECOMMENDS

        control = self.context.replace_tokens(
            CONTROL_TEMPLATE.load(self.context),
            {
                "DEB_PACKAGE": self.package_name,
                "DEB_VERSION": self.package_version,
                "DEB_ARCH": self.package_arch,
                "DEB_MAINTAINER": maintainer,
                "DEB_SECTION": self.context.get_value(DEB_SECTION) or "",
                "DEB_INSTALLED_SIZE": str(math.ceil(directory_size(image) / 1024)),
                "DEB_HOMEPAGE_LINE": optional_line(
                    "Homepage: ", self.context.get_value(PACKAGE_URL)
                ),
                "DEB_RECOMMENDS_LINE": optional_line("Recommends: ", recommends),
                "DEB_SUMMARY": summary,
                "DEB_DESCRIPTION": extended,
            },
        )
        # control fields must not be separated by blank lines
        control = "\n".join(line for line in control.splitlines() if line.strip())
        write_text(image / "DEBIAN" / "control", control + "\n")

    def build_package(self, image: Path) -> Path:
        output = self.context.destination / f"{image.name}.deb"
        self.context.run_tool("fakeroot", "dpkg-deb", "--build", image, output)
        return output


PACKAGER = Packager(
    name="linux-deb",
    create_hooks=lambda context: DebTask(context).hooks(),
    description="Debian package (.deb)",
    options=(
        DEB_PACKAGE,
        DEB_MAINTAINER,
        DEB_SECTION,
        DEB_CATEGORY,
        DEB_WMCLASS,
        DEB_ICON,
        DEB_SVG_ICON,
        DEB_CONTROL_TEMPLATE,
        DEB_LAUNCHER_TEMPLATE,
        DEB_DESKTOP_TEMPLATE,
    ),
    templates=(CONTROL_TEMPLATE, LAUNCHER_TEMPLATE, DESKTOP_TEMPLATE),
)

__all__ = ["PACKAGER", "DebTask"]
