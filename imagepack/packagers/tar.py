"""Self-extracting tar script backend (``linux-tar-script``).

The image holds the application under ``APPDIR`` with launcher icons in
``APPDIR/launcher``. The package is ``<image>.sh``: a shell installer with
the gzipped application appended after a marker line. At install time the
script unpacks the payload, writes a launcher and a desktop entry, and links
the desktop entry into the user's (or system) applications directory.
"""

from __future__ import annotations

import logging
from pathlib import Path

from imagepack.architecture import Architecture
from imagepack.context import ExecutionContext, Packager
from imagepack.files.archives import create_embedded_tar_script
from imagepack.image.pipeline import ImageHooks, default_image_name
from imagepack.options import PACKAGE_NAME, Option
from imagepack.packagers.common import (
    find_launcher,
    install_icon,
    resolve_arch_label,
    sanitize_package_name,
    set_executable,
)
from imagepack.templates.resources import Template
from imagepack.types import OptionKind

logger = logging.getLogger(__name__)

APP_DIR = "APPDIR"
LAUNCHER_DIR = "launcher"

TAR_CATEGORY = Option(
    "package.tar.category", "Development;Java;IDE;", "Desktop file categories"
)
TAR_WMCLASS = Option("package.tar.wmclass", help="StartupWMClass for the desktop file")
TAR_ICON = Option("package.tar.icon", help="48x48 PNG icon", kind=OptionKind.PATH)
TAR_SVG_ICON = Option("package.tar.svg-icon", help="SVG icon", kind=OptionKind.PATH)
TAR_SCRIPT_TEMPLATE = Option(
    "package.tar.script-template",
    help="Override installer script template",
    kind=OptionKind.PATH,
)
TAR_LAUNCHER_TEMPLATE = Option(
    "package.tar.launcher-template",
    help="Override launcher template",
    kind=OptionKind.PATH,
)
TAR_DESKTOP_TEMPLATE = Option(
    "package.tar.desktop-template",
    help="Override desktop file template",
    kind=OptionKind.PATH,
)

SCRIPT_TEMPLATE = Template("tar.script.template", TAR_SCRIPT_TEMPLATE)
LAUNCHER_TEMPLATE = Template("tar.launcher.template", TAR_LAUNCHER_TEMPLATE)
DESKTOP_TEMPLATE = Template("tar.desktop.template", TAR_DESKTOP_TEMPLATE)

ARCH_LABELS = {Architecture.X86_64: "x86_64", Architecture.AARCH64: "aarch64"}
NO_ARCH = "noarch"


class TarScriptTask:
    """Tar script image layout and installer build for one context."""

    def __init__(self, context: ExecutionContext) -> None:
        self.context = context
        self.app_name = context.require_value(PACKAGE_NAME)
        self.app_name_safe = sanitize_package_name(self.app_name)
        self.arch = resolve_arch_label(context, ARCH_LABELS, NO_ARCH)
        self.base_name = default_image_name(context)

    def hooks(self) -> ImageHooks:
        return ImageHooks(
            customize_image=self.customize_image,
            build_package=self.build_package,
            image_name=self.image_name,
            app_path=self.app_path,
            root_path=self.root_path,
        )

    def image_name(self, input_path: Path) -> str:
        return f"{self.base_name}.{self.arch}"

    def app_path(self, image: Path) -> Path:
        return image / APP_DIR

    def root_path(self, image: Path, app: Path) -> Path:
        # Only APPDIR is packaged, so it is also the install root
        return app

    def customize_image(self, image: Path) -> None:
        app = self.app_path(image)
        exec_name = find_launcher(app / "bin")
        launcher_dir = app / LAUNCHER_DIR
        launcher_dir.mkdir(exist_ok=True)
        install_icon(
            self.context, TAR_ICON, "imagepack.png", launcher_dir / f"{exec_name}.png"
        )
        install_icon(
            self.context,
            TAR_SVG_ICON,
            "imagepack.svg",
            launcher_dir / f"{exec_name}.svg",
        )

    def script_tokens(self, exec_name: str) -> dict[str, str]:
        tokens = {
            "package.tar.app_name": self.app_name,
            "package.tar.app_name_safe": self.app_name_safe,
            "package.tar.app_dir": self.app_name_safe,
            "package.tar.exec": exec_name,
            "package.tar.category": self.context.get_value(TAR_CATEGORY) or "",
            "package.tar.wmclass": self.context.get_value(TAR_WMCLASS) or exec_name,
        }
        tokens["package.tar.desktop"] = self.context.replace_tokens(
            DESKTOP_TEMPLATE.load(self.context), tokens, passthrough=True
        ).rstrip("\n")
        tokens["package.tar.launcher"] = self.context.replace_tokens(
            LAUNCHER_TEMPLATE.load(self.context), tokens, passthrough=True
        ).rstrip("\n")
        return tokens

    def build_package(self, image: Path) -> Path:
        app = self.app_path(image)
        exec_name = find_launcher(app / "bin")
        script = self.context.replace_tokens(
            SCRIPT_TEMPLATE.load(self.context),
            self.script_tokens(exec_name),
            passthrough=True,
        )
        output = self.context.destination / f"{image.name}.sh"
        create_embedded_tar_script(script, app, output)
        set_executable(self.context, output)
        return output


PACKAGER = Packager(
    name="linux-tar-script",
    create_hooks=lambda context: TarScriptTask(context).hooks(),
    description="Self-extracting shell installer (.sh)",
    options=(
        TAR_CATEGORY,
        TAR_WMCLASS,
        TAR_ICON,
        TAR_SVG_ICON,
        TAR_SCRIPT_TEMPLATE,
        TAR_LAUNCHER_TEMPLATE,
        TAR_DESKTOP_TEMPLATE,
    ),
    templates=(SCRIPT_TEMPLATE, LAUNCHER_TEMPLATE, DESKTOP_TEMPLATE),
)

__all__ = ["PACKAGER", "TarScriptTask"]
