"""Windows InnoSetup installer backend (``windows-innosetup``).

Image layout::

    <name>-<version>-InnoSetup/
        <exec>/                 application (launcher bin/<exec>64.exe)
        <exec>/etc/<exec>.ico
        <exec>.iss              InnoSetup script (CRLF line endings)
        LICENSE.txt|.rtf        optional

The package is compiled by the configured InnoSetup compiler
(``package.innosetup.tool``, usually ``ISCC.exe``), run in the image
directory.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from imagepack.architecture import Architecture
from imagepack.context import ExecutionContext, Packager
from imagepack.errors import (
    ConfigurationError,
    InvalidInputError,
    RequirementError,
    ToolExecutionError,
)
from imagepack.files.fsops import copy_files
from imagepack.files.patterns import find
from imagepack.image.pipeline import ImageHooks, default_image_name
from imagepack.options import (
    PACKAGE_ARCH,
    PACKAGE_NAME,
    PACKAGE_PUBLISHER,
    PACKAGE_RUNTIME,
    PACKAGE_URL,
    PACKAGE_VERSION,
    Option,
)
from imagepack.packagers.common import (
    install_icon,
    locate_app,
    sanitize_package_name,
    write_text,
)
from imagepack.templates.resources import Template
from imagepack.types import OptionKind

logger = logging.getLogger(__name__)

APP_DIR = "APPDIR"
LAUNCHER_SUFFIX = "64.exe"
LICENSE_SUFFIXES = (".txt", ".rtf")

INNOSETUP_TOOL = Option(
    "package.innosetup.tool",
    help="Path to the InnoSetup compiler (ISCC.exe)",
    kind=OptionKind.PATH,
)
INNOSETUP_APPID = Option("package.innosetup.appid", help="InnoSetup AppId")
INNOSETUP_ICON = Option(
    "package.innosetup.icon", help="Application .ico icon", kind=OptionKind.PATH
)
INNOSETUP_LICENSE = Option(
    "package.innosetup.license",
    help="License file shown by the installer (.txt or .rtf)",
    kind=OptionKind.PATH,
)
INNOSETUP_PARAMETERS = Option(
    "package.innosetup.parameters", "", "Launcher parameters for shortcuts"
)
INNOSETUP_TEMPLATE = Option(
    "package.innosetup.template", help="Override .iss template", kind=OptionKind.PATH
)

ISS_TEMPLATE = Template("innosetup.iss.template", INNOSETUP_TEMPLATE)


def find_exec_name(bin_dir: Path) -> str:
    """Launcher base name from the first ``*64.exe`` in ``bin_dir``."""
    for launcher in find(bin_dir, "*" + LAUNCHER_SUFFIX):
        if launcher.is_file():
            return launcher.name[: -len(LAUNCHER_SUFFIX)]
    raise InvalidInputError(f"No *{LAUNCHER_SUFFIX} launcher found in {bin_dir}")


def _is_renamed_app(directory: Path) -> bool:
    return (directory / "bin" / f"{directory.name}{LAUNCHER_SUFFIX}").is_file()


class InnoSetupTask:
    """InnoSetup image layout and installer build for one context."""

    def __init__(self, context: ExecutionContext) -> None:
        self.context = context
        self.base_name = default_image_name(context)
        self.app_name = context.require_value(PACKAGE_NAME)

    def hooks(self) -> ImageHooks:
        return ImageHooks(
            customize_image=self.customize_image,
            build_package=self.build_package,
            image_name=self.image_name,
            app_path=self.app_path,
            root_path=self.root_path,
            finalize_image=self.finalize_image,
            check_image_requirements=self.check_image_requirements,
            check_package_requirements=self.check_package_requirements,
        )

    def image_name(self, input_path: Path) -> str:
        return f"{self.base_name}-InnoSetup"

    def app_path(self, image: Path) -> Path:
        return locate_app(image, image / APP_DIR, _is_renamed_app)

    def root_path(self, image: Path, app: Path) -> Path:
        return app

    def check_image_requirements(self) -> None:
        explicit = self.context.get_value(PACKAGE_ARCH)
        runtime = self.context.get_path(PACKAGE_RUNTIME)
        if explicit:
            arch = Architecture.from_name(explicit)
        elif runtime is not None:
            arch = Architecture.detect_from_path(runtime)
        else:
            return
        if arch is not Architecture.X86_64:
            self.context.warn("InnoSetup installers only support x86_64")

    def check_package_requirements(self) -> None:
        tool = self.context.get_path(INNOSETUP_TOOL)
        if tool is None:
            raise RequirementError(f"Option '{INNOSETUP_TOOL.key}' is required")
        if not tool.is_file():
            raise RequirementError(f"InnoSetup compiler not found at {tool}")

    def customize_image(self, image: Path) -> None:
        placeholder = image / APP_DIR
        exec_name = find_exec_name(placeholder / "bin")
        app = placeholder.rename(image / exec_name)
        install_icon(
            self.context,
            INNOSETUP_ICON,
            "imagepack.ico",
            app / "etc" / f"{exec_name}.ico",
        )

        license_file = self.context.get_path(INNOSETUP_LICENSE)
        if license_file is not None:
            suffix = license_file.suffix.lower()
            if suffix not in LICENSE_SUFFIXES:
                raise ConfigurationError(
                    f"License file must be one of {LICENSE_SUFFIXES}: {license_file}"
                )
            copy_files(license_file, image / f"LICENSE{suffix}")

    def _license_line(self, image: Path) -> str:
        for suffix in LICENSE_SUFFIXES:
            if (image / f"LICENSE{suffix}").is_file():
                return f"LicenseFile=LICENSE{suffix}"
        return ""

    def finalize_image(self, image: Path) -> None:
        app = self.app_path(image)
        exec_name = app.name
        files: list[str] = []
        deletes: list[str] = []
        for entry in sorted(app.iterdir()):
            if entry.is_dir():
                deletes.append(f'Type: filesandordirs; Name: "{{app}}\\{entry.name}"')
                files.append(
                    f'Source: "{exec_name}\\{entry.name}\\*"; '
                    f'DestDir: "{{app}}\\{entry.name}"; '
                    "Flags: ignoreversion recursesubdirs createallsubdirs"
                )
            else:
                files.append(
                    f'Source: "{exec_name}\\{entry.name}"; DestDir: "{{app}}"; '
                    "Flags: ignoreversion"
                )

        version = self.context.require_value(PACKAGE_VERSION)
        iss = self.context.replace_tokens(
            ISS_TEMPLATE.load(self.context),
            {
                "APP_ID": self.context.get_value(INNOSETUP_APPID)
                or sanitize_package_name(self.app_name),
                "APP_NAME": self.app_name,
                "APP_NAME_SAFE": sanitize_package_name(self.app_name),
                "APP_VERSION": version,
                "APP_PUBLISHER": self.context.get_value(PACKAGE_PUBLISHER) or "",
                "APP_PUBLISHER_URL": self.context.get_value(PACKAGE_URL) or "",
                "APP_LICENSE": self._license_line(image),
                "OUTPUT_FILENAME": image.name,
                "INSTALL_DELETE": "\n".join(deletes),
                "FILES": "\n".join(files),
                "EXEC_NAME": exec_name,
                "PARAMETERS": self.context.get_value(INNOSETUP_PARAMETERS) or "",
            },
        )
        write_text(image / f"{exec_name}.iss", iss, newline="\r\n")

    def build_package(self, image: Path) -> Path:
        tool = self.context.get_path(INNOSETUP_TOOL)
        if tool is None:
            raise RequirementError(f"Option '{INNOSETUP_TOOL.key}' is required")
        exec_name = self.app_path(image).name
        self.context.run_tool(tool, f"{exec_name}.iss", cwd=image)

        built = [p for p in find(image, "Output/*.exe") if p.is_file()]
        if not built:
            raise ToolExecutionError(
                f"InnoSetup produced no installer in {image / 'Output'}",
                code="missing_output",
            )
        outputs = []
        for exe in built:
            dest = self.context.destination / exe.name
            shutil.move(str(exe), str(dest))
            outputs.append(dest)
        return outputs[0]


PACKAGER = Packager(
    name="windows-innosetup",
    create_hooks=lambda context: InnoSetupTask(context).hooks(),
    description="Windows installer built with InnoSetup (.exe)",
    options=(
        INNOSETUP_TOOL,
        INNOSETUP_APPID,
        INNOSETUP_ICON,
        INNOSETUP_LICENSE,
        INNOSETUP_PARAMETERS,
        INNOSETUP_TEMPLATE,
    ),
    templates=(ISS_TEMPLATE,),
)

__all__ = ["PACKAGER", "InnoSetupTask", "find_exec_name"]
