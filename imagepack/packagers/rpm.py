"""RPM package backend (``linux-rpm``).

The image is an rpmbuild top directory with a pre-populated build root::

    <pkg>-<version>.<arch>/
        BUILDROOT/<pkg>-<version>-0.<arch>/usr/bin/<exec>
        BUILDROOT/<pkg>-<version>-0.<arch>/usr/lib/<pkg>/
        BUILDROOT/<pkg>-<version>-0.<arch>/usr/share/...
        RPMS/
        SPECS/<pkg>.spec
"""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path

from imagepack.architecture import Architecture
from imagepack.context import ExecutionContext, Packager
from imagepack.errors import AmbiguousTreeError, ConfigurationError, ToolExecutionError
from imagepack.files.patterns import find
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

RPM_SUMMARY = Option("package.rpm.summary", help="Summary line (default: name)")
RPM_LICENSE = Option("package.rpm.license", "Unknown", "License tag")
RPM_GROUP = Option("package.rpm.group", help="Group tag")
RPM_VENDOR = Option("package.rpm.vendor", help="Vendor (default: publisher)")
RPM_MAINTAINER = Option("package.rpm.maintainer", help="Packager tag")
RPM_CATEGORY = Option(
    "package.rpm.category", "Development;Java;IDE;", "Desktop file categories"
)
RPM_WMCLASS = Option("package.rpm.wmclass", help="StartupWMClass for the desktop file")
RPM_ICON = Option("package.rpm.icon", help="48x48 PNG icon", kind=OptionKind.PATH)
RPM_SVG_ICON = Option("package.rpm.svg-icon", help="SVG icon", kind=OptionKind.PATH)
RPM_SPEC_TEMPLATE = Option(
    "package.rpm.spec-template", help="Override spec template", kind=OptionKind.PATH
)
RPM_LAUNCHER_TEMPLATE = Option(
    "package.rpm.launcher-template",
    help="Override launcher template",
    kind=OptionKind.PATH,
)
RPM_DESKTOP_TEMPLATE = Option(
    "package.rpm.desktop-template",
    help="Override desktop file template",
    kind=OptionKind.PATH,
)

SPEC_TEMPLATE = Template("rpm.spec.template", RPM_SPEC_TEMPLATE)
LAUNCHER_TEMPLATE = Template("rpm.launcher.template", RPM_LAUNCHER_TEMPLATE)
DESKTOP_TEMPLATE = Template("rpm.desktop.template", RPM_DESKTOP_TEMPLATE)

ARCH_LABELS = {Architecture.X86_64: "x86_64", Architecture.AARCH64: "aarch64"}
NO_ARCH = "noarch"
RUNTIME_RECOMMENDS = "java-devel >= 17"

_VERSION_CHARS = re.compile(r"[^a-z0-9+.~]")


def sanitize_rpm_version(version: str) -> str:
    """Lowercase and replace characters outside ``[a-z0-9+.~]`` with ``~``."""
    return _VERSION_CHARS.sub("~", version.lower())


class RpmTask:
    """RPM image layout and package build for one context."""

    def __init__(self, context: ExecutionContext) -> None:
        self.context = context
        self.package_name = sanitize_package_name(context.require_value(PACKAGE_NAME))
        if len(self.package_name) < 2 or not self.package_name[0].isalpha():
            raise ConfigurationError(f"Invalid RPM package name '{self.package_name}'")
        self.package_version = sanitize_rpm_version(
            context.get_value(PACKAGE_VERSION) or "1.0"
        )
        self.package_arch = resolve_arch_label(context, ARCH_LABELS, NO_ARCH)
        self.build_name = (
            f"{self.package_name}-{self.package_version}-0.{self.package_arch}"
        )

    def hooks(self) -> ImageHooks:
        return ImageHooks(
            customize_image=self.customize_image,
            build_package=self.build_package,
            image_name=self.image_name,
            app_path=self.app_path,
            root_path=self.root_path,
            finalize_image=self.finalize_image,
            check_package_requirements=self.check_package_requirements,
        )

    def image_name(self, input_path: Path) -> str:
        return f"{self.package_name}-{self.package_version}.{self.package_arch}"

    def build_root(self, image: Path) -> Path:
        return image / "BUILDROOT" / self.build_name

    def app_path(self, image: Path) -> Path:
        return self.build_root(image) / "usr" / "lib" / self.package_name

    def root_path(self, image: Path, app: Path) -> Path:
        roots = find(image, "BUILDROOT/*")
        if len(roots) != 1:
            raise AmbiguousTreeError(
                f"Expected one build root in {image / 'BUILDROOT'}, found {len(roots)}",
                candidates=[str(r) for r in roots],
            )
        return roots[0]

    def check_package_requirements(self) -> None:
        self.context.require_tools("rpm", "rpmbuild")

    def customize_image(self, image: Path) -> None:
        build_root = self.build_root(image)
        exec_name = find_launcher(self.app_path(image) / "bin")
        share = build_root / "usr" / "share"
        icons = share / "icons" / "hicolor"

        launcher = write_text(
            build_root / "usr" / "bin" / exec_name,
            self.context.replace_tokens(
                LAUNCHER_TEMPLATE.load(self.context),
                {"PACKAGE": f"/usr/lib/{self.package_name}", "EXEC": exec_name},
            ),
        )
        set_executable(self.context, launcher)

        install_icon(
            self.context,
            RPM_ICON,
            "imagepack.png",
            icons / "48x48" / "apps" / f"{self.package_name}.png",
        )
        install_icon(
            self.context,
            RPM_SVG_ICON,
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
                    "CATEGORY": self.context.get_value(RPM_CATEGORY) or "",
                    "WMCLASS": self.context.get_value(RPM_WMCLASS) or exec_name,
                },
            ),
        )

        (image / "RPMS").mkdir(exist_ok=True)
        (image / "SPECS").mkdir(exist_ok=True)

    def file_list(self, image: Path) -> list[str]:
        """Entries for the spec's ``%files`` section.

        The application directory is listed as a whole; everything outside
        ``usr/lib`` is listed file by file.
        """
        build_root = self.build_root(image)
        lib_dir = build_root / "usr" / "lib"
        entries: list[Path] = []
        for path in build_root.rglob("*"):
            if path.is_dir() and not path.is_symlink():
                if path.parent == lib_dir:
                    entries.append(path)
            elif not path.is_relative_to(lib_dir):
                entries.append(path)
        return sorted("/" + p.relative_to(build_root).as_posix() for p in entries)

    def finalize_image(self, image: Path) -> None:
        name = self.context.require_value(PACKAGE_NAME)
        description = self.context.get_value(PACKAGE_DESCRIPTION) or name
        summary = self.context.get_value(RPM_SUMMARY) or description.splitlines()[0]
        vendor = self.context.get_value(RPM_VENDOR) or self.context.get_value(
            PACKAGE_PUBLISHER
        )
        recommends = None
        if self.context.get_value(PACKAGE_RUNTIME) is None:
            recommends = RUNTIME_RECOMMENDS

        spec = self.context.replace_tokens(
            SPEC_TEMPLATE.load(self.context),
            {
                "RPM_PACKAGE": self.package_name,
                "RPM_VERSION": self.package_version,
                "RPM_ARCH": self.package_arch,
                "RPM_SUMMARY_LINE": optional_line("Summary: ", summary),
                "RPM_LICENSE_LINE": optional_line(
                    "License: ", self.context.get_value(RPM_LICENSE)
                ),
                "RPM_GROUP_LINE": optional_line(
                    "Group: ", self.context.get_value(RPM_GROUP)
                ),
                "RPM_URL_LINE": optional_line(
                    "URL: ", self.context.get_value(PACKAGE_URL)
                ),
                "RPM_VENDOR_LINE": optional_line("Vendor: ", vendor),
                "RPM_MAINTAINER_LINE": optional_line(
                    "Packager: ", self.context.get_value(RPM_MAINTAINER)
                ),
                "RPM_RECOMMENDS_LINE": optional_line("Recommends: ", recommends),
                "RPM_DESCRIPTION": description,
                "RPM_FILES": "\n".join(f'"{entry}"' for entry in self.file_list(image)),
            },
        )
        write_text(image / "SPECS" / f"{self.package_name}.spec", spec)

    def build_package(self, image: Path) -> Path:
        spec = image / "SPECS" / f"{self.package_name}.spec"
        self.context.run_tool(
            "rpmbuild",
            "--target",
            self.package_arch,
            "--define",
            f"_topdir {image}",
            "-bb",
            spec,
            "--noclean",
        )
        built = find(image, f"RPMS/{self.package_arch}/*.rpm")
        if not built:
            raise ToolExecutionError(
                f"rpmbuild produced no package in {image / 'RPMS'}",
                code="missing_output",
            )
        outputs = []
        for rpm in built:
            dest = self.context.destination / rpm.name
            shutil.move(str(rpm), str(dest))
            outputs.append(dest)
        return outputs[0]


PACKAGER = Packager(
    name="linux-rpm",
    create_hooks=lambda context: RpmTask(context).hooks(),
    description="RPM package (.rpm)",
    options=(
        RPM_SUMMARY,
        RPM_LICENSE,
        RPM_GROUP,
        RPM_VENDOR,
        RPM_MAINTAINER,
        RPM_CATEGORY,
        RPM_WMCLASS,
        RPM_ICON,
        RPM_SVG_ICON,
        RPM_SPEC_TEMPLATE,
        RPM_LAUNCHER_TEMPLATE,
        RPM_DESKTOP_TEMPLATE,
    ),
    templates=(SPEC_TEMPLATE, LAUNCHER_TEMPLATE, DESKTOP_TEMPLATE),
)

__all__ = ["PACKAGER", "RpmTask", "sanitize_rpm_version"]
