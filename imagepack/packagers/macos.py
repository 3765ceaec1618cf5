"""macOS application bundle backends (``macos-app`` and ``macos-pkg``).

Image layout::

    <name>-<version>-macOS[-<arch>]-app[-pkg]/
        <Bundle>.app/Contents/Info.plist
        <Bundle>.app/Contents/MacOS/<exec>          compiled Swift launcher
        <Bundle>.app/Contents/Resources/<exec>/     application
        <Bundle>.app/Contents/Resources/<exec>.icns
        <Bundle>.app/Contents/Home/                 runtime (optional)
        macos-launcher-src/                         Swift package
        sandbox.plist                               signing entitlements
        nativeBinaries, jarBinaries                 files to sign

Building compiles the launcher with ``swift build``, signs nested JAR
binaries, native binaries and the bundle when a signing identity is set,
and (``macos-pkg``) wraps the bundle with ``pkgbuild``.
"""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path

from imagepack.architecture import Architecture
from imagepack.context import ExecutionContext, Packager
from imagepack.errors import ToolExecutionError
from imagepack.files.archives import process_jar_contents
from imagepack.files.patterns import find
from imagepack.image.pipeline import ImageHooks, default_image_name
from imagepack.options import PACKAGE_NAME, PACKAGE_VERSION, Option
from imagepack.packagers.common import (
    find_launcher,
    install_icon,
    locate_app,
    resolve_arch_label,
    set_executable,
    write_text,
)
from imagepack.templates.resources import Template
from imagepack.types import OptionKind

logger = logging.getLogger(__name__)

APP_DIR = "APPDIR"
LAUNCHER_SRC_DIRNAME = "macos-launcher-src"
ENTITLEMENTS_FILENAME = "sandbox.plist"
NATIVE_BIN_FILENAME = "nativeBinaries"
JAR_BIN_FILENAME = "jarBinaries"
JAR_INTERNAL_BIN_GLOB = "**/*.{dylib,jnilib}"
BUNDLE_NAME_LIMIT = 16

ARCH_X86_64 = "x86_64"
ARCH_ARM64 = "arm64"
ARCH_UNIVERSAL = "universal"
ARCH_LABELS = {Architecture.X86_64: ARCH_X86_64, Architecture.AARCH64: ARCH_ARM64}

MACOS_BUNDLE_NAME = Option(
    "package.macos.bundlename", help="Bundle name (default: package name)"
)
MACOS_BUNDLE_ID = Option("package.macos.bundleid", help="CFBundleIdentifier")
MACOS_ICON = Option(
    "package.macos.icon", help="Bundle .icns icon", kind=OptionKind.PATH
)
MACOS_CODESIGN_ID = Option(
    "package.macos.codesign-id", help="codesign identity (signing skipped if unset)"
)
MACOS_PKGBUILD_ID = Option(
    "package.macos.pkgbuild-id", help="pkgbuild signing identity (pkg only)"
)
MACOS_SIGNING_FILES = Option(
    "package.macos.signing-files",
    "{**/*.dylib,**/*.jnilib,**/nativeexecution/MacOSX-*/*,"
    "Contents/Home/bin/*,Contents/Home/lib/jspawnhelper}",
    "Pattern of native binaries to sign, relative to the bundle",
)
MACOS_SIGNING_JARS = Option(
    "package.macos.signing-jars",
    "{**/jna-5*.jar,**/junixsocket-native-common-*.jar,"
    "**/launcher-common-*.jar,**/jansi-*.jar,**/nbi-engine.jar}",
    "Pattern of JARs containing native binaries to sign",
)
MACOS_INFO_TEMPLATE = Option(
    "package.macos.info-template",
    help="Override Info.plist template",
    kind=OptionKind.PATH,
)
MACOS_LAUNCHER_TEMPLATE = Option(
    "package.macos.launcher-template",
    help="Override launcher main.swift template",
    kind=OptionKind.PATH,
)
MACOS_LAUNCHER_PACKAGE_TEMPLATE = Option(
    "package.macos.launcher-package-template",
    help="Override launcher Package.swift template",
    kind=OptionKind.PATH,
)
MACOS_ENTITLEMENTS_TEMPLATE = Option(
    "package.macos.entitlements-template",
    help="Override signing entitlements template",
    kind=OptionKind.PATH,
)

INFO_TEMPLATE = Template("macos.Info.plist.template", MACOS_INFO_TEMPLATE)
LAUNCHER_TEMPLATE = Template("macos.main.swift.template", MACOS_LAUNCHER_TEMPLATE)
LAUNCHER_PACKAGE_TEMPLATE = Template(
    "macos.Package.swift.template", MACOS_LAUNCHER_PACKAGE_TEMPLATE
)
ENTITLEMENTS_TEMPLATE = Template(
    "macos.sandbox.plist.template", MACOS_ENTITLEMENTS_TEMPLATE
)

_BUNDLE_NAME_CHARS = re.compile(r'[\\/:*?"<>|]')
_BUNDLE_ID_CHARS = re.compile(r"[^a-zA-Z0-9\-.]")


def sanitize_bundle_name(value: str) -> str:
    return _BUNDLE_NAME_CHARS.sub("_", value)[:BUNDLE_NAME_LIMIT]


def _is_renamed_app(directory: Path) -> bool:
    return (directory / "bin" / directory.name).is_file()


class MacBundleTask:
    """macOS bundle layout and build, optionally wrapped in a pkg."""

    def __init__(self, context: ExecutionContext, pkg: bool = False) -> None:
        self.context = context
        self.pkg = pkg
        name = context.require_value(PACKAGE_NAME)
        self.bundle_name = sanitize_bundle_name(
            context.get_value(MACOS_BUNDLE_NAME) or name
        )
        self.arch = resolve_arch_label(context, ARCH_LABELS, ARCH_UNIVERSAL)
        if self.arch not in (ARCH_X86_64, ARCH_ARM64, ARCH_UNIVERSAL):
            context.warn(f"Unknown macOS architecture '{self.arch}', using universal")
            self.arch = ARCH_UNIVERSAL
        self.base_name = default_image_name(context)

    def hooks(self) -> ImageHooks:
        return ImageHooks(
            customize_image=self.customize_image,
            build_package=self.build_package,
            image_name=self.image_name,
            app_path=self.app_path,
            runtime_path=self.runtime_path,
            root_path=self.root_path,
            finalize_image=self.finalize_image,
            check_package_requirements=self.check_package_requirements,
        )

    def image_name(self, input_path: Path) -> str:
        if self.arch == ARCH_UNIVERSAL:
            name = f"{self.base_name}-macOS-app"
        else:
            name = f"{self.base_name}-macOS-{self.arch}-app"
        return f"{name}-pkg" if self.pkg else name

    def bundle(self, image: Path) -> Path:
        return image / f"{self.bundle_name}.app"

    def resources(self, image: Path) -> Path:
        return self.bundle(image) / "Contents" / "Resources"

    def app_path(self, image: Path) -> Path:
        resources = self.resources(image)
        return locate_app(resources, resources / APP_DIR, _is_renamed_app)

    def runtime_path(self, image: Path, app: Path) -> Path:
        return self.bundle(image) / "Contents" / "Home"

    def root_path(self, image: Path, app: Path) -> Path:
        return self.bundle(image)

    def check_package_requirements(self) -> None:
        tools = ["swift"]
        if self.context.get_value(MACOS_CODESIGN_ID):
            tools.append("codesign")
        if self.pkg:
            tools.append("pkgbuild")
        self.context.require_tools(*tools)

    def customize_image(self, image: Path) -> None:
        resources = self.resources(image)
        contents = resources.parent
        exec_name = find_launcher(resources / APP_DIR / "bin")
        (resources / APP_DIR).rename(resources / exec_name)

        (contents / "MacOS").mkdir()
        install_icon(
            self.context, MACOS_ICON, "imagepack.icns", resources / f"{exec_name}.icns"
        )

        name = self.context.require_value(PACKAGE_NAME)
        tokens = {
            "BUNDLE_NAME": self.bundle_name,
            "BUNDLE_DISPLAY": name,
            "BUNDLE_VERSION": self.context.require_value(PACKAGE_VERSION),
            "BUNDLE_EXEC": exec_name,
            "BUNDLE_ID": self.context.get_value(MACOS_BUNDLE_ID)
            or _BUNDLE_ID_CHARS.sub("-", self.bundle_name),
            "BUNDLE_ICON": f"{exec_name}.icns",
        }
        write_text(
            contents / "Info.plist",
            self.context.replace_tokens(INFO_TEMPLATE.load(self.context), tokens),
        )

        launcher_src = image / LAUNCHER_SRC_DIRNAME
        write_text(
            launcher_src / "Package.swift",
            self.context.replace_tokens(
                LAUNCHER_PACKAGE_TEMPLATE.load(self.context), tokens
            ),
        )
        write_text(
            launcher_src / "Sources" / "AppLauncher" / "main.swift",
            self.context.replace_tokens(LAUNCHER_TEMPLATE.load(self.context), tokens),
        )

    def _write_list(self, image: Path, filename: str, pattern: str) -> None:
        matches = [p for p in find(self.bundle(image), pattern) if p.is_file()]
        lines = [p.relative_to(image).as_posix() for p in matches]
        write_text(image / filename, "".join(f"{line}\n" for line in lines))
        logger.debug("Listed %d file(s) in %s", len(lines), filename)

    def finalize_image(self, image: Path) -> None:
        write_text(
            image / ENTITLEMENTS_FILENAME,
            self.context.replace_tokens(ENTITLEMENTS_TEMPLATE.load(self.context)),
        )
        native_pattern = self.context.get_value(MACOS_SIGNING_FILES) or ""
        jar_pattern = self.context.get_value(MACOS_SIGNING_JARS) or ""
        self._write_list(image, NATIVE_BIN_FILENAME, native_pattern)
        self._write_list(image, JAR_BIN_FILENAME, jar_pattern)

    def compile_launcher(self, image: Path) -> Path:
        launcher_src = image / LAUNCHER_SRC_DIRNAME
        if self.arch == ARCH_UNIVERSAL:
            arch_args = ["--arch", ARCH_ARM64, "--arch", ARCH_X86_64]
        else:
            arch_args = ["--arch", self.arch]
        self.context.run_tool(
            "swift", "build", "--configuration", "release", *arch_args, cwd=launcher_src
        )
        output = find(launcher_src / ".build", "**/{R,r}elease/AppLauncher")
        if not output:
            raise ToolExecutionError(
                f"swift build produced no launcher in {launcher_src}",
                code="missing_output",
            )
        return output[0]

    def _listed_files(self, image: Path, filename: str) -> list[Path]:
        listing = image / filename
        if not listing.is_file():
            return []
        return [
            image / line
            for line in listing.read_text(encoding="utf-8").splitlines()
            if line.strip()
        ]

    def codesign(self, path: Path, entitlements: Path, identity: str) -> None:
        self.context.run_tool(
            "codesign",
            "--force",
            "--timestamp",
            "--options=runtime",
            "--entitlements",
            entitlements,
            "-s",
            identity,
            "-v",
            path,
        )

    def build_bundle(self, image: Path) -> Path:
        bundle = self.bundle(image)
        exec_name = self.app_path(image).name
        launcher = bundle / "Contents" / "MacOS" / exec_name
        shutil.copy2(self.compile_launcher(image), launcher)
        set_executable(self.context, launcher)

        identity = self.context.get_value(MACOS_CODESIGN_ID)
        if not identity:
            self.context.warn("No codesign identity configured, bundle is unsigned")
            return bundle

        entitlements = image / ENTITLEMENTS_FILENAME

        def sign_entry(file: Path, entry: str) -> bool:
            self.codesign(file, entitlements, identity)
            return True

        for jar in self._listed_files(image, JAR_BIN_FILENAME):
            process_jar_contents(
                jar, JAR_INTERNAL_BIN_GLOB, sign_entry, self.context.settings.tmp_dir
            )
        for native in self._listed_files(image, NATIVE_BIN_FILENAME):
            self.codesign(native, entitlements, identity)
        self.codesign(bundle, entitlements, identity)
        return bundle

    def build_package(self, image: Path) -> Path:
        bundle = self.build_bundle(image)
        if not self.pkg:
            return bundle

        version = self.context.require_value(PACKAGE_VERSION)
        suffix = "" if self.arch == ARCH_UNIVERSAL else f"-{self.arch}"
        output = self.context.destination / f"{self.base_name}{suffix}.pkg"
        cmd: list[str | Path] = [
            "pkgbuild",
            "--component",
            bundle,
            "--version",
            version,
            "--install-location",
            "/Applications",
        ]
        identity = self.context.get_value(MACOS_PKGBUILD_ID)
        if identity:
            cmd += ["--sign", identity]
        else:
            self.context.warn("No pkgbuild identity configured, pkg is unsigned")
        cmd.append(output)
        self.context.run_tool(*cmd)
        return output


_OPTIONS = (
    MACOS_BUNDLE_NAME,
    MACOS_BUNDLE_ID,
    MACOS_ICON,
    MACOS_CODESIGN_ID,
    MACOS_SIGNING_FILES,
    MACOS_SIGNING_JARS,
    MACOS_INFO_TEMPLATE,
    MACOS_LAUNCHER_TEMPLATE,
    MACOS_LAUNCHER_PACKAGE_TEMPLATE,
    MACOS_ENTITLEMENTS_TEMPLATE,
)
_TEMPLATES = (
    INFO_TEMPLATE,
    LAUNCHER_TEMPLATE,
    LAUNCHER_PACKAGE_TEMPLATE,
    ENTITLEMENTS_TEMPLATE,
)

APP_PACKAGER = Packager(
    name="macos-app",
    create_hooks=lambda context: MacBundleTask(context).hooks(),
    description="macOS application bundle (.app)",
    options=_OPTIONS,
    templates=_TEMPLATES,
)

PKG_PACKAGER = Packager(
    name="macos-pkg",
    create_hooks=lambda context: MacBundleTask(context, pkg=True).hooks(),
    description="macOS installer package (.pkg)",
    options=(*_OPTIONS, MACOS_PKGBUILD_ID),
    templates=_TEMPLATES,
)

__all__ = ["APP_PACKAGER", "PKG_PACKAGER", "MacBundleTask", "sanitize_bundle_name"]
