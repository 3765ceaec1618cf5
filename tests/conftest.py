"""Shared fixtures: fake application and runtime trees, contexts."""

import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest

from imagepack.config import Settings
from imagepack.context import ExecutionContext, Packager
from imagepack.options import Configuration

APP_CONF = 'default_options="-J-Xmx1g"\n#jdkhome="/path/to/jdk"\n'


def make_app(root: Path, name: str = "myapp") -> Path:
    """Create a minimal application tree under ``root``."""
    (root / "bin").mkdir(parents=True)
    launcher = root / "bin" / name
    launcher.write_text("#!/bin/sh\necho app\n")
    launcher.chmod(0o755)
    (root / "bin" / f"{name}.exe").write_bytes(b"MZ")
    (root / "bin" / f"{name}64.exe").write_bytes(b"MZ")
    (root / "etc").mkdir()
    (root / "etc" / f"{name}.conf").write_text(APP_CONF)
    (root / "platform" / "lib").mkdir(parents=True)
    (root / "platform" / "lib" / "boot.jar").write_bytes(b"jar")
    return root


def zip_tree(source: Path, archive: Path) -> Path:
    """Zip ``source`` so that its name is the archive's top-level directory."""
    with zipfile.ZipFile(archive, "w") as zf:
        for path in sorted(source.rglob("*")):
            arcname = path.relative_to(source.parent).as_posix()
            if path.is_dir():
                zf.write(path, arcname + "/")
            else:
                zf.write(path, arcname)
    return archive


@pytest.fixture
def app_dir(tmp_path: Path) -> Path:
    """Application directory with launchers, config and a platform cluster."""
    return make_app(tmp_path / "input" / "myapp")


@pytest.fixture
def app_zip(tmp_path: Path, app_dir: Path) -> Path:
    """The application packed as a zip with one top-level directory."""
    return zip_tree(app_dir, tmp_path / "myapp.zip")


@pytest.fixture
def runtime_dir(tmp_path: Path) -> Path:
    """A fake x64 JDK; the directory name carries the architecture."""
    root = tmp_path / "runtimes" / "jdk-17_linux-x64"
    (root / "bin").mkdir(parents=True)
    java = root / "bin" / "java"
    java.write_text("#!/bin/sh\n")
    java.chmod(0o755)
    (root / "lib").mkdir()
    (root / "lib" / "modules").write_bytes(b"modules")
    return root


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(tmp_dir=tmp_path / "scratch", output_dir=tmp_path / "out")


@pytest.fixture
def make_context(
    tmp_path: Path, settings: Settings
) -> Callable[..., ExecutionContext]:
    """Factory for contexts with a name and version preset."""

    def factory(
        packager: Packager,
        input_path: Path | None = None,
        values: dict[str, str] | None = None,
        image_only: bool = True,
    ) -> ExecutionContext:
        configuration = Configuration(
            {"package.name": "My App", "package.version": "1.2", **(values or {})}
        )
        return ExecutionContext(
            packager,
            input_path,
            configuration,
            tmp_path / "out",
            image_only=image_only,
            settings=settings,
        )

    return factory


@pytest.fixture
def app_factory() -> Callable[..., Path]:
    """``make_app`` for tests that need several application trees."""
    return make_app


@pytest.fixture
def zipper() -> Callable[[Path, Path], Path]:
    """``zip_tree`` for tests that pack their own trees."""
    return zip_tree
