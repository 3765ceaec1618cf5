"""Smoke tests for the CLI.

These tests verify basic CLI functionality without requiring external
packaging tools; builds use the self-extracting tar backend, which needs
none.
"""

import json
from pathlib import Path

import yaml
from typer.testing import CliRunner

from imagepack import __version__
from imagepack.cli import app

runner = CliRunner()

NAME_VERSION = ["-P", "package.name=My App", "-P", "package.version=1.2"]


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self) -> None:
        """CLI --help should return exit code 0."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "imagepack" in result.stdout

    def test_version_flag(self) -> None:
        """CLI --version should print version and exit 0."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_short_version_flag(self) -> None:
        """CLI -V should print version and exit 0."""
        result = runner.invoke(app, ["-V"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_no_args_shows_help(self) -> None:
        """CLI with no args should show help."""
        result = runner.invoke(app, [])
        assert "Usage:" in result.stdout


class TestCLIConfig:
    """Test CLI config command."""

    def test_config_command(self) -> None:
        """CLI config should show all configuration fields."""
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Output directory" in result.stdout
        assert "Temp directory" in result.stdout
        assert "Log level" in result.stdout
        assert "Verbose" in result.stdout

    def test_config_json(self) -> None:
        """CLI config --json should output valid JSON."""
        result = runner.invoke(app, ["config", "--json"])
        assert result.exit_code == 0
        parsed = json.loads(result.stdout)
        assert "output_dir" in parsed
        assert "log_level" in parsed


class TestCLIListing:
    """Test packagers, options and templates commands."""

    def test_packagers(self) -> None:
        result = runner.invoke(app, ["packagers"])
        assert result.exit_code == 0
        for name in (
            "linux-deb",
            "linux-rpm",
            "linux-tar-script",
            "macos-app",
            "macos-pkg",
            "windows-innosetup",
        ):
            assert name in result.stdout

    def test_options_for_packager(self) -> None:
        result = runner.invoke(app, ["options", "--type", "linux-deb"])
        assert result.exit_code == 0
        assert "package.name" in result.stdout
        assert "package.deb.maintainer" in result.stdout
        assert "package.rpm.group" not in result.stdout

    def test_options_all(self) -> None:
        result = runner.invoke(app, ["options"])
        assert result.exit_code == 0
        assert "package.rpm.group" in result.stdout
        assert "package.innosetup.tool" in result.stdout

    def test_unknown_packager(self) -> None:
        result = runner.invoke(app, ["options", "-t", "linux-flatpak"])
        assert result.exit_code == 1
        assert "unknown_packager" in result.stdout

    def test_templates_list(self) -> None:
        result = runner.invoke(app, ["templates", "-t", "linux-rpm"])
        assert result.exit_code == 0
        assert "rpm.spec.template" in result.stdout

    def test_templates_save(self, tmp_path: Path) -> None:
        """Saved templates can be edited and passed back as overrides."""
        result = runner.invoke(
            app, ["templates", "-t", "linux-deb", "--save", str(tmp_path / "tpl")]
        )
        assert result.exit_code == 0
        assert "Saved 3 template(s)" in result.stdout
        control = tmp_path / "tpl" / "deb.control.template"
        assert "${DEB_PACKAGE}" in control.read_text()


class TestCLIBuild:
    """Test build and package commands."""

    def test_build_tar_script(self, tmp_path: Path, app_dir: Path) -> None:
        out = tmp_path / "dist"
        result = runner.invoke(
            app,
            [
                "build",
                "-t",
                "linux-tar-script",
                "-i",
                str(app_dir),
                *NAME_VERSION,
                "-o",
                str(out),
            ],
        )
        assert result.exit_code == 0, result.stdout
        assert "Created" in result.stdout
        assert (out / "My_App-1.2.noarch.sh").is_file()

    def test_build_from_archive_with_config(
        self, tmp_path: Path, app_zip: Path
    ) -> None:
        """Relative paths in the configuration file resolve beside it."""
        merge = tmp_path / "merge"
        merge.mkdir()
        (merge / "NOTICE").write_text("notice")
        config = tmp_path / "imagepack.yaml"
        config.write_text(
            'package.name: My App\npackage.version: "2.0"\npackage.merge: merge\n'
        )
        out = tmp_path / "dist"
        result = runner.invoke(
            app,
            [
                "build",
                "-t",
                "linux-tar-script",
                "-i",
                str(app_zip),
                "-c",
                str(config),
                "-o",
                str(out),
                "--image-only",
            ],
        )
        assert result.exit_code == 0, result.stdout
        image = out / "My_App-2.0.noarch"
        assert (image / "APPDIR" / "bin" / "myapp").is_file()
        assert (image / "NOTICE").read_text() == "notice"

    def test_unused_option_is_reported(self, tmp_path: Path, app_dir: Path) -> None:
        result = runner.invoke(
            app,
            [
                "build",
                "-t",
                "linux-tar-script",
                "-i",
                str(app_dir),
                *NAME_VERSION,
                "-P",
                "package.deb.section=web",
                "-o",
                str(tmp_path / "dist"),
                "--image-only",
            ],
        )
        assert result.exit_code == 0, result.stdout
        assert "package.deb.section" in result.stdout

    def test_build_image_then_package(self, tmp_path: Path, app_dir: Path) -> None:
        out = tmp_path / "dist"
        common = ["-t", "linux-tar-script", *NAME_VERSION, "-o", str(out)]
        result = runner.invoke(
            app, ["build", *common, "-i", str(app_dir), "--image-only"]
        )
        assert result.exit_code == 0, result.stdout
        image = out / "My_App-1.2.noarch"
        assert image.is_dir()
        assert not (out / "My_App-1.2.noarch.sh").exists()

        manifest = tmp_path / "manifest.json"
        result = runner.invoke(
            app,
            ["package", *common, "--image", str(image), "--manifest", str(manifest)],
        )
        assert result.exit_code == 0, result.stdout
        data = json.loads(manifest.read_text())
        assert data["artifact"]["filename"] == "My_App-1.2.noarch.sh"
        assert data["artifact"]["packager"] == "linux-tar-script"
        assert data["image"] == str(image)
        assert data["options"]["package.name"] == "My App"

    def test_missing_input(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app,
            [
                "build",
                "-t",
                "linux-tar-script",
                "-i",
                str(tmp_path / "missing"),
                *NAME_VERSION,
                "-o",
                str(tmp_path / "dist"),
            ],
        )
        assert result.exit_code == 1
        assert "invalid_input" in result.stdout

    def test_existing_image(self, tmp_path: Path, app_dir: Path) -> None:
        out = tmp_path / "dist"
        (out / "My_App-1.2.noarch").mkdir(parents=True)
        result = runner.invoke(
            app,
            [
                "build",
                "-t",
                "linux-tar-script",
                "-i",
                str(app_dir),
                *NAME_VERSION,
                "-o",
                str(out),
            ],
        )
        assert result.exit_code == 1
        assert "image_exists" in result.stdout

    def test_bad_property(self, tmp_path: Path, app_dir: Path) -> None:
        result = runner.invoke(
            app,
            ["build", "-t", "linux-deb", "-i", str(app_dir), "-P", "novalue"],
        )
        assert result.exit_code == 1
        assert "invalid_config" in result.stdout

    def test_save_config_round_trip(self, tmp_path: Path, app_dir: Path) -> None:
        """Saved options can be passed back with ``-c``."""
        saved = tmp_path / "saved" / "imagepack.yaml"
        common = ["-t", "linux-tar-script", "-i", str(app_dir), "--image-only"]
        result = runner.invoke(
            app,
            [
                "build",
                *common,
                *NAME_VERSION,
                "-o",
                str(tmp_path / "dist"),
                "--save-config",
                str(saved),
            ],
        )
        assert result.exit_code == 0, result.stdout
        assert yaml.safe_load(saved.read_text()) == {
            "package.name": "My App",
            "package.version": "1.2",
        }

        result = runner.invoke(
            app, ["build", *common, "-c", str(saved), "-o", str(tmp_path / "again")]
        )
        assert result.exit_code == 0, result.stdout
        assert (tmp_path / "again" / "My_App-1.2.noarch").is_dir()
