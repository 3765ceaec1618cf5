"""Tests for configuration module."""

import json
import os
from pathlib import Path
from unittest.mock import patch

from imagepack.config import Settings, get_settings, print_settings_json


class TestSettings:
    """Test Settings class."""

    def test_default_settings(self) -> None:
        """Settings should have sensible defaults."""
        env = {k: v for k, v in os.environ.items() if not k.startswith("IMAGEPACK_")}
        with patch.dict(os.environ, env, clear=True):
            settings = Settings(_env_file=None)

        assert settings.tmp_dir is None
        assert settings.log_level == "INFO"
        assert settings.verbose is False
        assert settings.effective_log_level == "INFO"

    def test_settings_from_env(self) -> None:
        """Settings should be loadable from environment variables."""
        with patch.dict(
            os.environ,
            {
                "IMAGEPACK_LOG_LEVEL": "WARNING",
                "IMAGEPACK_TMP_DIR": "/tmp/imagepack-test",
                "IMAGEPACK_OUTPUT_DIR": "/tmp/imagepack-out",
            },
        ):
            settings = Settings()
            assert settings.log_level == "WARNING"
            assert settings.tmp_dir == Path("/tmp/imagepack-test")
            assert settings.output_dir == Path("/tmp/imagepack-out")

    def test_verbose_forces_debug(self) -> None:
        """Verbose output should force DEBUG logging."""
        with patch.dict(os.environ, {"IMAGEPACK_VERBOSE": "true"}):
            settings = Settings()
            assert settings.effective_log_level == "DEBUG"


class TestGetSettings:
    """Test get_settings function."""

    def test_get_settings_returns_settings(self) -> None:
        """get_settings should return a Settings instance."""
        settings = get_settings()
        assert isinstance(settings, Settings)


class TestPrintSettingsJson:
    """Test print_settings_json function."""

    def test_print_settings_json(self) -> None:
        """print_settings_json should return valid JSON."""
        settings = Settings()
        json_str = print_settings_json(settings)

        parsed = json.loads(json_str)

        assert "output_dir" in parsed
        assert "tmp_dir" in parsed
        assert "log_level" in parsed
        assert "verbose" in parsed

    def test_print_settings_json_default(self) -> None:
        """print_settings_json without args should use default settings."""
        json_str = print_settings_json()
        parsed = json.loads(json_str)
        assert "log_level" in parsed
