"""Tests for image/tools.py module.

Uses mocked subprocess and PATH lookups; no external tools are run.
"""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from imagepack.errors import RequirementError, ToolExecutionError
from imagepack.image.tools import check_tool, find_tool, require_tools, run_tool


class TestFindTool:
    """Tests for find_tool and require_tools."""

    def test_found(self):
        with patch("imagepack.image.tools.shutil.which", return_value="/usr/bin/rpm"):
            assert find_tool("rpm") == Path("/usr/bin/rpm")

    def test_not_found(self):
        with patch("imagepack.image.tools.shutil.which", return_value=None):
            assert find_tool("rpm") is None

    def test_require_all_present(self):
        with patch("imagepack.image.tools.shutil.which", return_value="/bin/x"):
            require_tools("dpkg-deb", "fakeroot")

    def test_require_names_missing(self):
        """Every missing tool is named in the error."""

        def which(name):
            return "/usr/bin/rpm" if name == "rpm" else None

        with patch("imagepack.image.tools.shutil.which", side_effect=which):
            with pytest.raises(RequirementError) as exc_info:
                require_tools("rpm", "rpmbuild", "swift")

        message = str(exc_info.value)
        assert "rpmbuild" in message
        assert "swift" in message
        assert "rpm," not in message
        assert exc_info.value.code == "missing_requirement"


class TestRunTool:
    """Tests for run_tool and check_tool."""

    def test_success(self, tmp_path: Path):
        with patch("imagepack.image.tools.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0)
            result = run_tool(["dpkg-deb", "--build", "my image"], cwd=tmp_path)

        assert result.success
        assert result.command == "dpkg-deb --build 'my image'"
        assert result.cwd == tmp_path
        assert result.duration_seconds >= 0
        mock_run.assert_called_once_with(
            ["dpkg-deb", "--build", "my image"], cwd=tmp_path, check=False
        )

    def test_nonzero_exit_is_returned(self):
        with patch("imagepack.image.tools.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=2)
            result = run_tool(["rpmbuild"])
        assert not result.success
        assert result.exit_code == 2

    def test_check_tool_raises_on_failure(self):
        with patch("imagepack.image.tools.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=1)
            with pytest.raises(ToolExecutionError) as exc_info:
                check_tool(["rpmbuild", "-bb", "app.spec"])

        assert exc_info.value.exit_code == 1
        assert exc_info.value.code == "tool_failed"
        assert "rpmbuild failed with exit code 1" in str(exc_info.value)

    def test_cannot_start(self):
        with patch(
            "imagepack.image.tools.subprocess.run",
            side_effect=FileNotFoundError("no such file"),
        ):
            with pytest.raises(ToolExecutionError) as exc_info:
                check_tool(["missing-tool"])
        assert exc_info.value.code == "execution_error"
