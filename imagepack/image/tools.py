"""External tool execution.

This module handles:
- Locating required tools on PATH
- Running tools synchronously with inherited output
- Treating a non-zero exit code as a fatal error

Tools are run without a timeout; the caller blocks until the tool exits.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from datetime import datetime, timezone
from pathlib import Path

from imagepack.errors import RequirementError, ToolExecutionError
from imagepack.types import ToolResult

logger = logging.getLogger(__name__)


def find_tool(name: str) -> Path | None:
    """Return the full path of ``name`` on PATH, or None."""
    found = shutil.which(name)
    return Path(found) if found else None


def require_tools(*names: str) -> None:
    """Check that every tool in ``names`` is available on PATH.

    Raises:
        RequirementError: Naming every missing tool.
    """
    missing = [name for name in names if find_tool(name) is None]
    if missing:
        raise RequirementError(f"Required tool(s) not found: {', '.join(missing)}")


def run_tool(cmd: list[str], cwd: Path | None = None) -> ToolResult:
    """Run an external command and wait for it to exit.

    Args:
        cmd: Command and arguments.
        cwd: Working directory.

    Returns:
        ToolResult with the exit code and timing.

    Raises:
        ToolExecutionError: If the command cannot be started.
    """
    cmd_str = shlex.join(cmd)
    logger.info("Executing: %s", cmd_str)
    if cwd is not None:
        logger.debug("Working directory: %s", cwd)

    started_at = datetime.now(timezone.utc)
    try:
        result = subprocess.run(cmd, cwd=cwd, check=False)
    except OSError as e:
        message = f"Failed to execute {cmd[0]}: {e}"
        logger.error(message)
        raise ToolExecutionError(message, code="execution_error") from e
    finished_at = datetime.now(timezone.utc)

    return ToolResult(
        command=cmd_str,
        exit_code=result.returncode,
        started_at=started_at,
        finished_at=finished_at,
        cwd=cwd,
    )


def check_tool(cmd: list[str], cwd: Path | None = None) -> ToolResult:
    """Run an external command and fail on a non-zero exit code.

    Raises:
        ToolExecutionError: If the command fails to start or exits non-zero.
    """
    result = run_tool(cmd, cwd=cwd)
    if not result.success:
        message = f"{cmd[0]} failed with exit code {result.exit_code}"
        logger.error("%s: %s", message, result.command)
        raise ToolExecutionError(message, exit_code=result.exit_code)
    logger.debug("%s finished in %.1fs", cmd[0], result.duration_seconds)
    return result


__all__ = ["check_tool", "find_tool", "require_tools", "run_tool"]
