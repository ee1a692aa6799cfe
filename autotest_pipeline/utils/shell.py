"""Blocking shell command execution."""

import subprocess
from dataclasses import dataclass
from typing import Optional

import structlog

from autotest_pipeline.exceptions import CommandError

logger = structlog.get_logger()


@dataclass
class CommandResult:
    """Outcome of a finished shell command."""
    command: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return self.stdout.strip()


def shell_escape(value: str) -> str:
    """Quote a value for safe interpolation into a POSIX shell command."""
    return "'" + str(value).replace("'", "'\"'\"'") + "'"


def run_command(
    command: str,
    timeout: Optional[float] = None,
    input_text: Optional[str] = None,
    check: bool = True,
) -> CommandResult:
    """
    Run a command through the shell and wait for it.

    Args:
        command: Full shell command line
        timeout: Seconds before the process is killed
        input_text: Data written to stdin
        check: Raise CommandError on a non-zero exit code

    Returns:
        CommandResult with captured output
    """
    logger.debug("shell_command_start", command=command[:300])
    try:
        completed = subprocess.run(
            command,
            shell=True,
            capture_output=True,
            text=True,
            timeout=timeout,
            input=input_text,
        )
    except subprocess.TimeoutExpired as e:
        logger.warning("shell_command_timeout", command=command[:300], timeout=timeout)
        raise CommandError(command, None, stderr=f"Command timed out after {timeout}s") from e

    result = CommandResult(
        command=command,
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )
    if check and not result.ok:
        logger.debug("shell_command_failed", command=command[:300], returncode=result.returncode)
        raise CommandError(command, result.returncode, stderr=result.stderr, stdout=result.stdout)
    return result
