"""Subprocess execution with captured output."""

from dataclasses import dataclass
import logging
import pathlib
import subprocess

from app_packager.errors import CommandError


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of a finished subprocess.

    :ivar args: Command line that was executed.
    :ivar returncode: Exit status.
    :ivar stdout: Captured standard output.
    :ivar stderr: Captured standard error.
    """

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str


def run_command(
    args: list[str],
    *,
    cwd: pathlib.Path,
    logger: logging.Logger | None = None,
    timeout: float | None = None,
    error_type: type[CommandError] = CommandError,
) -> CommandResult:
    """Run a command to completion and capture its output.

    :param args: Command and arguments.
    :param cwd: Working directory for the process.
    :param logger: Optional logger for debug output.
    :param timeout: Optional timeout in seconds (``None`` waits forever).
    :param error_type: Exception class raised on a non-zero exit.
    :returns: Captured result.
    :raises CommandError: If the process exits non-zero (as ``error_type``).
    """

    if logger is not None and logger.isEnabledFor(logging.DEBUG) is True:
        logger.debug(f"app-packager: running {' '.join(args)} (cwd={cwd})")

    proc = subprocess.run(
        args,
        cwd=cwd,
        capture_output=True,
        text=True,
        errors="replace",
        timeout=timeout,
        check=False,
    )
    result: CommandResult = CommandResult(
        args=tuple(args),
        returncode=proc.returncode,
        stdout=proc.stdout or "",
        stderr=proc.stderr or "",
    )

    if result.returncode != 0:
        raise error_type(list(args), result.returncode, result.stdout, result.stderr)

    if logger is not None and logger.isEnabledFor(logging.DEBUG) is True and len(result.stdout) > 0:
        logger.debug(result.stdout.rstrip("\n"))
    return result
