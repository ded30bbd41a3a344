"""Shell, git, npm and gh utilities.

Provides thin wrappers around subprocess calls for running external commands,
plus output formatting helpers. Every command runs in an explicit working
directory; nothing here changes the process-wide current directory.
"""

from __future__ import annotations

import shlex
import subprocess
import sys
from pathlib import Path


class CommandError(Exception):
    """An external command exited non-zero (or timed out).

    Carries everything needed to diagnose the failure without re-running it.
    """

    def __init__(
        self,
        args: list[str],
        cwd: Path | str | None,
        returncode: int | None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.args_list = list(args)
        self.cwd = cwd
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        status = "timed out" if returncode is None else f"exit status {returncode}"
        super().__init__(f"Command failed ({status}): {format_command(args)}")

    def details(self) -> str:
        """Multi-line report with working directory and captured output."""
        lines = [str(self), f"  Working directory: {self.cwd or Path.cwd()}"]
        if self.stdout.strip():
            lines.append(f"  stdout:\n{_indent(self.stdout)}")
        if self.stderr.strip():
            lines.append(f"  stderr:\n{_indent(self.stderr)}")
        return "\n".join(lines)


def format_command(args: list[str] | tuple[str, ...]) -> str:
    return " ".join(shlex.quote(a) for a in args)


def _indent(text: str) -> str:
    return "\n".join(f"    {line}" for line in text.strip().splitlines())


def run(
    *args: str,
    cwd: Path | str | None = None,
    quiet: bool = False,
    timeout: float | None = None,
) -> str:
    """Run an external command and return its stdout.

    Output is always captured so a failure can be reported with its stdout and
    stderr. On success the output is echoed unless ``quiet`` is set.

    Args:
        *args: Command and arguments (e.g., "npm", "publish").
        cwd: Working directory for the command.
        quiet: Don't echo the captured output on success.
        timeout: Seconds before the command is killed; None waits forever.

    Raises:
        CommandError: On non-zero exit or timeout.
    """
    where = f" (in {cwd})" if cwd else ""
    print(f"  Executing: {format_command(args)}{where}")
    try:
        result = subprocess.run(
            list(args),
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        error = CommandError(
            list(args), cwd, None, _as_text(exc.stdout), _as_text(exc.stderr)
        )
        print(error.details(), file=sys.stderr)
        raise error from exc

    if result.returncode != 0:
        error = CommandError(
            list(args), cwd, result.returncode, result.stdout, result.stderr
        )
        print(error.details(), file=sys.stderr)
        raise error

    if not quiet and result.stdout.strip():
        print(_indent(result.stdout))
    return result.stdout


def _as_text(value: bytes | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode(errors="replace")
    return value


def git(*args: str, cwd: Path | str | None = None, quiet: bool = True) -> str:
    """Run a git command and return stripped stdout.

    Args:
        *args: Arguments to pass to git (e.g., "status", "--short").
        cwd: Repository (or sub-directory) to run in.
        quiet: Don't echo output; most git calls are lookups.
    """
    return run("git", *args, cwd=cwd, quiet=quiet).strip()


def npm(
    *args: str,
    cwd: Path | str | None = None,
    quiet: bool = False,
    timeout: float | None = None,
) -> str:
    """Run an npm command and return stripped stdout."""
    return run("npm", *args, cwd=cwd, quiet=quiet, timeout=timeout).strip()


def gh(
    *args: str,
    cwd: Path | str | None = None,
    timeout: float | None = None,
) -> str:
    """Run a GitHub CLI command and return stripped stdout."""
    return run("gh", *args, cwd=cwd, quiet=True, timeout=timeout).strip()


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate major phases of the release pipeline in terminal output.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def warn(msg: str) -> None:
    """Print a warning to stderr; the pipeline carries on."""
    print(f"  Warning: {msg}", file=sys.stderr)


def fatal(msg: str) -> None:
    """Print an error message and exit with code 1.

    Use for unrecoverable errors that should halt the pipeline.
    """
    print(f"ERROR: {msg}", file=sys.stderr)
    sys.exit(1)
