"""Subprocess helpers shared by the cluster adapters."""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

# Shell-style return codes for failures that never reached the tool
EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = 124


@dataclass
class CommandResult:
    """Outcome of one external command."""

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined output, stdout first."""
        parts = [p.strip() for p in (self.stdout, self.stderr) if p and p.strip()]
        return "\n".join(parts)

    def error_message(self) -> str:
        """Short description of a failed command."""
        detail = (self.stderr or self.stdout or "").strip()
        cmd = " ".join(self.args[:4])
        if detail:
            return f"'{cmd}' failed (exit {self.returncode}): {detail}"
        return f"'{cmd}' failed (exit {self.returncode})"


def run_command(args: Sequence[str], timeout: float | None = None) -> CommandResult:
    """Run a command and capture its output.

    Never raises for a missing binary or an expired timeout; both are
    reported through the return code so callers decide what is fatal.

    Args:
        args: Command and arguments.
        timeout: Optional timeout in seconds.

    Returns:
        CommandResult for the invocation.
    """
    argv = [str(a) for a in args]
    try:
        result = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        return CommandResult(argv, EXIT_NOT_FOUND, "", f"{argv[0]} not found")
    except subprocess.TimeoutExpired:
        return CommandResult(argv, EXIT_TIMEOUT, "", f"timed out after {timeout}s")

    return CommandResult(
        argv,
        result.returncode,
        result.stdout or "",
        result.stderr or "",
    )
