"""
Subprocess helper with a mandatory timeout.
Every OS query and service command goes through run_command.
"""

import subprocess
from dataclasses import dataclass
from typing import List, Optional


class CommandError(Exception):
    """Base exception for command-related errors."""
    pass


class CommandTimeoutError(CommandError):
    """Raised when a command does not finish within its timeout."""
    pass


class CommandNotFoundError(CommandError):
    """Raised when the executable does not exist."""
    pass


@dataclass
class CommandResult:
    """Exit code and captured output of a finished command."""
    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout and stderr combined, for message matching."""
        return f"{self.stdout}\n{self.stderr}".strip()


def run_command(cmd: List[str], timeout: float, input_text: Optional[str] = None) -> CommandResult:
    """
    Run a command and return its output.

    Args:
        cmd: Command as list of strings
        timeout: Seconds before the command is killed
        input_text: Optional text passed on stdin

    Returns:
        CommandResult with exit code, stdout and stderr

    Raises:
        CommandTimeoutError: If the command exceeded the timeout
        CommandNotFoundError: If the executable is missing
        CommandError: On any other OS-level failure to launch
    """
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            input=input_text,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise CommandTimeoutError(f"Command timed out after {timeout}s: {' '.join(cmd)}") from e
    except FileNotFoundError as e:
        raise CommandNotFoundError(f"Command not found: {cmd[0]}") from e
    except OSError as e:
        raise CommandError(f"Command failed to launch: {' '.join(cmd)}: {e}") from e

    return CommandResult(
        args=list(cmd),
        returncode=result.returncode,
        stdout=result.stdout or "",
        stderr=result.stderr or "",
    )
