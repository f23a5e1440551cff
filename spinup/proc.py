from __future__ import annotations

from dataclasses import dataclass
import logging
import subprocess
from typing import Callable

CommandRunner = Callable[[list[str]], subprocess.CompletedProcess[str]]

logger = logging.getLogger(__name__)

# Longest stderr/stdout excerpt carried into an error message.
_DETAIL_LIMIT = 400


@dataclass(frozen=True)
class CommandResult:
    command: list[str]
    returncode: int
    stdout: str
    stderr: str


class AdapterCommandError(RuntimeError):
    """A runtime CLI invocation failed; the message ends up in a task's error detail."""

    def __init__(self, *, message: str, result: CommandResult) -> None:
        self.result = result
        super().__init__(self._build_message(message))

    def _build_message(self, message: str) -> str:
        detail = (self.result.stderr or self.result.stdout).strip()
        if len(detail) > _DETAIL_LIMIT:
            detail = f"{detail[:_DETAIL_LIMIT - 3]}..."
        return f"{message} (returncode={self.result.returncode}, detail={detail!r})"


def default_runner(command: list[str]) -> subprocess.CompletedProcess[str]:
    return subprocess.run(command, capture_output=True, text=True, check=False)


def run_command(
    command: list[str],
    *,
    runner: CommandRunner | None = None,
    error_message: str,
) -> CommandResult:
    active_runner = runner or default_runner
    logger.debug("Running command: %s", " ".join(command))
    try:
        completed = active_runner(command)
    except FileNotFoundError as exc:
        # Binary is not installed; surface it like any other failed command.
        result = CommandResult(command=command, returncode=127, stdout="", stderr=str(exc))
        raise AdapterCommandError(message=error_message, result=result) from exc
    result = CommandResult(
        command=command,
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )
    if result.returncode != 0:
        logger.debug("Command exited with %s: %s", result.returncode, " ".join(command))
        raise AdapterCommandError(message=error_message, result=result)
    return result
