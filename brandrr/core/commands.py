"""Async subprocess execution for external media tools."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from brandrr.core.exceptions import CommandTimeoutError, CommandUnavailableError

logger = logging.getLogger(__name__)

DIAGNOSTIC_TAIL_CHARS = 4000


@dataclass(slots=True)
class CommandResult:
    """Exit status and captured output of one command."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def diagnostics(self) -> str:
        """Tail of stderr (or stdout when stderr is empty)."""
        text = self.stderr.strip() or self.stdout.strip()
        return text[-DIAGNOSTIC_TAIL_CHARS:]


async def run_command(
    args: Sequence[str],
    *,
    timeout_seconds: float | None = None,
) -> CommandResult:
    """Run a command without a shell and capture its output.

    Raises CommandUnavailableError when the binary cannot be started and
    CommandTimeoutError when it runs past ``timeout_seconds``. A non-zero exit
    status is returned, not raised; callers decide what it means.
    """
    argv = [str(arg) for arg in args]
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, PermissionError) as exc:
        raise CommandUnavailableError(argv[0]) from exc

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        process.kill()
        await process.wait()
        raise CommandTimeoutError(argv[0], timeout_seconds or 0) from exc

    result = CommandResult(
        returncode=int(process.returncode or 0),
        stdout=stdout.decode("utf-8", errors="ignore"),
        stderr=stderr.decode("utf-8", errors="ignore"),
    )
    if not result.ok:
        logger.debug(
            "Command exited with non-zero status",
            extra={"binary": argv[0], "returncode": result.returncode},
        )
    return result
