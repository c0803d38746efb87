"""Unit tests for external command execution."""

from __future__ import annotations

import sys

import pytest

from brandrr.core.commands import CommandResult, run_command
from brandrr.core.exceptions import CommandTimeoutError, CommandUnavailableError


def test_diagnostics_prefers_stderr_tail() -> None:
    result = CommandResult(returncode=1, stdout="out", stderr="x" * 5000 + "unknown filter")

    assert not result.ok
    assert result.diagnostics.endswith("unknown filter")
    assert len(result.diagnostics) == 4000
    assert CommandResult(returncode=1, stdout="only stdout", stderr="").diagnostics == "only stdout"


@pytest.mark.asyncio
async def test_missing_binary_is_unavailable() -> None:
    with pytest.raises(CommandUnavailableError):
        await run_command(["brandrr-no-such-binary-for-tests"])


@pytest.mark.asyncio
async def test_non_zero_exit_is_returned_not_raised() -> None:
    result = await run_command(
        [sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"],
        timeout_seconds=30,
    )

    assert result.returncode == 3
    assert result.diagnostics == "boom"


@pytest.mark.asyncio
async def test_timeout_kills_the_process() -> None:
    with pytest.raises(CommandTimeoutError):
        await run_command([sys.executable, "-c", "import time; time.sleep(30)"], timeout_seconds=0.5)
