"""Utility functions shared by the probe runner and the resolvers."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shlex
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of an external command that ran to completion."""

    returncode: int
    stdout: str
    stderr: str


def format_command(command: list[str]) -> str:
    """Return a shell-safe representation of the command for logging."""
    return shlex.join(command)


async def run_command(command: list[str], timeout: float) -> CommandResult:
    """Run an external command without a shell and collect its output.

    A non-zero exit status is returned, not raised. ``FileNotFoundError``
    and ``PermissionError`` from the spawn propagate unchanged. When the
    command outlives ``timeout`` it is killed and ``TimeoutError`` is raised.
    """
    logger.debug("Running %s", format_command(command))
    process = await asyncio.create_subprocess_exec(
        *command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
        raise TimeoutError(f"{command[0]} timed out after {timeout}s") from None

    return CommandResult(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def parse_int(value: object) -> int | None:
    """Safely parse a value to int, returning None on failure."""
    if value is None:
        return None
    try:
        return int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return None
