"""Running external tools (HTML renderer, gpg, openssl) as subprocesses."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class CommandResult:
    """Exit status and captured output of a finished command."""

    returncode: int
    stdout: bytes
    stderr: bytes


async def run_command(
    argv: Sequence[str],
    *,
    stdin: bytes | None = None,
    timeout: float | None = None,
) -> CommandResult:
    """Run a command to completion, feeding ``stdin`` and capturing output.

    The child is killed if ``timeout`` expires or the calling task is
    cancelled.

    Args:
        argv: Program and arguments.
        stdin: Bytes written to the child's standard input.
        timeout: Seconds before the child is killed.

    Returns:
        The command result. A non-zero exit status is not an error here.

    Raises:
        TimeoutError: If the command did not finish in time.
        OSError: If the program could not be started.
    """

    st = time.monotonic()
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(stdin), timeout=timeout)
    except BaseException:
        # Timeout and cancellation both land here.
        await _kill(proc)
        logger.warning("command_killed", program=argv[0], elapsed=time.monotonic() - st)
        raise

    logger.debug(
        "command_finished",
        program=argv[0],
        returncode=proc.returncode,
        elapsed=time.monotonic() - st,
    )
    return CommandResult(returncode=proc.returncode or 0, stdout=stdout, stderr=stderr)


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await asyncio.shield(proc.wait())
