"""Run one command to completion and collect everything it wrote."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from shellproc.lib.command import Command
from shellproc.lib.errors import ProcessFailure, ProcessNotRunningError
from shellproc.lib.process import DEFAULT_CHUNK_SIZE, ShellProcess
from shellproc.lib.termination import (
    Success,
    SuccessPredicate,
    TerminationOutcome,
    is_exit_success,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CapturedRun:
    """Collected output plus the classified termination of one process."""

    command: Command
    output: bytes
    error: bytes
    outcome: TerminationOutcome

    @property
    def status(self) -> int:
        if isinstance(self.outcome, Success):
            return self.outcome.code
        return self.outcome.status

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, Success)

    def check(self) -> int:
        """Return the success code or raise the classified failure."""

        if isinstance(self.outcome, Success):
            return self.outcome.code
        raise self.outcome


async def capture(
    command: Command,
    *,
    input: bytes | None = None,
    is_success: SuccessPredicate = is_exit_success,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> CapturedRun:
    """Start ``command``, feed ``input``, and drain both streams concurrently.

    Standard input is always closed after ``input`` is written, so commands
    reading until end-of-file terminate. Launch failures propagate as
    ``LaunchError``; termination failures are returned in ``outcome``.
    """

    process = ShellProcess.from_command(command, chunk_size=chunk_size)
    output_task = asyncio.create_task(process.output())
    error_task = asyncio.create_task(process.error())
    try:
        await process.run()
    except BaseException:
        # Stream readers finish empty once the launch attempt is over.
        await asyncio.gather(output_task, error_task, return_exceptions=True)
        raise

    try:
        if input:
            await process.send(input)
    except ProcessNotRunningError:
        logger.debug("Child stopped accepting input early.", pid=process.pid)
    await process.end_input()

    output, error = await asyncio.gather(output_task, error_task)
    outcome: TerminationOutcome
    try:
        outcome = Success(await process.wait_until_exit(is_success))
    except ProcessFailure as failure:
        outcome = failure
    return CapturedRun(command=command, output=output, error=error, outcome=outcome)
