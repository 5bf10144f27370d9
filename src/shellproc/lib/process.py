"""Live process handle: one child process and its three pipes.

``ShellProcess`` owns exactly one OS process. Input is written through
``send()``/``end_input()``; output and error are exposed as independent
single-consumer async byte streams; ``wait_until_exit()`` classifies how the
child terminated.

Pipe backpressure is inherent: if nobody drains a stream, the child blocks once
the pipe buffer fills, and ``send()`` blocks while the child is not reading.
"""

from __future__ import annotations

import asyncio
import os
import signal
from collections.abc import AsyncIterator, Mapping, Sequence
from pathlib import Path
from typing import Literal, cast

import structlog

from shellproc.lib.command import Command
from shellproc.lib.environment import Environment
from shellproc.lib.errors import (
    InputClosedError,
    LaunchError,
    ProcessAlreadyStartedError,
    ProcessNotRunningError,
    ProcessNotStartedError,
    ProcessStateError,
    StreamAlreadyConsumedError,
)
from shellproc.lib.priority import Priority, priority_preexec
from shellproc.lib.termination import (
    Success,
    SuccessPredicate,
    classify_returncode,
    is_exit_success,
)

DEFAULT_CHUNK_SIZE = 64 * 1024
_STREAM_BUFFER_LIMIT = 64 * 1024
logger = structlog.get_logger(__name__)

StreamName = Literal["output", "error"]


class _ExitTrackingProtocol(asyncio.subprocess.SubprocessStreamProtocol):
    """Stream protocol that also reports the moment the child exits.

    ``Process.wait()`` only returns once every pipe is closed, which a
    grandchild holding stdout can postpone indefinitely. ``exited`` resolves
    as soon as the OS reports the exit.
    """

    def __init__(self, limit: int, loop: asyncio.AbstractEventLoop) -> None:
        super().__init__(limit=limit, loop=loop)
        self.exited: asyncio.Future[None] = loop.create_future()

    def process_exited(self) -> None:
        super().process_exited()
        if not self.exited.done():
            self.exited.set_result(None)


def _resolve_environment(environment: Mapping[str, str] | None) -> dict[str, str] | None:
    if environment is None:
        return None
    if isinstance(environment, Environment):
        return environment.key_values
    return dict(environment)


class ShellProcess:
    """Handle for one launched (or launchable) child process.

    ``environment=None`` inherits the orchestrator's environment and
    ``working_directory=None`` its working directory. A mapping passed as
    ``environment`` is resolved when ``run()`` is called, so an
    ``Environment`` built on the live process environment is read at launch.

    ``new_session=True`` starts the child in its own session and process group
    so ``signal_group()`` can reach everything it spawned.
    """

    def __init__(
        self,
        executable: str | Path,
        arguments: Sequence[str] | None = None,
        environment: Mapping[str, str] | None = None,
        working_directory: str | Path | None = None,
        priority: Priority | None = None,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        new_session: bool = False,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0.")
        self.executable = Path(executable)
        self.arguments: tuple[str, ...] = tuple(arguments or ())
        self.environment = environment
        self.working_directory = Path(working_directory) if working_directory is not None else None
        self.priority = priority
        self.new_session = new_session
        self._chunk_size = chunk_size

        self._process: asyncio.subprocess.Process | None = None
        self._exited: asyncio.Future[None] | None = None
        self._launched = False
        self._started = asyncio.Event()
        self._state_lock = asyncio.Lock()
        self._input_lock = asyncio.Lock()
        self._input_closed = False
        self._consumers: set[StreamName] = set()

    @classmethod
    def from_command(
        cls,
        command: Command,
        working_directory: str | Path | None = None,
        priority: Priority | None = None,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        new_session: bool = False,
    ) -> ShellProcess:
        """Create a process for ``command``; explicit arguments override its fields."""

        return cls(
            command.executable,
            command.arguments,
            command.environment,
            working_directory if working_directory is not None else command.working_directory,
            priority if priority is not None else command.priority,
            chunk_size=chunk_size,
            new_session=new_session,
        )

    def __repr__(self) -> str:
        return (
            f"ShellProcess(executable={self.executable.as_posix()!r}, "
            f"arguments={self.arguments!r}, pid={self.pid!r}, returncode={self.returncode!r})"
        )

    # Lifecycle

    @property
    def is_running(self) -> bool:
        """``False`` before ``run()`` and once the exit has been observed."""

        return self._process is not None and self._process.returncode is None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process is not None else None

    async def run(self) -> None:
        """Start the process. Valid exactly once per handle."""

        async with self._state_lock:
            if self._launched:
                raise ProcessAlreadyStartedError()
            self._launched = True
            env = _resolve_environment(self.environment)
            loop = asyncio.get_running_loop()
            try:
                transport, protocol = await loop.subprocess_exec(
                    lambda: _ExitTrackingProtocol(_STREAM_BUFFER_LIMIT, loop),
                    str(self.executable),
                    *self.arguments,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    env=env,
                    cwd=str(self.working_directory) if self.working_directory is not None else None,
                    start_new_session=self.new_session,
                    preexec_fn=priority_preexec(self.priority),
                )
                self._process = asyncio.subprocess.Process(transport, protocol, loop)
                self._exited = protocol.exited
            except OSError as exc:
                logger.debug(
                    "Subprocess launch failed.",
                    executable=self.executable.as_posix(),
                    error=str(exc),
                )
                raise LaunchError(self.executable, exc.strerror or str(exc)) from exc
            finally:
                # Wake pending stream consumers whether or not the launch worked.
                self._started.set()

        logger.debug(
            "Started subprocess.",
            pid=self._process.pid,
            executable=self.executable.as_posix(),
            cwd=self.working_directory.as_posix() if self.working_directory else None,
            priority=str(self.priority) if self.priority else None,
            new_session=self.new_session,
        )

    def terminate(self) -> None:
        """Request termination with SIGTERM.

        Has no effect once the process has exited. The child may ignore the
        signal; escalation is left to the caller.
        """

        self.send_signal(signal.SIGTERM)

    def send_signal(self, signum: int) -> None:
        process = self._require_started("signal the process")
        if process.returncode is not None:
            return
        try:
            process.send_signal(signum)
        except ProcessLookupError:
            # Exited between the returncode check and delivery.
            return
        logger.debug("Sent signal to subprocess.", pid=process.pid, signal=int(signum))

    def signal_group(self, signum: int) -> None:
        """Send ``signum`` to every process in the child's process group.

        Only valid with ``new_session=True``, which makes the child the leader
        of its own group. Unlike ``send_signal()`` this still reaches
        descendants after the child itself has exited.
        """

        process = self._require_started("signal the process group")
        if not self.new_session:
            raise ProcessStateError(
                "Cannot signal the process group: process was not started with new_session=True."
            )
        try:
            os.killpg(process.pid, signum)
        except ProcessLookupError:
            # Every member of the group has already exited.
            return
        logger.debug("Sent signal to process group.", pgid=process.pid, signal=int(signum))

    async def wait_until_exit(self, is_success: SuccessPredicate = is_exit_success) -> int:
        """Wait for exit and return the exit code accepted by ``is_success``.

        Raises ``ExitFailure``, ``UncaughtSignal`` or ``UnknownTermination``
        otherwise; each keeps the raw status in ``.status``. Returns as soon as
        the child exits, even while descendants still hold its output pipes.
        """

        process = self._require_started("wait for exit")
        # Resolved by the exit itself, not by pipe closure.
        await asyncio.shield(cast("asyncio.Future[None]", self._exited))
        returncode = cast("int", process.returncode)
        outcome = classify_returncode(returncode, is_success)
        logger.debug(
            "Subprocess exited.",
            pid=process.pid,
            returncode=returncode,
            outcome=repr(outcome),
        )
        if isinstance(outcome, Success):
            return outcome.code
        raise outcome

    def _require_started(self, operation: str) -> asyncio.subprocess.Process:
        if self._process is None:
            raise ProcessNotStartedError(operation)
        return self._process

    # Input

    async def send(self, data: bytes) -> None:
        """Write ``data`` to the child's standard input, in call order."""

        async with self._input_lock:
            if self._input_closed:
                raise InputClosedError()
            process = self._process
            if process is None or process.returncode is not None or process.stdin is None:
                raise ProcessNotRunningError()
            try:
                process.stdin.write(data)
                await process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as exc:
                raise ProcessNotRunningError() from exc

    async def end_input(self) -> None:
        """Close the child's standard input. Repeated calls are no-ops."""

        async with self._input_lock:
            process = self._process
            if process is None or process.stdin is None:
                raise ProcessNotRunningError()
            if self._input_closed:
                return
            self._input_closed = True
            process.stdin.close()
            try:
                await process.stdin.wait_closed()
            except (BrokenPipeError, ConnectionResetError):
                logger.debug("Input pipe was already broken when closed.", pid=process.pid)
            logger.debug("Closed subprocess input.", pid=process.pid)

    # Output

    def output_stream(self) -> AsyncIterator[bytes]:
        """Chunks of standard output until end-of-file.

        May be created before ``run()``. Only one consumer per process.
        """

        return self._attach("output")

    def error_stream(self) -> AsyncIterator[bytes]:
        """Chunks of standard error until end-of-file. Only one consumer per process."""

        return self._attach("error")

    async def output(self) -> bytes:
        return b"".join([chunk async for chunk in self.output_stream()])

    async def error(self) -> bytes:
        return b"".join([chunk async for chunk in self.error_stream()])

    def _attach(self, name: StreamName) -> AsyncIterator[bytes]:
        if name in self._consumers:
            raise StreamAlreadyConsumedError(name)
        self._consumers.add(name)
        return self._read_chunks(name)

    async def _read_chunks(self, name: StreamName) -> AsyncIterator[bytes]:
        await self._started.wait()
        process = self._process
        if process is None:
            return
        reader = process.stdout if name == "output" else process.stderr
        if reader is None:
            return
        while True:
            chunk = await reader.read(self._chunk_size)
            if not chunk:
                return
            yield chunk
