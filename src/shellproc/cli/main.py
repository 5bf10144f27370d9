"""Cyclopts CLI entry point for shellproc."""

from __future__ import annotations

import asyncio
import json
import os
import signal
import sys
import threading
import tomllib
from collections.abc import AsyncIterator, Callable
from contextvars import ContextVar
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any, BinaryIO

import structlog
from cyclopts import App, Parameter

from shellproc import __version__
from shellproc.lib.command import Command
from shellproc.lib.config.settings import ShellprocConfig, load_config
from shellproc.lib.environment import Environment
from shellproc.lib.errors import LaunchError, ProcessFailure, ProcessNotRunningError
from shellproc.lib.priority import Priority
from shellproc.lib.process import ShellProcess
from shellproc.lib.termination import (
    Success,
    SuccessPredicate,
    TerminationOutcome,
    shell_exit_code,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = structlog.get_logger(__name__)

LAUNCH_FAILURE_EXIT_CODE = 2
TIMEOUT_EXIT_CODE = 3
STDIN_CHUNK_SIZE = 64 * 1024

_CONFIG: ContextVar[ShellprocConfig | None] = ContextVar("_CONFIG", default=None)


def current_config() -> ShellprocConfig:
    """Return the config resolved for the current invocation."""

    config = _CONFIG.get()
    if config is None:
        return load_config(Path.cwd())
    return config


@dataclass(frozen=True, slots=True)
class RunOptions:
    """Caller-side policy for driving one process from the CLI."""

    forward_stdin: bool
    timeout_seconds: float | None
    kill_grace_seconds: float
    success_codes: frozenset[int]

    def is_success(self) -> SuccessPredicate:
        codes = self.success_codes
        return lambda code: code in codes


app = App(
    name="shellproc",
    help="Run one external process with streamed input and output.",
    version=__version__,
    help_formatter="plain",
)
config_app = App(name="config", help="Configuration commands", help_formatter="plain")
app.command(config_app, name="config")


EnvOption = Annotated[
    tuple[str, ...],
    Parameter(
        name="--env",
        help="Set a variable for the child as KEY=VALUE (repeatable).",
        negative_iterable=(),
    ),
]
UnsetOption = Annotated[
    tuple[str, ...],
    Parameter(name="--unset", help="Unset a variable for the child (repeatable).", negative_iterable=()),
]
ClearEnvOption = Annotated[
    bool,
    Parameter(name="--clear-env", help="Start from an empty environment instead of inheriting."),
]
CwdOption = Annotated[
    str | None,
    Parameter(name="--cwd", help="Working directory for the child process."),
]
PriorityOption = Annotated[
    Priority | None,
    Parameter(name="--priority", help="Scheduling hint for the child process."),
]
StdinOption = Annotated[
    bool,
    Parameter(name="--stdin", help="Forward this process's standard input to the child."),
]
TimeoutOption = Annotated[
    float | None,
    Parameter(
        name="--timeout",
        help="Stop the child and its process group after this many seconds.",
    ),
]
SuccessCodeOption = Annotated[
    tuple[int, ...],
    Parameter(
        name="--success-code",
        help="Exit code treated as success (repeatable, default 0).",
        negative_iterable=(),
    ),
]


def build_environment(
    env_pairs: Sequence[str],
    unset: Sequence[str],
    *,
    clear_env: bool,
) -> Environment:
    base = Environment.empty() if clear_env else Environment.current()
    overlay: dict[str, str | None] = {}
    for pair in env_pairs:
        key, separator, value = pair.partition("=")
        if not separator or not key:
            raise ValueError(f"Invalid --env value {pair!r}: expected KEY=VALUE.")
        overlay[key] = value
    for key in unset:
        overlay[key] = None
    if not overlay:
        return base
    return base.merging(overlay)


async def _pump(stream: AsyncIterator[bytes], sink: BinaryIO) -> None:
    async for chunk in stream:
        sink.write(chunk)
        sink.flush()


def _start_stdin_reader(loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[bytes]) -> None:
    # Blocking reads run on a daemon thread so a quiet terminal never delays exit.
    def _read() -> None:
        fd = sys.stdin.fileno()
        while True:
            try:
                chunk = os.read(fd, STDIN_CHUNK_SIZE)
            except OSError:
                chunk = b""
            try:
                loop.call_soon_threadsafe(queue.put_nowait, chunk)
            except RuntimeError:
                return
            if not chunk:
                return

    threading.Thread(target=_read, name="shellproc-stdin", daemon=True).start()


async def _forward_stdin(process: ShellProcess) -> None:
    queue: asyncio.Queue[bytes] = asyncio.Queue()
    _start_stdin_reader(asyncio.get_running_loop(), queue)
    try:
        while chunk := await queue.get():
            await process.send(chunk)
    except ProcessNotRunningError:
        logger.debug("Child stopped accepting input.", pid=process.pid)
        return
    await process.end_input()


async def _wait_outcome(process: ShellProcess, is_success: SuccessPredicate) -> TerminationOutcome:
    try:
        return Success(await process.wait_until_exit(is_success))
    except ProcessFailure as failure:
        return failure


async def _terminate_with_grace(
    process: ShellProcess,
    pending: set[asyncio.Task[Any]],
    *,
    grace_seconds: float,
) -> None:
    """SIGTERM the child's process group, then SIGKILL it after the grace period.

    ``pending`` holds the exit wait and the output pumps. The run is over only
    when all of them finish, since a descendant can keep the pipes open after
    the child itself has exited.
    """

    process.signal_group(signal.SIGTERM)
    _, still_pending = await asyncio.wait(pending, timeout=grace_seconds)
    if still_pending:
        logger.warning(
            "Process group outlived the grace period; killing.",
            pgid=process.pid,
            grace_seconds=grace_seconds,
        )
        process.signal_group(signal.SIGKILL)
        await asyncio.wait(still_pending)


def _forward_signals(process: ShellProcess) -> Callable[[], None]:
    """Relay SIGINT and SIGTERM to the child's group; return an undo callback.

    The child runs in its own session, so terminal signals no longer reach it
    directly.
    """

    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, process.signal_group, signum)
        except (NotImplementedError, RuntimeError):
            # Not the main thread, or no loop signal support on this platform.
            continue
        installed.append(signum)

    def _restore() -> None:
        for signum in installed:
            loop.remove_signal_handler(signum)

    return _restore


async def drive_process(process: ShellProcess, options: RunOptions) -> int:
    """Run ``process`` to completion, forwarding its I/O; return the CLI exit code."""

    pumps = [
        asyncio.create_task(_pump(process.output_stream(), sys.stdout.buffer)),
        asyncio.create_task(_pump(process.error_stream(), sys.stderr.buffer)),
    ]
    try:
        await process.run()
    except LaunchError as exc:
        await asyncio.gather(*pumps)
        print(f"error: {exc}", file=sys.stderr)
        return LAUNCH_FAILURE_EXIT_CODE

    restore_signals = _forward_signals(process)
    feeder: asyncio.Task[None] | None = None
    if options.forward_stdin:
        feeder = asyncio.create_task(_forward_stdin(process))
    else:
        await process.end_input()

    outcome_task = asyncio.create_task(_wait_outcome(process, options.is_success()))
    try:
        _, pending = await asyncio.wait([outcome_task, *pumps], timeout=options.timeout_seconds)
        if pending:
            logger.warning(
                "Process exceeded timeout; terminating.",
                pid=process.pid,
                timeout_seconds=options.timeout_seconds,
            )
            await _terminate_with_grace(
                process,
                pending,
                grace_seconds=options.kill_grace_seconds,
            )
            exit_code = TIMEOUT_EXIT_CODE
        else:
            exit_code = shell_exit_code(outcome_task.result())
    finally:
        restore_signals()
        if feeder is not None and not feeder.done():
            feeder.cancel()
            try:
                await feeder
            except asyncio.CancelledError:
                pass

    await asyncio.gather(*pumps)
    return exit_code


def _run_command(
    command: Command,
    *,
    forward_stdin: bool,
    timeout: float | None,
    success_codes: tuple[int, ...],
) -> None:
    config = current_config()
    options = RunOptions(
        forward_stdin=forward_stdin,
        timeout_seconds=timeout if timeout is not None else config.wait_timeout_seconds,
        kill_grace_seconds=config.kill_grace_seconds,
        success_codes=frozenset(success_codes or (0,)),
    )
    process = ShellProcess.from_command(command, chunk_size=config.chunk_size, new_session=True)
    exit_code = asyncio.run(drive_process(process, options))
    if exit_code != 0:
        raise SystemExit(exit_code)


@app.command(name="bash")
def bash(
    script: str,
    *,
    env: EnvOption = (),
    unset: UnsetOption = (),
    clear_env: ClearEnvOption = False,
    cwd: CwdOption = None,
    priority: PriorityOption = None,
    stdin: StdinOption = False,
    timeout: TimeoutOption = None,
    success_code: SuccessCodeOption = (),
) -> None:
    """Run a bash script with `bash -c`."""

    command = Command.bash(
        script,
        environment=build_environment(env, unset, clear_env=clear_env),
        working_directory=cwd,
        priority=priority,
    )
    _run_command(command, forward_stdin=stdin, timeout=timeout, success_codes=success_code)


@app.command(name="exec")
def exec_(
    executable: str,
    *arguments: str,
    env: EnvOption = (),
    unset: UnsetOption = (),
    clear_env: ClearEnvOption = False,
    cwd: CwdOption = None,
    priority: PriorityOption = None,
    stdin: StdinOption = False,
    timeout: TimeoutOption = None,
    success_code: SuccessCodeOption = (),
) -> None:
    """Run an executable directly. Put `--` before arguments that start with `-`."""

    command = Command.of(
        executable,
        *arguments,
        environment=build_environment(env, unset, clear_env=clear_env),
        working_directory=cwd,
        priority=priority,
    )
    _run_command(command, forward_stdin=stdin, timeout=timeout, success_codes=success_code)


@config_app.command(name="show")
def config_show() -> None:
    """Print the resolved configuration as JSON."""

    print(json.dumps(current_config().as_dict(), indent=2, sort_keys=True))


def _extract_logging_flags(argv: Sequence[str]) -> tuple[list[str], int, bool]:
    verbosity = 0
    json_logs = False
    cleaned: list[str] = []
    passthrough = False
    for arg in argv:
        if passthrough:
            cleaned.append(arg)
            continue
        if arg == "--":
            passthrough = True
            cleaned.append(arg)
            continue
        if arg in {"-v", "--verbose"}:
            verbosity += 1
            continue
        if arg == "--json-logs":
            json_logs = True
            continue
        cleaned.append(arg)
    return cleaned, verbosity, json_logs


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point used by `shellproc` and `python -m shellproc`."""

    from shellproc.lib.logging import configure_logging

    args = list(sys.argv[1:] if argv is None else argv)
    cleaned_args, verbosity, json_logs = _extract_logging_flags(args)

    try:
        config = load_config(Path.cwd())
    except (ValueError, tomllib.TOMLDecodeError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1) from None

    # Configure logging early so structlog output goes to stderr, not stdout.
    configure_logging(
        json_mode=json_logs or config.json_logs,
        verbosity=max(verbosity, config.log_verbosity),
    )

    token = _CONFIG.set(config)
    try:
        try:
            app(cleaned_args)
        except (ValueError, OSError) as exc:
            print(f"error: {exc}", file=sys.stderr)
            raise SystemExit(1) from None
    finally:
        _CONFIG.reset(token)
