"""Typed failures raised by process orchestration."""

from __future__ import annotations

from pathlib import Path


class ShellprocError(Exception):
    """Base class for every failure raised by shellproc."""


class LaunchError(ShellprocError):
    """Raised when the OS refuses to start the executable."""

    def __init__(self, executable: Path, reason: str) -> None:
        self.executable = executable
        self.reason = reason
        super().__init__(f"Failed to launch '{executable}': {reason}")


class InputError(ShellprocError):
    """Raised when input cannot be delivered to the child process."""


class ProcessNotRunningError(InputError):
    """Input was sent to a process that was never started or has exited."""

    def __init__(self, message: str = "Cannot send input: process is not running.") -> None:
        super().__init__(message)


class InputClosedError(ProcessNotRunningError):
    """Input was sent after the input pipe was closed with ``end_input()``."""

    def __init__(self) -> None:
        super().__init__("Cannot send input: input pipe is closed.")


class ProcessStateError(ShellprocError, RuntimeError):
    """Caller violated a lifecycle precondition of the process handle."""


class ProcessNotStartedError(ProcessStateError):
    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Cannot {operation}: process has not been started.")


class ProcessAlreadyStartedError(ProcessStateError):
    def __init__(self) -> None:
        super().__init__("Process has already been started; run() is valid only once.")


class StreamAlreadyConsumedError(ProcessStateError):
    def __init__(self, stream: str) -> None:
        self.stream = stream
        super().__init__(f"The {stream} stream already has a consumer.")


class ProcessFailure(ShellprocError):
    """Process terminated in a way the caller did not accept as success.

    ``status`` always carries the raw exit code or signal number. Two failures
    compare equal when they have the same type and status.
    """

    kind = "failure"

    def __init__(self, status: int) -> None:
        self.status = status
        super().__init__(self._describe())

    def _describe(self) -> str:
        return f"Process {self.kind} (status {self.status})."

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProcessFailure) or type(other) is not type(self):
            return NotImplemented
        return self.status == other.status

    def __hash__(self) -> int:
        return hash((type(self), self.status))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.status})"


class ExitFailure(ProcessFailure):
    """Process exited normally with a code rejected by the success predicate."""

    kind = "exited"

    def _describe(self) -> str:
        return f"Process exited with code {self.status}."


class UncaughtSignal(ProcessFailure):
    """Process was terminated by a signal it did not handle."""

    kind = "signalled"

    def _describe(self) -> str:
        return f"Process terminated by uncaught signal {self.status}."


class UnknownTermination(ProcessFailure):
    """Platform reported a termination reason shellproc does not recognize."""

    kind = "terminated for an unknown reason"
