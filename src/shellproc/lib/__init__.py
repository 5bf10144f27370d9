"""Core shellproc library exports."""

from shellproc.lib.capture import CapturedRun, capture
from shellproc.lib.command import Command
from shellproc.lib.environment import Environment
from shellproc.lib.errors import (
    ExitFailure,
    InputClosedError,
    InputError,
    LaunchError,
    ProcessAlreadyStartedError,
    ProcessFailure,
    ProcessNotRunningError,
    ProcessNotStartedError,
    ProcessStateError,
    ShellprocError,
    StreamAlreadyConsumedError,
    UncaughtSignal,
    UnknownTermination,
)
from shellproc.lib.priority import Priority
from shellproc.lib.process import ShellProcess
from shellproc.lib.termination import (
    Success,
    TerminationReason,
    classify_termination,
    termination_reason,
)

__all__ = [
    "CapturedRun",
    "Command",
    "Environment",
    "ExitFailure",
    "InputClosedError",
    "InputError",
    "LaunchError",
    "Priority",
    "ProcessAlreadyStartedError",
    "ProcessFailure",
    "ProcessNotRunningError",
    "ProcessNotStartedError",
    "ProcessStateError",
    "ShellProcess",
    "ShellprocError",
    "StreamAlreadyConsumedError",
    "Success",
    "TerminationReason",
    "UncaughtSignal",
    "UnknownTermination",
    "capture",
    "classify_termination",
    "termination_reason",
]
