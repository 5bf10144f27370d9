"""Classification of raw process termination status."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from shellproc.lib.errors import (
    ExitFailure,
    ProcessFailure,
    UncaughtSignal,
    UnknownTermination,
)

EXIT_SUCCESS = 0

SuccessPredicate = Callable[[int], bool]


class TerminationReason(StrEnum):
    EXIT = "exit"
    UNCAUGHT_SIGNAL = "uncaught_signal"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class Success:
    """Process exited with a code accepted by the success predicate."""

    code: int


TerminationOutcome = Success | ProcessFailure


def is_exit_success(code: int) -> bool:
    return code == EXIT_SUCCESS


def termination_reason(returncode: int) -> tuple[TerminationReason, int]:
    """Split an asyncio/subprocess return code into reason and status.

    Negative return codes mean the child was killed by signal ``-returncode``.
    """

    if returncode < 0:
        return TerminationReason.UNCAUGHT_SIGNAL, -returncode
    return TerminationReason.EXIT, returncode


def classify_termination(
    reason: TerminationReason | str,
    status: int,
    is_success: SuccessPredicate = is_exit_success,
) -> TerminationOutcome:
    """Map one termination reason and status onto a typed outcome.

    Any reason not handled explicitly falls through to ``UnknownTermination``.
    """

    if reason == TerminationReason.EXIT:
        if is_success(status):
            return Success(status)
        return ExitFailure(status)
    if reason == TerminationReason.UNCAUGHT_SIGNAL:
        return UncaughtSignal(status)
    return UnknownTermination(status)


def classify_returncode(
    returncode: int,
    is_success: SuccessPredicate = is_exit_success,
) -> TerminationOutcome:
    reason, status = termination_reason(returncode)
    return classify_termination(reason, status, is_success)


def shell_exit_code(outcome: TerminationOutcome) -> int:
    """Render an outcome as a conventional shell exit code (128 + signal)."""

    if isinstance(outcome, Success):
        return outcome.code
    if isinstance(outcome, UncaughtSignal):
        return 128 + outcome.status
    if isinstance(outcome, ExitFailure):
        return outcome.status or 1
    return 1
