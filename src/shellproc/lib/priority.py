"""Scheduling hints applied to spawned processes."""

from __future__ import annotations

import os
from collections.abc import Callable
from enum import StrEnum


class Priority(StrEnum):
    """Scheduling hint for a child process, lowest urgency last."""

    USER_INTERACTIVE = "user_interactive"
    USER_INITIATED = "user_initiated"
    DEFAULT = "default"
    UTILITY = "utility"
    BACKGROUND = "background"

    @property
    def niceness(self) -> int:
        return _NICENESS[self]


# Unprivileged callers can only lower their priority, so every increment is >= 0.
_NICENESS: dict[Priority, int] = {
    Priority.USER_INTERACTIVE: 0,
    Priority.USER_INITIATED: 0,
    Priority.DEFAULT: 0,
    Priority.UTILITY: 5,
    Priority.BACKGROUND: 10,
}


def priority_preexec(priority: Priority | None) -> Callable[[], None] | None:
    """Return a pre-exec hook applying ``priority`` in the child, if any is needed.

    The hook runs between fork and exec, where only async-signal-safe work is
    allowed once other threads exist. It is limited to one ``os.nice`` call on
    an integer captured here, with no imports, locks or logging. Callers that
    start helper threads of their own should do so after launch.
    """

    if priority is None or priority.niceness == 0 or not hasattr(os, "nice"):
        return None
    increment = priority.niceness

    def _apply() -> None:
        os.nice(increment)

    return _apply
