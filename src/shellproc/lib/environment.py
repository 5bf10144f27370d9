"""Lazily resolved, composable environment variable sets."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator, Mapping

EnvironmentProvider = Callable[[], Mapping[str, str]]
Combine = Callable[[str, str], str]


def _no_variables() -> Mapping[str, str]:
    return {}


def _current_process_environment() -> Mapping[str, str]:
    return dict(os.environ)


def _new_value_wins(old: str, new: str) -> str:
    return new


class Environment(Mapping[str, str]):
    """Environment variables described as a base provider plus an overlay.

    The base provider is called on every resolution, so an environment built on
    ``Environment.current()`` reflects ``os.environ`` at the time it is read, not
    at the time it was built. Overlay entries mapped to ``None`` unset the
    variable. Equality compares resolved mappings only.
    """

    __slots__ = ("_base", "_custom", "_combine")

    def __init__(
        self,
        base: EnvironmentProvider = _no_variables,
        custom: Mapping[str, str | None] | None = None,
        combine: Combine = _new_value_wins,
    ) -> None:
        self._base = base
        self._custom: dict[str, str | None] = dict(custom or {})
        self._combine = combine

    @classmethod
    def empty(cls) -> Environment:
        return cls()

    @classmethod
    def current(cls) -> Environment:
        """Environment of the orchestrating process, read at resolution time."""

        return cls(base=_current_process_environment)

    @classmethod
    def custom(cls, key_values: Mapping[str, str]) -> Environment:
        fixed = dict(key_values)
        return cls(base=lambda: fixed)

    @property
    def key_values(self) -> dict[str, str]:
        """Resolve the full mapping. Recomputed on every access."""

        resolved = dict(self._base())
        for key, value in self._custom.items():
            if value is None:
                continue
            if key in resolved:
                resolved[key] = self._combine(resolved[key], value)
            else:
                resolved[key] = value
        for key, value in self._custom.items():
            if value is None:
                resolved.pop(key, None)
        return resolved

    def merging(
        self,
        other: Mapping[str, str | None],
        combine: Combine = _new_value_wins,
    ) -> Environment:
        """Return a new environment layering ``other`` on top of this one.

        ``combine(old, new)`` decides the value of keys already present after
        resolving this environment.
        """

        return Environment(base=lambda: self.key_values, custom=other, combine=combine)

    def __getitem__(self, name: str) -> str:
        return self.key_values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.key_values)

    def __len__(self) -> int:
        return len(self.key_values)

    def __contains__(self, name: object) -> bool:
        return name in self.key_values

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Environment):
            return self.key_values == other.key_values
        if isinstance(other, Mapping):
            return self.key_values == dict(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        # Values are left out so inherited secrets never reach logs.
        return f"Environment(keys={sorted(self.key_values)!r})"
