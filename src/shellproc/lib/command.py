"""Static descriptions of commands to execute."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from shellproc.lib.environment import Environment
from shellproc.lib.priority import Priority

ENV_LAUNCHER = Path("/usr/bin/env")


@dataclass(frozen=True, slots=True)
class Command:
    """What to run: executable, arguments, environment, cwd and priority.

    A ``working_directory`` of ``None`` means the orchestrator's own working
    directory; a ``priority`` of ``None`` means the platform default.
    """

    executable: Path
    arguments: tuple[str, ...] = ()
    environment: Environment = field(default_factory=Environment.current)
    working_directory: Path | None = None
    priority: Priority | None = None

    @classmethod
    def of(
        cls,
        *command: str,
        environment: Environment | None = None,
        working_directory: str | Path | None = None,
        priority: Priority | None = None,
    ) -> Command:
        """Build a command from an executable path followed by its arguments."""

        if not command or not command[0]:
            raise ValueError("Cannot build command: executable path is missing.")
        return cls(
            executable=Path(command[0]),
            arguments=tuple(command[1:]),
            environment=environment if environment is not None else Environment.current(),
            working_directory=Path(working_directory) if working_directory is not None else None,
            priority=priority,
        )

    @classmethod
    def bash(
        cls,
        script: str,
        *,
        environment: Environment | None = None,
        working_directory: str | Path | None = None,
        priority: Priority | None = None,
    ) -> Command:
        """Run ``script`` with ``bash -c``; the script is passed through verbatim."""

        return cls.of(
            str(ENV_LAUNCHER),
            "bash",
            "-c",
            script,
            environment=environment,
            working_directory=working_directory,
            priority=priority,
        )

    @property
    def argv(self) -> tuple[str, ...]:
        return (str(self.executable), *self.arguments)
