"""Command descriptor tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from shellproc.lib.command import ENV_LAUNCHER, Command
from shellproc.lib.environment import Environment
from shellproc.lib.priority import Priority


def test_convenience_constructor_matches_explicit_form() -> None:
    assert Command.of("/path/to/exec", "--flag1", "--flag2") == Command(
        executable=Path("/path/to/exec"),
        arguments=("--flag1", "--flag2"),
    )


def test_convenience_constructor_with_all_fields() -> None:
    command = Command.of(
        "/path/to/exec",
        "--flag1",
        "--flag2",
        environment=Environment.custom({"KEY": "VALUE"}),
        working_directory="/path/to/workdir/",
        priority=Priority.UTILITY,
    )

    assert command == Command(
        executable=Path("/path/to/exec"),
        arguments=("--flag1", "--flag2"),
        environment=Environment.custom({"KEY": "VALUE"}),
        working_directory=Path("/path/to/workdir/"),
        priority=Priority.UTILITY,
    )


@pytest.mark.parametrize("command", [(), ("",)], ids=["no-args", "empty-path"])
def test_convenience_constructor_requires_executable(command: tuple[str, ...]) -> None:
    with pytest.raises(ValueError, match="executable path is missing"):
        Command.of(*command)


def test_default_environment_is_current() -> None:
    assert Command.of("/bin/true").environment == Environment.current()
    assert Command(executable=Path("/bin/true")).working_directory is None


def test_bash_wraps_script_verbatim() -> None:
    script = 'echo "$HOME" | tr a-z A-Z; exit 3'
    command = Command.bash(
        script,
        environment=Environment.empty(),
        working_directory="/tmp",
        priority=Priority.BACKGROUND,
    )

    assert command.executable == ENV_LAUNCHER
    assert command.arguments == ("bash", "-c", script)
    assert command.argv == ("/usr/bin/env", "bash", "-c", script)
    assert command.working_directory == Path("/tmp")
    assert command.priority is Priority.BACKGROUND
    assert command.environment == {}


def test_command_is_immutable() -> None:
    command = Command.bash("true")
    with pytest.raises(AttributeError):
        command.arguments = ()  # type: ignore[misc]


def test_priority_niceness_never_raises_priority() -> None:
    assert [priority.niceness for priority in Priority] == [0, 0, 0, 5, 10]
