"""Operational config loading tests."""

from __future__ import annotations

import logging
import shutil
import tomllib
from pathlib import Path

import pytest

from shellproc.lib.config.settings import ShellprocConfig, load_config, resolve_config_path


def _install_config(root: Path, content: str) -> None:
    config_path = resolve_config_path(root)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(content, encoding="utf-8")


def test_load_config_from_fixture_toml(package_root: Path, tmp_path: Path) -> None:
    fixture_path = package_root / "tests" / "fixtures" / "config" / "settings.toml"
    config_path = tmp_path / ".shellproc" / "config.toml"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(fixture_path, config_path)

    loaded = load_config(tmp_path)

    assert loaded == ShellprocConfig(
        chunk_size=4096,
        kill_grace_seconds=1.5,
        wait_timeout_seconds=30.0,
        log_verbosity=1,
        json_logs=True,
    )


def test_load_config_missing_file_returns_defaults(tmp_path: Path) -> None:
    assert load_config(tmp_path) == ShellprocConfig()


def test_load_config_defaults_to_working_directory(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    _install_config(tmp_path, "chunk_size = 128\n")
    monkeypatch.chdir(tmp_path)

    assert load_config().chunk_size == 128


def test_load_config_env_override(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _install_config(
        tmp_path,
        (
            "[streams]\n"
            "chunk_size = 2048\n"
            "\n"
            "[timeouts]\n"
            "kill_grace_seconds = 5\n"
        ),
    )
    monkeypatch.setenv("SHELLPROC_CHUNK_SIZE", "512")
    monkeypatch.setenv("SHELLPROC_JSON_LOGS", "yes")

    loaded = load_config(tmp_path)

    assert loaded.chunk_size == 512
    assert loaded.json_logs is True
    assert loaded.kill_grace_seconds == 5.0


def test_load_config_warns_on_unknown_keys(
    caplog: pytest.LogCaptureFixture,
    tmp_path: Path,
) -> None:
    _install_config(
        tmp_path,
        (
            "[streams]\n"
            "chunk_size = 1024\n"
            "unknown_stream = 1\n"
            "\n"
            "mystery = 123\n"
        ),
    )
    caplog.set_level(logging.WARNING, logger="shellproc.lib.config.settings")

    loaded = load_config(tmp_path)

    assert loaded.chunk_size == 1024
    messages = [record.getMessage() for record in caplog.records]
    assert any("streams.unknown_stream" in message for message in messages)
    assert any("mystery" in message for message in messages)


@pytest.mark.parametrize(
    "content,match",
    [
        pytest.param("[streams]\nchunk_size = 0\n", "chunk_size", id="zero-chunk"),
        pytest.param("[streams]\nchunk_size = 1.5\n", "expected int", id="float-chunk"),
        pytest.param("[timeouts]\nkill_grace_seconds = -1\n", "kill_grace_seconds", id="negative-grace"),
        pytest.param("[timeouts]\nwait_seconds = 0\n", "wait_timeout_seconds", id="zero-wait"),
        pytest.param("[logging]\njson = 'yes'\n", "expected bool", id="string-bool"),
        pytest.param("streams = 3\n", "expected table", id="section-not-table"),
    ],
)
def test_load_config_rejects_invalid_values(tmp_path: Path, content: str, match: str) -> None:
    _install_config(tmp_path, content)

    with pytest.raises(ValueError, match=match):
        load_config(tmp_path)


@pytest.mark.parametrize(
    "name,value",
    [
        pytest.param("SHELLPROC_CHUNK_SIZE", "lots", id="int"),
        pytest.param("SHELLPROC_KILL_GRACE_SECONDS", "soon", id="float"),
        pytest.param("SHELLPROC_JSON_LOGS", "maybe", id="bool"),
    ],
)
def test_load_config_rejects_invalid_env_override(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    name: str,
    value: str,
) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError, match=name):
        load_config(tmp_path)


def test_load_config_rejects_malformed_toml(tmp_path: Path) -> None:
    _install_config(tmp_path, "[streams\n")

    with pytest.raises(tomllib.TOMLDecodeError):
        load_config(tmp_path)


def test_config_as_dict_round_trips_field_names() -> None:
    assert ShellprocConfig().as_dict() == {
        "chunk_size": 65536,
        "kill_grace_seconds": 2.0,
        "wait_timeout_seconds": None,
        "log_verbosity": 0,
        "json_logs": False,
    }


def test_load_config_accepts_zero_kill_grace(tmp_path: Path) -> None:
    _install_config(tmp_path, "[timeouts]\nkill_grace_seconds = 0\n")

    assert load_config(tmp_path).kill_grace_seconds == 0.0
