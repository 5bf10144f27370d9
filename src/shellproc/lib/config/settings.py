"""Operational config loader for shellproc callers.

Settings come from defaults, then `.shellproc/config.toml`, then ``SHELLPROC_*``
environment variables. Each setting is declared once in ``_SETTINGS`` with its
type, the TOML keys that may carry it and its environment override.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import cast

logger = logging.getLogger(__name__)

CONFIG_DIRNAME = ".shellproc"
CONFIG_FILENAME = "config.toml"


@dataclass(frozen=True, slots=True)
class ShellprocConfig:
    """Resolved operational configuration for shellproc."""

    chunk_size: int = 64 * 1024
    kill_grace_seconds: float = 2.0
    wait_timeout_seconds: float | None = None
    log_verbosity: int = 0
    json_logs: bool = False

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class _Setting:
    field_name: str
    kind: type
    toml_keys: tuple[str, ...]
    env_name: str


_SETTINGS: tuple[_Setting, ...] = (
    _Setting("chunk_size", int, ("streams.chunk_size", "chunk_size"), "SHELLPROC_CHUNK_SIZE"),
    _Setting(
        "kill_grace_seconds",
        float,
        ("timeouts.kill_grace_seconds", "kill_grace_seconds"),
        "SHELLPROC_KILL_GRACE_SECONDS",
    ),
    _Setting(
        "wait_timeout_seconds",
        float,
        ("timeouts.wait_seconds", "timeouts.wait_timeout_seconds", "wait_timeout_seconds"),
        "SHELLPROC_WAIT_TIMEOUT_SECONDS",
    ),
    _Setting("log_verbosity", int, ("logging.verbosity",), "SHELLPROC_LOG_VERBOSITY"),
    _Setting("json_logs", bool, ("logging.json",), "SHELLPROC_JSON_LOGS"),
)

_BY_TOML_KEY: dict[str, _Setting] = {
    key: setting for setting in _SETTINGS for key in setting.toml_keys
}
_SECTIONS = frozenset(key.partition(".")[0] for key in _BY_TOML_KEY if "." in key)

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "no", "off"})


def _from_toml(setting: _Setting, raw_value: object, source: str) -> object:
    # TOML is typed already: only int -> float widening is accepted.
    kind = setting.kind
    if kind is bool:
        ok = isinstance(raw_value, bool)
    else:
        accepted = (int, float) if kind is float else (kind,)
        ok = not isinstance(raw_value, bool) and isinstance(raw_value, accepted)
    if not ok:
        raise ValueError(
            f"Invalid value for '{source}': expected {kind.__name__}, got "
            f"{type(raw_value).__name__} ({raw_value!r})."
        )
    return float(cast("float", raw_value)) if kind is float else raw_value


def _from_env(setting: _Setting, raw_value: str) -> object:
    text = raw_value.strip()
    if setting.kind is bool:
        if text.lower() in _TRUE_STRINGS:
            return True
        if text.lower() in _FALSE_STRINGS:
            return False
    else:
        try:
            return setting.kind(text)
        except ValueError:
            pass
    raise ValueError(
        f"Invalid environment override '{setting.env_name}': expected "
        f"{setting.kind.__name__}, got {raw_value!r}."
    )


def _flatten_payload(payload: dict[str, object], path: Path) -> dict[str, object]:
    """Turn ``{"streams": {"chunk_size": 1}}`` into ``{"streams.chunk_size": 1}``."""

    flat: dict[str, object] = {}
    for key, value in payload.items():
        if key not in _SECTIONS:
            flat[key] = value
            continue
        if not isinstance(value, dict):
            raise ValueError(f"Invalid value for '{key}' in '{path}': expected table.")
        for section_key, section_value in cast("dict[str, object]", value).items():
            flat[f"{key}.{section_key}"] = section_value
    return flat


def _apply_file(values: dict[str, object], path: Path) -> None:
    payload = cast("dict[str, object]", tomllib.loads(path.read_text(encoding="utf-8")))
    for source, raw_value in _flatten_payload(payload, path).items():
        setting = _BY_TOML_KEY.get(source)
        if setting is None:
            logger.warning("Ignoring unknown shellproc config key '%s' in '%s'.", source, path)
            continue
        values[setting.field_name] = _from_toml(setting, raw_value, source)


def _apply_env(values: dict[str, object]) -> None:
    for setting in _SETTINGS:
        raw_value = os.getenv(setting.env_name)
        if raw_value is not None:
            values[setting.field_name] = _from_env(setting, raw_value)


def _validate(config: ShellprocConfig) -> ShellprocConfig:
    if config.chunk_size <= 0:
        raise ValueError(f"Invalid chunk_size: expected int > 0, got {config.chunk_size}.")
    if config.kill_grace_seconds < 0:
        raise ValueError(
            f"Invalid kill_grace_seconds: expected >= 0, got {config.kill_grace_seconds}."
        )
    if config.wait_timeout_seconds is not None and config.wait_timeout_seconds <= 0:
        raise ValueError(
            f"Invalid wait_timeout_seconds: expected > 0, got {config.wait_timeout_seconds}."
        )
    return config


def resolve_config_path(root: Path) -> Path:
    return root / CONFIG_DIRNAME / CONFIG_FILENAME


def load_config(root: Path | None = None) -> ShellprocConfig:
    """Load `.shellproc/config.toml` under ``root`` and apply environment overrides.

    ``root`` defaults to the current working directory. A missing file yields
    the defaults. Malformed TOML raises ``tomllib.TOMLDecodeError``; values of
    the wrong type or out of range raise ``ValueError``.
    """

    defaults = ShellprocConfig()
    values: dict[str, object] = {
        field.name: getattr(defaults, field.name) for field in fields(defaults)
    }
    path = resolve_config_path(root if root is not None else Path.cwd())
    if path.is_file():
        _apply_file(values, path)
    _apply_env(values)
    return _validate(ShellprocConfig(**values))  # type: ignore[arg-type]
