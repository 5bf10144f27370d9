"""Logging configuration tests."""

from __future__ import annotations

import io
import json
import logging
from collections.abc import Iterator

import pytest
import structlog

from shellproc.lib.logging import configure_logging


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    yield
    structlog.reset_defaults()
    logging.basicConfig(force=True, handlers=[logging.NullHandler()])


def test_json_mode_renders_events_as_json() -> None:
    stream = io.StringIO()
    configure_logging(json_mode=True, verbosity=2, stream=stream)

    structlog.get_logger("shellproc.test").debug("Started subprocess.", pid=123)

    payload = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert payload["event"] == "Started subprocess."
    assert payload["pid"] == 123
    assert payload["level"] == "debug"
    assert "timestamp" in payload


def test_default_verbosity_filters_debug_and_info() -> None:
    stream = io.StringIO()
    configure_logging(json_mode=True, stream=stream)

    logger = structlog.get_logger("shellproc.test")
    logger.debug("hidden")
    logger.info("hidden too")
    logger.warning("Process exceeded timeout; terminating.")

    lines = stream.getvalue().strip().splitlines()
    assert len(lines) == 1
    assert json.loads(lines[0])["event"] == "Process exceeded timeout; terminating."


def test_stdlib_warnings_share_the_stream() -> None:
    stream = io.StringIO()
    configure_logging(stream=stream)

    logging.getLogger("shellproc.lib.config.settings").warning("Ignoring unknown key.")

    assert "Ignoring unknown key." in stream.getvalue()
