"""Async orchestration of one external process at a time."""

__version__ = "0.1.0"
