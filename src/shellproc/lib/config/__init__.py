"""Configuration loading helpers."""

from shellproc.lib.config.settings import ShellprocConfig, load_config, resolve_config_path

__all__ = ["ShellprocConfig", "load_config", "resolve_config_path"]
