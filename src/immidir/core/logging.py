"""
Process-wide logging setup for the `immidir` CLI.

Handlers and formatters come from the packaged `config/logging.yaml` (console on
stderr, so JSON results on stdout stay machine-readable). The threshold is
`app.log_level` from settings unless the caller passes an explicit `level`.
"""

from __future__ import annotations

import copy
import logging.config

from immidir.config.settings import get_logging_config, get_settings


def configure_logging(level: str | None = None) -> str:
    """Apply the logging config and return the effective level name."""
    config = copy.deepcopy(get_logging_config())
    effective = (level or get_settings().app.log_level).upper()
    if not isinstance(logging.getLevelName(effective), int):
        raise ValueError(f"Unknown log level: {effective}")

    config.setdefault("root", {})["level"] = effective
    for handler in config.get("handlers", {}).values():
        if isinstance(handler, dict) and "level" in handler:
            handler["level"] = effective

    logging.config.dictConfig(config)
    return effective
