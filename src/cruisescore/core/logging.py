"""
Logging setup.

Handlers and formatters come from the packaged `config/logging.yaml`; the level comes
from settings (`app.log_level`, env `CRUISESCORE_LOG_LEVEL`) and is pushed onto the root
logger and every handler that declares one.
"""

from __future__ import annotations

import copy
import logging.config

from cruisescore.config.settings import get_logging_config, get_settings


def configure_logging() -> None:
    level = get_settings().app.log_level.upper()
    # get_logging_config() is cached, so edit a private copy.
    config = copy.deepcopy(get_logging_config())
    config.setdefault("root", {})["level"] = level
    for handler in config.get("handlers", {}).values():
        if isinstance(handler, dict) and "level" in handler:
            handler["level"] = level
    logging.config.dictConfig(config)
