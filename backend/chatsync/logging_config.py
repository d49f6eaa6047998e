"""Logging configuration for applications embedding the chat core."""

from __future__ import annotations

import copy
import logging.config
from typing import Any

from chatsync.config import Settings, get_settings

LOGGING_CONFIG: dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        }
    },
    "handlers": {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        }
    },
    "root": {
        "handlers": ["default"],
        "level": "INFO",
    },
    "loggers": {
        "chatsync.realtime.transport": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        }
    },
}


def build_logging_config(settings: Settings | None = None) -> dict[str, Any]:
    settings = settings or get_settings()
    config = copy.deepcopy(LOGGING_CONFIG)
    level = settings.log_level.upper()
    config["root"]["level"] = level
    if settings.debug:
        config["loggers"]["chatsync"] = {"level": "DEBUG"}
        level = "DEBUG"
    config["loggers"]["chatsync.realtime.transport"]["level"] = level
    return config


def configure_logging(settings: Settings | None = None) -> None:
    """Apply the standard handler and format to the root logger."""

    logging.config.dictConfig(build_logging_config(settings))
