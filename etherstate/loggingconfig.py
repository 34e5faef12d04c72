import json
import logging
import os
import sys
from typing import Any, Dict

import colorlog

USE_JSON_LOGGING = os.getenv("USE_JSON_LOGGING", "").lower() in ("1", "true", "yes")

_EXTRA_KEYS = ("component", "block_number", "firing_key")


class JsonFormatter(logging.Formatter):
    """Formats log records as JSON strings."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_entry["stack_info"] = self.formatStack(record.stack_info)

        standard_attrs = logging.LogRecord(
            "", 0, "", 0, "", None, None
        ).__dict__.keys()
        extra_data = {
            k: v
            for k, v in record.__dict__.items()
            if k not in standard_attrs and not k.startswith("_")
        }
        if extra_data:
            log_entry.update(extra_data)

        # drop engine context keys that were not supplied
        for key in _EXTRA_KEYS:
            if log_entry.get(key) is None:
                log_entry.pop(key, None)

        return json.dumps(log_entry, default=str)


def setup_logging(name: str, level: int | str = logging.INFO) -> logging.Logger:
    """
    Configures and returns a logger instance. Supports color or JSON format.

    Args:
        name (str): The name for the logger.
        level (int | str): The logging level (e.g., logging.DEBUG or "DEBUG").

    Returns:
        logging.Logger: The configured logger instance.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(name)

    if logger.level == logging.NOTSET or level < logger.level:
        logger.setLevel(level)

    if not logger.handlers:

        if USE_JSON_LOGGING:
            handler = logging.StreamHandler(sys.stdout)
            formatter = JsonFormatter(datefmt="%Y-%m-%dT%H:%M:%S%z")
        else:

            handler = colorlog.StreamHandler(sys.stdout)
            formatter = colorlog.ColoredFormatter(
                "%(log_color)s[%(levelname)-8s] %(name)s: %(message)s%(reset)s",
                log_colors={
                    "DEBUG": "cyan",
                    "INFO": "green",
                    "WARNING": "yellow",
                    "ERROR": "red",
                    "CRITICAL": "red,bg_white",
                },
                secondary_log_colors={},
                style="%",
            )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
