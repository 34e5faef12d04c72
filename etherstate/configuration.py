# configuration.py
"""
etherstate – Configuration
==========================

Runtime configuration loader: defaults, then an optional YAML section,
then the environment (.env honoured), then explicit keyword overrides.
"""

from __future__ import annotations

import os
import types
from pathlib import Path
from typing import Any, Dict

import dotenv
import yaml
from eth_utils import is_checksum_address, to_checksum_address

from etherstate.loggingconfig import setup_logging
from etherstate.state_sync import StateOptions

logger = setup_logging("Configuration", level="INFO")


# --------------------------------------------------------------------------- #
# defaults                                                                    #
# --------------------------------------------------------------------------- #

_DEFAULTS: Dict[str, Any] = {
    "HTTP_ENDPOINT": "http://127.0.0.1:8545",
    "AGGREGATOR_ADDRESS": "",
    "POPULATE_ON_START": True,
    "POLL_INTERVAL": 2.0,
    "LOG_LEVEL": "INFO",
    # demo watcher
    "WATCH_TOKEN": "",
    "WATCH_OWNER": "",
    "WATCH_INTERVAL_MS": 15_000,
}

_ADDR_KEYS = {
    "AGGREGATOR_ADDRESS",
    "WATCH_TOKEN",
    "WATCH_OWNER",
}

_BOOL_KEYS = {"POPULATE_ON_START"}
_INT_KEYS = {"WATCH_INTERVAL_MS"}
_FLOAT_KEYS = {"POLL_INTERVAL"}

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #


def _checksum(addr: str, key_name: str) -> str:
    if not addr:
        return ""
    if not addr.startswith("0x") or len(addr) != 42:
        raise ValueError(f"{key_name}: invalid address '{addr}'")
    return addr if is_checksum_address(addr) else to_checksum_address(addr)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "t", "y", "yes")


def _parse_numeric_string(value: Any) -> str:
    """Removes comments and underscores from numeric strings."""
    return str(value).split("#")[0].strip().replace("_", "")


# --------------------------------------------------------------------------- #
# main class                                                                  #
# --------------------------------------------------------------------------- #


class Configuration(types.SimpleNamespace):
    # NB: kwargs allow tests to override env/file easily
    def __init__(
        self,
        env_path: str | Path = ".env",
        yaml_file: str | Path = "config.yaml",
        environment: str = "development",
        **overrides: Any,
    ) -> None:
        super().__init__()
        self._env_path = Path(env_path)
        self._yaml_file = Path(yaml_file)
        self._environment = environment
        self._raw: Dict[str, Any] = {}
        self._overrides: Dict[str, Any] = dict(overrides)
        self._load(self._overrides)

    # ------------------------------------------------------------------ #
    # public API                                                         #
    # ------------------------------------------------------------------ #

    def reload(self) -> None:
        """Re-read YAML/env; keeps existing object identity and keyword overrides."""
        self._load(self._overrides)
        logger.info("Configuration reloaded successfully")

    def state_options(self) -> StateOptions:
        return StateOptions(
            custom_aggregator_address=self.AGGREGATOR_ADDRESS or None,
            populate_on_start=self.POPULATE_ON_START,
        )

    # ------------------------------------------------------------------ #
    # internals                                                          #
    # ------------------------------------------------------------------ #

    def _load(self, overrides: Dict[str, Any] | None = None) -> None:
        overrides = overrides or {}
        dotenv.load_dotenv(self._env_path, override=False)

        # 1) defaults
        data: Dict[str, Any] = dict(_DEFAULTS)

        # 2) YAML
        if self._yaml_file.exists():
            try:
                yaml_data = yaml.safe_load(self._yaml_file.read_text()) or {}
                data.update(yaml_data.get(self._environment, {}) or {})
            except yaml.YAMLError as exc:
                logger.error("Config YAML parse error: %s", exc)

        # 3) environment
        for k in _DEFAULTS:
            if k in os.environ:
                data[k] = os.environ[k]

        # 4) explicit kwargs
        data.update(overrides)

        # type fix-ups -------------------------------------------------
        for key in _BOOL_KEYS:
            data[key] = _parse_bool(data[key])
        for key, cast in [(k, int) for k in _INT_KEYS] + [(k, float) for k in _FLOAT_KEYS]:
            try:
                data[key] = cast(_parse_numeric_string(data[key]))
            except (TypeError, ValueError):
                logger.error("Invalid %s value for %s: %r. Using default: %s",
                             cast.__name__, key, data[key], _DEFAULTS[key])
                data[key] = _DEFAULTS[key]

        level = str(data["LOG_LEVEL"]).upper()
        if level not in _VALID_LOG_LEVELS:
            logger.warning("Invalid LOG_LEVEL '%s'. Defaulting to INFO.", data["LOG_LEVEL"])
            level = "INFO"
        data["LOG_LEVEL"] = level

        # checksum addresses ------------------------------------------
        for key in _ADDR_KEYS:
            if key in data:
                try:
                    data[key] = _checksum(str(data[key] or ""), key)
                except ValueError as exc:
                    logger.warning("%s – set to empty. (%s)", key, exc)
                    data[key] = ""

        # expose as attributes
        self.__dict__.update(data)
        self._raw = data  # kept for debugging

        logger.debug("Configuration loaded (%d keys)", len(data))

    # ------------------------------------------------------------------ #
    # dunder helpers                                                     #
    # ------------------------------------------------------------------ #

    def __repr__(self) -> str:  # noqa: D401
        keys = ("HTTP_ENDPOINT", "AGGREGATOR_ADDRESS", "POPULATE_ON_START")
        preview = ", ".join(f"{k}={getattr(self, k, '')!s}" for k in keys)
        return f"<Configuration {preview} …>"
