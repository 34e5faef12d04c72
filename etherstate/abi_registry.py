# abi_registry.py
"""
etherstate – ABIRegistry
========================
Bundled ABI tables for the aggregator and token contracts.
Loads and validates the JSON files shipped in `etherstate/abi/`.
"""

from __future__ import annotations

import functools
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from eth_utils import event_abi_to_log_topic
from eth_utils.abi import collapse_if_tuple

from etherstate.loggingconfig import setup_logging

logger = setup_logging("ABIRegistry", level="INFO")

# --------------------------------------------------------------------------- #
# constants & helpers                                                         #
# --------------------------------------------------------------------------- #

ABI_DIR = Path(__file__).parent / "abi"

_REQUIRED: Dict[str, set[str]] = {
    "multicall2": {"tryBlockAndAggregate", "getEthBalance"},
    "erc20": {"balanceOf", "decimals", "symbol", "totalSupply"},
}

_ABI_FILES: Dict[str, str] = {
    "multicall2": "multicall2.json",
    "erc20": "erc20.json",
}


def entry_signature(entry: Dict[str, Any]) -> str:
    types = ",".join(collapse_if_tuple(arg) for arg in entry.get("inputs", []))
    return f"{entry['name']}({types})"


@functools.lru_cache(maxsize=None)
def _load_abi_file(abi_type: str) -> Tuple[Dict[str, Any], ...]:
    file_path = ABI_DIR / _ABI_FILES[abi_type]
    abi = json.loads(file_path.read_text(encoding="utf-8"))
    ABIRegistry._validate_schema(abi, abi_type)
    logger.debug("Loaded ABI %-12s (%d entries)", abi_type, len(abi))
    return tuple(abi)


class ABIRegistry:
    """
    Read-only view over the bundled ABIs. Instances are cheap; files are
    parsed once per process.
    """

    # ---------------- public API -------------------------

    def get_abi(self, abi_type: str) -> List[Dict[str, Any]]:
        if abi_type not in _ABI_FILES:
            raise KeyError(f"Unknown ABI type: {abi_type}")
        return list(_load_abi_file(abi_type))

    def get_event_topic(self, abi_type: str, event_name: str) -> str:
        """Return the 0x-prefixed topic0 hash of an event declared in the ABI."""
        for entry in self.get_abi(abi_type):
            if entry.get("type") == "event" and entry.get("name") == event_name:
                return "0x" + event_abi_to_log_topic(entry).hex().removeprefix("0x")
        raise KeyError(f"Event {event_name} not found in {abi_type} ABI")

    # ---------------- internals -------------------------

    @staticmethod
    def _validate_schema(abi: Any, abi_type: str) -> None:
        if not isinstance(abi, list):
            raise ValueError("Not a JSON-array")

        names = {e.get("name") for e in abi if e.get("type") == "function"}
        missing = _REQUIRED.get(abi_type, set()) - names
        if missing:
            raise ValueError(f"Missing required functions: {', '.join(sorted(missing))}")


_default_registry: Optional[ABIRegistry] = None


def get_registry() -> ABIRegistry:
    global _default_registry
    if _default_registry is None:
        _default_registry = ABIRegistry()
    return _default_registry


def get_abi(abi_type: str) -> List[Dict[str, Any]]:
    return get_registry().get_abi(abi_type)
