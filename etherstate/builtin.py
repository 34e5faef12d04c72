"""
Ready-made actions for common balance reads.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from eth_utils import is_address, to_checksum_address

from etherstate.abi_registry import get_abi, get_registry
from etherstate.actions import (
    Action,
    BlockAction,
    EventAction,
    EventTrigger,
    TimeAction,
    TimeTrigger,
    TriggerType,
)
from etherstate.contract_call import ContractCall
from etherstate.exceptions import InvalidTargetError
from etherstate.multicall import MULTICALL2_ADDRESS


def _checksum(address: Any) -> str:
    if not isinstance(address, str) or not is_address(address):
        raise InvalidTargetError(address, f"Invalid address: {address!r}")
    return to_checksum_address(address)


def _balance_action(
    trigger_type: TriggerType,
    call: ContractCall,
    owner: str,
    set_balance: Callable[[int], Any],
    interval_ms: Optional[int],
    log_filter: Optional[dict],
) -> Action:
    def _output(values, *_):
        return set_balance(values[0])

    match trigger_type:
        case TriggerType.BLOCK:
            return BlockAction(call=call, input_encoder=lambda _block: [owner], output_handler=_output)
        case TriggerType.TIME:
            if interval_ms is None:
                raise ValueError("interval_ms is required for TIME actions")
            return TimeAction(
                trigger=TimeTrigger(interval_ms),
                call=call,
                input_encoder=lambda _now: [owner],
                output_handler=_output,
            )
        case TriggerType.EVENT:
            if log_filter is None:
                raise ValueError("An event filter is required for EVENT actions")
            return EventAction(
                trigger=EventTrigger(log_filter),
                call=call,
                input_encoder=lambda _log, _block: [owner],
                output_handler=_output,
            )
    raise ValueError(f"Unsupported trigger type: {trigger_type!r}")


def transfer_filter(token: str, owner: Optional[str] = None, incoming: bool = True) -> dict:
    """eth_getLogs filter for ERC-20 Transfer logs of `token`, optionally to/from `owner`."""
    topic = get_registry().get_event_topic("erc20", "Transfer")
    topics: list = [topic]
    if owner is not None:
        padded = "0x" + "0" * 24 + _checksum(owner)[2:].lower()
        topics += [None, padded] if incoming else [padded]
    return {"address": _checksum(token), "topics": topics}


def create_erc20_balance_action(
    trigger_type: TriggerType,
    token_address: str,
    token_owner: str,
    set_balance: Callable[[int], Any],
    interval_ms: Optional[int] = None,
) -> Action:
    """
    Track `balanceOf(token_owner)` on an ERC-20 token.

    EVENT actions fire on every Transfer log of the token. One eth_getLogs
    filter cannot match the owner in either topic position, so transfers both
    to and from the owner are covered by watching the token as a whole.

    Raises:
        InvalidTargetError: token or owner is not a valid address.
    """
    token = _checksum(token_address)
    owner = _checksum(token_owner)
    call = ContractCall(target=lambda: token, abi=get_abi("erc20"), function="balanceOf")
    log_filter = transfer_filter(token) if trigger_type is TriggerType.EVENT else None
    return _balance_action(trigger_type, call, owner, set_balance, interval_ms, log_filter)


def create_native_balance_action(
    trigger_type: TriggerType,
    owner_address: str,
    set_balance: Callable[[int], Any],
    interval_ms: Optional[int] = None,
    log_filter: Optional[dict] = None,
    aggregator_address: str = MULTICALL2_ADDRESS,
) -> Action:
    """Track the native coin balance of `owner_address` via the aggregator's getEthBalance."""
    owner = _checksum(owner_address)
    aggregator = _checksum(aggregator_address)
    call = ContractCall(target=lambda: aggregator, abi=get_abi("multicall2"), function="getEthBalance")
    return _balance_action(trigger_type, call, owner, set_balance, interval_ms, log_filter)
