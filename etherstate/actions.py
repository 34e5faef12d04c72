"""
etherstate – Actions
====================
Triggers, actions and the firing contexts handed to input encoders.

An action pairs a trigger with a contract call, an input encoder and an
output handler. Actions are immutable once built; the engine only reads them.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping, Sequence, Union

from etherstate.contract_call import ContractCall


class TriggerType(enum.Enum):
    BLOCK = "block"
    TIME = "time"
    EVENT = "event"


# --------------------------------------------------------------------------- #
# triggers                                                                    #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class BlockTrigger:
    """Fires on every new chain head."""

    kind: TriggerType = field(default=TriggerType.BLOCK, init=False)


@dataclass(frozen=True, slots=True)
class TimeTrigger:
    """Fires every `interval_ms` milliseconds."""

    interval_ms: int
    kind: TriggerType = field(default=TriggerType.TIME, init=False)

    def __post_init__(self) -> None:
        if isinstance(self.interval_ms, bool) or not isinstance(self.interval_ms, int):
            raise ValueError(f"interval_ms must be an integer, got {self.interval_ms!r}")
        if self.interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {self.interval_ms}")


@dataclass(frozen=True, slots=True)
class EventTrigger:
    """
    Fires when a log matching `log_filter` is observed.

    `log_filter` is an eth_getLogs filter mapping. A topic string or a list of
    topics is accepted as shorthand for `{"topics": [...]}`.
    """

    log_filter: Mapping[str, Any]
    kind: TriggerType = field(default=TriggerType.EVENT, init=False)

    def __post_init__(self) -> None:
        value = self.log_filter
        if isinstance(value, str):
            value = {"topics": [value]}
        elif isinstance(value, (list, tuple)):
            value = {"topics": list(value)}
        elif not isinstance(value, Mapping):
            raise TypeError(
                f"log_filter must be a mapping, topic string or topic list, got {type(value).__name__}"
            )
        object.__setattr__(self, "log_filter", value)


Trigger = Union[BlockTrigger, TimeTrigger, EventTrigger]

# --------------------------------------------------------------------------- #
# actions                                                                     #
# --------------------------------------------------------------------------- #

CallArgs = Sequence[Any]


@dataclass(frozen=True, slots=True)
class BlockAction:
    call: ContractCall
    input_encoder: Callable[[int], CallArgs]
    output_handler: Callable[[List[Any], int, bytes], Any]
    trigger: BlockTrigger = field(default_factory=BlockTrigger)


@dataclass(frozen=True, slots=True)
class TimeAction:
    trigger: TimeTrigger
    call: ContractCall
    input_encoder: Callable[[int], CallArgs]
    output_handler: Callable[[List[Any], int, bytes], Any]


@dataclass(frozen=True, slots=True)
class EventAction:
    trigger: EventTrigger
    call: ContractCall
    input_encoder: Callable[[Mapping[str, Any], int], CallArgs]
    output_handler: Callable[[List[Any], int, bytes, Mapping[str, Any]], Any]


Action = Union[BlockAction, TimeAction, EventAction]

# --------------------------------------------------------------------------- #
# firing contexts                                                             #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class BlockContext:
    block_number: int


@dataclass(frozen=True, slots=True)
class TimeContext:
    now_ms: int


@dataclass(frozen=True, slots=True)
class EventContext:
    log: Mapping[str, Any]
    block_number: int


FiringContext = Union[BlockContext, TimeContext, EventContext]


def log_block_number(log: Mapping[str, Any]) -> int:
    """Block number of a log record as returned by eth_getLogs (int or hex string)."""
    value = log["blockNumber"]
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def encode_inputs(action: Action, context: FiringContext) -> CallArgs:
    """Feed the firing context to the action's own input encoder."""
    match action.trigger.kind, context:
        case TriggerType.BLOCK, BlockContext(block_number=block_number):
            return action.input_encoder(block_number)
        case TriggerType.TIME, TimeContext(now_ms=now_ms):
            return action.input_encoder(now_ms)
        case TriggerType.EVENT, EventContext(log=log, block_number=block_number):
            return action.input_encoder(log, block_number)
        case _:
            raise TypeError(
                f"{type(context).__name__} cannot drive a {action.trigger.kind.value} action"
            )


def deliver_output(
    action: Action,
    values: List[Any],
    block_number: int,
    block_hash: bytes,
    context: FiringContext,
) -> None:
    """Invoke the action's output handler with the decoded values."""
    match action.trigger.kind, context:
        case TriggerType.EVENT, EventContext(log=log):
            action.output_handler(values, block_number, block_hash, log)
        case _:
            action.output_handler(values, block_number, block_hash)
