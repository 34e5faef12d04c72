"""
etherstate – Trigger grouping
=============================
Partitions actions by trigger kind. Time actions sharing an interval and
event actions sharing a log filter end up in one execution group, so each
distinct interval gets one timer and each distinct filter one subscription.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from etherstate.actions import Action, TriggerType


def _normalize(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, str) and value[:2] in ("0x", "0X"):
        return "0x" + value[2:].lower()
    return value


def canonical_filter_key(log_filter: Mapping[str, Any]) -> str:
    """
    Comparable key for a log filter. Key order, hex case and bytes-vs-hex
    spelling do not change the key; list order (topic positions) does.
    A single address is treated the same as a one-element address list.
    """
    if not isinstance(log_filter, Mapping):
        raise TypeError(f"log_filter must be a mapping, got {type(log_filter).__name__}")
    normalized = _normalize(log_filter)
    address = normalized.get("address")
    if isinstance(address, str):
        normalized["address"] = [address]
    elif isinstance(address, list):
        normalized["address"] = sorted(address)
    return json.dumps(normalized, sort_keys=True, separators=(",", ":"), default=str)


@dataclass(frozen=True, slots=True)
class ExecutionGroup:
    """
    Ordered members sharing one trigger. The N-th member owns the N-th call
    of every aggregated batch issued for this group.
    """

    kind: TriggerType
    firing_key: Any
    members: Tuple[Action, ...]
    log_filter: Optional[Mapping[str, Any]] = field(default=None, compare=False)

    def __len__(self) -> int:
        return len(self.members)


@dataclass(frozen=True, slots=True)
class GroupedActions:
    block: Optional[ExecutionGroup]
    time: Dict[int, ExecutionGroup]
    event: Dict[str, ExecutionGroup]

    @property
    def groups(self) -> Tuple[ExecutionGroup, ...]:
        block = (self.block,) if self.block is not None else ()
        return block + tuple(self.time.values()) + tuple(self.event.values())


def group_actions(actions: Iterable[Action]) -> GroupedActions:
    block_members: list[Action] = []
    time_members: Dict[int, list[Action]] = {}
    event_members: Dict[str, list[Action]] = {}
    event_filters: Dict[str, Mapping[str, Any]] = {}

    for action in actions:
        trigger = action.trigger
        match trigger.kind:
            case TriggerType.BLOCK:
                block_members.append(action)
            case TriggerType.TIME:
                time_members.setdefault(trigger.interval_ms, []).append(action)
            case TriggerType.EVENT:
                key = canonical_filter_key(trigger.log_filter)
                event_filters.setdefault(key, trigger.log_filter)
                event_members.setdefault(key, []).append(action)
            case _:
                raise TypeError(f"Unknown trigger: {trigger!r}")

    block_group = (
        ExecutionGroup(TriggerType.BLOCK, TriggerType.BLOCK.value, tuple(block_members))
        if block_members
        else None
    )
    time_groups = {
        interval: ExecutionGroup(TriggerType.TIME, interval, tuple(members))
        for interval, members in time_members.items()
    }
    event_groups = {
        key: ExecutionGroup(TriggerType.EVENT, key, tuple(members), event_filters[key])
        for key, members in event_members.items()
    }
    return GroupedActions(block_group, time_groups, event_groups)
