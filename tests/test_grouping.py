from unittest.mock import MagicMock

import pytest

from etherstate.actions import (
    BlockAction,
    EventAction,
    EventTrigger,
    TimeAction,
    TimeTrigger,
    TriggerType,
)
from etherstate.grouping import canonical_filter_key, group_actions

from conftest import OWNER, TOKEN_A, TOKEN_B, TOKEN_C, balance_call

TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def block_action(token=TOKEN_A):
    return BlockAction(call=balance_call(token), input_encoder=lambda b: [OWNER],
                       output_handler=MagicMock())


def time_action(interval, token=TOKEN_A):
    return TimeAction(trigger=TimeTrigger(interval), call=balance_call(token),
                      input_encoder=lambda now: [OWNER], output_handler=MagicMock())


def event_action(log_filter, token=TOKEN_A):
    return EventAction(trigger=EventTrigger(log_filter), call=balance_call(token),
                       input_encoder=lambda log, b: [OWNER], output_handler=MagicMock())


def test_canonical_filter_key_ignores_key_order_and_hex_case():
    a = {"address": TOKEN_A, "topics": [TOPIC.upper().replace("0X", "0x")]}
    b = {"topics": [TOPIC], "address": TOKEN_A.lower()}
    assert canonical_filter_key(a) == canonical_filter_key(b)


def test_canonical_filter_key_bytes_and_hex_are_equal():
    a = {"topics": [bytes.fromhex(TOPIC[2:])]}
    b = {"topics": [TOPIC]}
    assert canonical_filter_key(a) == canonical_filter_key(b)


def test_canonical_filter_key_single_address_matches_list():
    assert canonical_filter_key({"address": TOKEN_A}) == canonical_filter_key({"address": [TOKEN_A]})
    assert canonical_filter_key({"address": [TOKEN_A, TOKEN_B]}) == canonical_filter_key(
        {"address": [TOKEN_B, TOKEN_A]}
    )


def test_canonical_filter_key_topic_positions_matter():
    assert canonical_filter_key({"topics": [TOPIC, None]}) != canonical_filter_key(
        {"topics": [None, TOPIC]}
    )


def test_group_actions_partitions_by_kind_and_preserves_order():
    b1, b2 = block_action(TOKEN_A), block_action(TOKEN_B)
    t1, t2, t3 = time_action(1000, TOKEN_A), time_action(5000), time_action(1000, TOKEN_C)
    e1 = event_action({"address": TOKEN_A})

    grouped = group_actions([t1, b1, e1, t2, b2, t3])

    assert grouped.block.kind is TriggerType.BLOCK
    assert grouped.block.members == (b1, b2)
    assert list(grouped.time) == [1000, 5000]
    assert grouped.time[1000].members == (t1, t3)
    assert grouped.time[5000].members == (t2,)
    assert len(grouped.event) == 1
    assert len(grouped.groups) == 4


def test_equal_intervals_share_one_group():
    actions = [time_action(1000) for _ in range(5)]
    grouped = group_actions(actions)
    assert list(grouped.time) == [1000]
    assert len(grouped.time[1000]) == 5


def test_equal_filters_share_one_group():
    e1 = event_action({"address": TOKEN_A, "topics": [TOPIC]})
    e2 = event_action({"topics": [TOPIC.upper().replace("0X", "0x")], "address": TOKEN_A.lower()})
    e3 = event_action({"address": TOKEN_B})

    grouped = group_actions([e1, e2, e3])

    assert len(grouped.event) == 2
    first = grouped.event[canonical_filter_key(e1.trigger.log_filter)]
    assert first.members == (e1, e2)
    assert first.log_filter == e1.trigger.log_filter


def test_empty_kinds_are_omitted():
    grouped = group_actions([time_action(250)])
    assert grouped.block is None
    assert grouped.event == {}
    assert group_actions([]).groups == ()


def test_topic_string_filters_group_like_mappings():
    e1 = event_action(TOPIC)
    e2 = event_action({"topics": [TOPIC.upper().replace("0X", "0x")]})
    e3 = event_action([TOPIC, None])

    grouped = group_actions([e1, e2, e3])

    assert len(grouped.event) == 2
    assert grouped.event[canonical_filter_key({"topics": [TOPIC]})].members == (e1, e2)


def test_canonical_filter_key_rejects_non_mapping():
    with pytest.raises(TypeError):
        canonical_filter_key(TOPIC)
