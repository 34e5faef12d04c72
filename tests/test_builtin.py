from unittest.mock import MagicMock

import pytest

from etherstate.actions import BlockAction, EventAction, TimeAction, TriggerType
from etherstate.builtin import (
    create_erc20_balance_action,
    create_native_balance_action,
    transfer_filter,
)
from etherstate.exceptions import InvalidTargetError
from etherstate.multicall import MULTICALL2_ADDRESS
from etherstate.state_sync import EtherState

from conftest import BLOCK_HASH, OWNER, TOKEN_A, TOKEN_B, uint_result

TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def test_block_balance_action():
    set_balance = MagicMock()
    action = create_erc20_balance_action(TriggerType.BLOCK, TOKEN_A.lower(), OWNER, set_balance)

    assert isinstance(action, BlockAction)
    assert action.call.resolve_target() == TOKEN_A
    assert action.call.signature == "balanceOf(address)"
    assert action.input_encoder(123) == [OWNER]

    action.output_handler([42], 123, BLOCK_HASH)
    set_balance.assert_called_once_with(42)


def test_time_balance_action_requires_interval():
    with pytest.raises(ValueError):
        create_erc20_balance_action(TriggerType.TIME, TOKEN_A, OWNER, MagicMock())
    action = create_erc20_balance_action(TriggerType.TIME, TOKEN_A, OWNER, MagicMock(),
                                         interval_ms=5000)
    assert isinstance(action, TimeAction)
    assert action.trigger.interval_ms == 5000


def _padded(address):
    return "0x" + "0" * 24 + address[2:].lower()


def _log_matches(log, log_filter):
    """eth_getLogs matching: address equality, positional topics, None as wildcard."""
    if log["address"].lower() != log_filter["address"].lower():
        return False
    wanted = log_filter.get("topics", [])
    if len(wanted) > len(log["topics"]):
        return False
    return all(w is None or w == t for w, t in zip(wanted, log["topics"]))


def test_event_balance_action_watches_transfers_both_ways():
    action = create_erc20_balance_action(TriggerType.EVENT, TOKEN_A, OWNER, MagicMock())

    assert isinstance(action, EventAction)
    log_filter = action.trigger.log_filter
    assert log_filter == {"address": TOKEN_A, "topics": [TRANSFER_TOPIC]}

    other = _padded(TOKEN_B)
    incoming = {"address": TOKEN_A, "topics": [TRANSFER_TOPIC, other, _padded(OWNER)]}
    outgoing = {"address": TOKEN_A, "topics": [TRANSFER_TOPIC, _padded(OWNER), other]}
    foreign = {"address": TOKEN_B, "topics": [TRANSFER_TOPIC, _padded(OWNER), other]}
    assert _log_matches(incoming, log_filter)
    assert _log_matches(outgoing, log_filter)
    assert not _log_matches(foreign, log_filter)
    assert action.input_encoder({"blockNumber": 1}, 1) == [OWNER]


def test_transfer_filter_by_direction():
    incoming = transfer_filter(TOKEN_A, OWNER)
    assert incoming["topics"] == [TRANSFER_TOPIC, None, _padded(OWNER)]
    outgoing = transfer_filter(TOKEN_A, OWNER, incoming=False)
    assert outgoing["topics"] == [TRANSFER_TOPIC, _padded(OWNER)]
    assert transfer_filter(TOKEN_A)["topics"] == [TRANSFER_TOPIC]


@pytest.mark.parametrize("token, owner", [("0xbad", OWNER), (TOKEN_A, "owner")])
def test_invalid_addresses_fail_at_construction(token, owner):
    with pytest.raises(InvalidTargetError):
        create_erc20_balance_action(TriggerType.BLOCK, token, owner, MagicMock())


def test_native_balance_action_targets_aggregator():
    action = create_native_balance_action(TriggerType.BLOCK, OWNER, MagicMock())
    assert action.call.resolve_target().lower() == MULTICALL2_ADDRESS
    assert action.call.signature == "getEthBalance(address)"


@pytest.mark.asyncio
async def test_balance_action_end_to_end(fake_client):
    balances = []
    fake_client.responders[TOKEN_A] = uint_result(10**18)
    action = create_erc20_balance_action(TriggerType.BLOCK, TOKEN_A, OWNER, balances.append)

    async with EtherState([action], fake_client):
        await fake_client.emit_block(101)

    assert balances == [10**18]
