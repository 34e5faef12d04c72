"""
Shared fixtures: an in-memory chain client that answers Multicall2
`tryBlockAndAggregate` calls by decoding the real calldata.
"""

import asyncio
import itertools
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import to_checksum_address

from etherstate.abi_registry import get_abi
from etherstate.chain_client import Subscription
from etherstate.contract_call import ContractCall

TOKEN_A = to_checksum_address("0x" + "aa" * 20)
TOKEN_B = to_checksum_address("0x" + "bb" * 20)
TOKEN_C = to_checksum_address("0x" + "cc" * 20)
OWNER = to_checksum_address("0x" + "12" * 20)
BLOCK_HASH = b"\x11" * 32

AGGREGATE_INPUT = ["bool", "(address,bytes)[]"]
AGGREGATE_OUTPUT = ["uint256", "bytes32", "(bool,bytes)[]"]

Responder = Callable[[bytes], Tuple[bool, bytes]]


def uint_result(value: int) -> Responder:
    return lambda _call_data: (True, abi_encode(["uint256"], [value]))


def failed_result() -> Responder:
    return lambda _call_data: (False, b"")


def echo_address_arg() -> Responder:
    """balanceOf(owner) responder returning the owner's low 64 bits as the balance."""
    def _respond(call_data: bytes) -> Tuple[bool, bytes]:
        (owner,) = abi_decode(["address"], call_data[4:])
        return True, abi_encode(["uint256"], [int(owner, 16) & 0xFFFFFFFFFFFFFFFF])
    return _respond


def balance_call(token: str) -> ContractCall:
    return ContractCall(target=lambda: token, abi=get_abi("erc20"), function="balanceOf")


class FakeChainClient:
    def __init__(self, block_number: int = 100):
        self.block_number = block_number
        self.reported_block: Optional[int] = None
        self.responders: Dict[str, Responder] = {}
        self.fail_with: Optional[Exception] = None
        self.hold: Optional[asyncio.Event] = None

        self.aggregate_targets: List[str] = []
        self.requests: List[List[Tuple[str, bytes]]] = []
        self.block_callbacks: Dict[int, Callable] = {}
        self.log_callbacks: Dict[int, Tuple[Any, Callable]] = {}
        self.unsubscribed: List[Subscription] = []
        self._ids = itertools.count(1)

    # -- ChainClient ---------------------------------------------------

    async def static_call(self, target: str, data: bytes) -> bytes:
        self.aggregate_targets.append(target)
        require_success, calls = abi_decode(AGGREGATE_INPUT, data[4:])
        assert require_success is False
        calls = [(to_checksum_address(t), bytes(d)) for t, d in calls]
        self.requests.append(calls)
        if self.hold is not None:
            await self.hold.wait()
        if self.fail_with is not None:
            raise self.fail_with
        results = [self.responders[t](d) for t, d in calls]
        block = self.block_number if self.reported_block is None else self.reported_block
        return abi_encode(AGGREGATE_OUTPUT, [block, BLOCK_HASH, results])

    async def get_block_number(self) -> int:
        return self.block_number

    def subscribe_blocks(self, callback) -> Subscription:
        subscription = Subscription("block", next(self._ids))
        self.block_callbacks[subscription.id] = callback
        return subscription

    def subscribe_logs(self, log_filter, callback) -> Subscription:
        subscription = Subscription("logs", next(self._ids))
        self.log_callbacks[subscription.id] = (log_filter, callback)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self.unsubscribed.append(subscription)
        self.block_callbacks.pop(subscription.id, None)
        self.log_callbacks.pop(subscription.id, None)

    # -- test drivers --------------------------------------------------

    async def emit_block(self, block_number: int) -> list:
        self.block_number = block_number
        return [await cb(block_number) for cb in list(self.block_callbacks.values())]

    async def emit_log(self, log) -> list:
        return [await cb(log) for _, cb in list(self.log_callbacks.values())]


@pytest.fixture
def fake_client():
    client = FakeChainClient()
    client.responders[TOKEN_A] = uint_result(1)
    client.responders[TOKEN_B] = uint_result(2)
    client.responders[TOKEN_C] = uint_result(3)
    return client
