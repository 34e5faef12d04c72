"""
etherstate – Aggregation dispatcher
===================================
Issues one `tryBlockAndAggregate(false, calls)` read per firing against the
Multicall2 aggregator and hands each successful sub-result back to the
action that produced the call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from eth_utils import is_address, to_checksum_address

from etherstate.abi_registry import get_abi
from etherstate.actions import FiringContext, deliver_output, encode_inputs
from etherstate.chain_client import ChainClient
from etherstate.contract_call import ContractCall
from etherstate.exceptions import ActionDecodeError, AggregateCallError, InvalidTargetError
from etherstate.grouping import ExecutionGroup
from etherstate.loggingconfig import setup_logging

logger = setup_logging("Multicall", level="INFO")

MULTICALL2_ADDRESS = "0x5ba1e12693dc8f9c48aad8770482f4739beed696"


@dataclass(frozen=True, slots=True)
class CallResult:
    success: bool
    return_data: bytes


@dataclass(frozen=True, slots=True)
class AggregateResult:
    block_number: int
    block_hash: bytes
    results: Tuple[CallResult, ...]


class Watermark:
    """
    Highest block whose results have been applied. Reads and updates never
    suspend, so a check-and-advance is atomic on the event loop.
    """

    def __init__(self, latest: int = 0) -> None:
        self.latest: int = latest

    def admits(self, block_number: int) -> bool:
        """Entry gate for new-head notifications: strictly newer blocks only."""
        return block_number > self.latest

    def advance(self, reported_block: int) -> bool:
        """Staleness guard. Returns False if the result is older than the watermark."""
        if reported_block < self.latest:
            return False
        self.latest = max(self.latest, reported_block)
        return True


class Aggregator:
    """Client-side view of the on-chain Multicall2 contract."""

    def __init__(self, client: ChainClient, address: Optional[str] = None) -> None:
        address = address or MULTICALL2_ADDRESS
        if not is_address(address):
            raise InvalidTargetError(address, f"Invalid aggregator address: {address!r}")
        self.client = client
        self.address: str = to_checksum_address(address)
        self._call = ContractCall(
            target=lambda: self.address,
            abi=get_abi("multicall2"),
            function="tryBlockAndAggregate",
        )

    async def try_block_and_aggregate(self, calls: Sequence[Tuple[str, bytes]]) -> AggregateResult:
        """Run every call independently (requireSuccess = false) in one round trip."""
        data = self._call.encode([False, [(target, call_data) for target, call_data in calls]])
        try:
            raw = await self.client.static_call(self._call.resolve_target(), data)
        except Exception as exc:
            raise AggregateCallError(f"Aggregated call to {self.address} failed: {exc}") from exc

        try:
            block_number, block_hash, results = self._call.decode(raw)
        except ActionDecodeError as exc:
            raise AggregateCallError(f"Malformed aggregator response: {exc}") from exc
        if len(results) != len(calls):
            raise AggregateCallError(
                f"Aggregator returned {len(results)} results for {len(calls)} calls"
            )
        return AggregateResult(
            block_number=int(block_number),
            block_hash=bytes(block_hash),
            results=tuple(CallResult(bool(ok), bytes(ret)) for ok, ret in results),
        )


class Dispatcher:
    """Runs one firing of an execution group end to end."""

    def __init__(self, aggregator: Aggregator, watermark: Watermark) -> None:
        self.aggregator = aggregator
        self.watermark = watermark
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def build_calls(self, group: ExecutionGroup, context: FiringContext) -> List[Tuple[str, bytes]]:
        calls = []
        for action in group.members:
            target = action.call.resolve_target()
            calls.append((target, action.call.encode(encode_inputs(action, context))))
        return calls

    async def dispatch(self, group: ExecutionGroup, context: FiringContext) -> bool:
        """
        Encode, aggregate and deliver. Returns True when results were applied,
        False when they were discarded as stale or the dispatcher was closed
        while the call was in flight.

        Raises:
            InvalidTargetError: a member resolved to a malformed address.
            AggregateCallError: the batched read failed; nothing is applied.
            ActionDecodeError: a successful sub-call returned data that does
                not fit its ABI; remaining members of this firing are skipped.
        """
        calls = self.build_calls(group, context)
        result = await self.aggregator.try_block_and_aggregate(calls)

        if self.closed:
            logger.debug("Dropping %s result for block %d: dispatcher closed",
                         group.kind.value, result.block_number)
            return False

        if not self.watermark.advance(result.block_number):
            logger.debug(
                "Discarding stale %s result for block %d (watermark %d)",
                group.kind.value, result.block_number, self.watermark.latest,
                extra={"block_number": result.block_number},
            )
            return False

        for index, (action, outcome) in enumerate(zip(group.members, result.results)):
            if not outcome.success:
                logger.debug("Call #%d (%s) failed at block %d; skipped",
                             index, action.call.signature, result.block_number)
                continue
            try:
                values = action.call.decode(outcome.return_data)
            except ActionDecodeError as exc:
                logger.error("Decode failure for call #%d in %s group: %s",
                             index, group.kind.value, exc)
                raise
            deliver_output(action, values, result.block_number, result.block_hash, context)
        return True
