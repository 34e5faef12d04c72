#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
etherstate – Chain client
=========================
The narrow chain capability the engine consumes, plus an adapter over
web3.py's AsyncWeb3 that polls for new heads and matching logs.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Protocol

from hexbytes import HexBytes
from web3 import AsyncHTTPProvider, AsyncWeb3

from etherstate.loggingconfig import setup_logging

logger = setup_logging("ChainClient", level="INFO")

BlockCallback = Callable[[int], Awaitable[Any]]
LogCallback = Callable[[Mapping[str, Any]], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class Subscription:
    kind: str
    id: int


class ChainClient(Protocol):
    async def static_call(self, target: str, data: bytes) -> bytes:
        """Execute a read-only call against current state and return the raw bytes."""
        ...

    async def get_block_number(self) -> int:
        ...

    def subscribe_blocks(self, callback: BlockCallback) -> Subscription:
        ...

    def subscribe_logs(self, log_filter: Mapping[str, Any], callback: LogCallback) -> Subscription:
        ...

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription. Unknown or already removed handles are ignored."""
        ...


def create_web3(endpoint: str) -> AsyncWeb3:
    return AsyncWeb3(AsyncHTTPProvider(endpoint))


class Web3ChainClient:
    """ChainClient backed by an AsyncWeb3 instance."""

    DEFAULT_POLL_INTERVAL: float = 2.0
    DEFAULT_MAX_LOG_RANGE: int = 1000

    def __init__(
        self,
        web3: AsyncWeb3,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_log_range: int = DEFAULT_MAX_LOG_RANGE,
    ):
        """
        Args:
            web3: An AsyncWeb3 instance.
            poll_interval: Seconds between head / log polls.
            max_log_range: Most blocks requested by a single eth_getLogs call.
        """
        if max_log_range < 1:
            raise ValueError(f"max_log_range must be positive, got {max_log_range}")
        self.web3 = web3
        self.poll_interval = poll_interval
        self.max_log_range = max_log_range
        self._tasks: Dict[int, asyncio.Task] = {}
        self._ids = itertools.count(1)

    async def static_call(self, target: str, data: bytes) -> bytes:
        result = await self.web3.eth.call({"to": target, "data": HexBytes(data)})
        return bytes(result)

    async def get_block_number(self) -> int:
        return int(await self.web3.eth.block_number)

    def subscribe_blocks(self, callback: BlockCallback) -> Subscription:
        return self._spawn("block", self._poll_blocks(callback))

    def subscribe_logs(self, log_filter: Mapping[str, Any], callback: LogCallback) -> Subscription:
        return self._spawn("logs", self._poll_logs(dict(log_filter), callback))

    def unsubscribe(self, subscription: Subscription) -> None:
        task = self._tasks.pop(subscription.id, None)
        if task is not None:
            task.cancel()
            logger.debug(f"Unsubscribed {subscription.kind} listener #{subscription.id}")

    async def close(self) -> None:
        """Cancel every polling task still owned by this client."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------ #

    def _spawn(self, kind: str, coro: Awaitable[None]) -> Subscription:
        subscription = Subscription(kind, next(self._ids))
        self._tasks[subscription.id] = asyncio.create_task(
            coro, name=f"etherstate-{kind}-{subscription.id}"
        )
        return subscription

    async def _deliver(self, callback: Callable[[Any], Awaitable[Any]], arg: Any, kind: str) -> None:
        try:
            await callback(arg)
        except Exception as e:
            logger.error(f"Error in {kind} listener: {e}")

    async def _poll_blocks(self, callback: BlockCallback) -> None:
        last_block = None
        while True:
            try:
                current = await self.get_block_number()
                if last_block is None or current > last_block:
                    last_block = current
                    await self._deliver(callback, current, "block")
            except Exception as e:
                logger.error(f"Error polling block number: {e}")
            await asyncio.sleep(self.poll_interval)

    async def _poll_logs(self, log_filter: Dict[str, Any], callback: LogCallback) -> None:
        from_block = None
        while True:
            try:
                head = await self.get_block_number()
                if from_block is None:
                    # only logs emitted after subscribing
                    from_block = head + 1
                while head >= from_block:
                    to_block = min(head, from_block + self.max_log_range - 1)
                    logs = await self.web3.eth.get_logs(
                        {**log_filter, "fromBlock": from_block, "toBlock": to_block}
                    )
                    from_block = to_block + 1
                    for log in logs:
                        await self._deliver(callback, log, "log")
            except Exception as e:
                logger.error(f"Error polling logs from block {from_block}: {e}")
            await asyncio.sleep(self.poll_interval)
