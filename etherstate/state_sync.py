#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
etherstate – EtherState
=======================
Keeps caller-owned state in sync with on-chain reads. Owns the block
watermark, one timer per distinct interval and one log subscription per
distinct filter, and routes every firing through the aggregation dispatcher.
"""

from __future__ import annotations

import asyncio
import enum
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from etherstate.actions import (
    Action,
    BlockContext,
    EventContext,
    FiringContext,
    TimeContext,
    TriggerType,
    log_block_number,
)
from etherstate.chain_client import ChainClient, Subscription
from etherstate.exceptions import EngineStateError, UnsupportedTriggerError
from etherstate.grouping import ExecutionGroup, group_actions
from etherstate.loggingconfig import setup_logging
from etherstate.multicall import Aggregator, Dispatcher, Watermark

logger = setup_logging("EtherState", level="INFO")


class EngineState(enum.Enum):
    CONSTRUCTING = "constructing"
    ACTIVE = "active"
    DISPOSED = "disposed"


@dataclass(frozen=True, slots=True)
class StateOptions:
    custom_aggregator_address: Optional[str] = None
    populate_on_start: bool = False


class FiringChannel:
    """
    Queue of pending firings for one execution group, drained by a single
    worker. `fire()` resolves with the dispatch outcome or raises its error.
    """

    def __init__(self, group: ExecutionGroup, dispatcher: Dispatcher):
        self.group = group
        self._dispatcher = dispatcher
        self._queue: asyncio.Queue[Tuple[FiringContext, asyncio.Future]] = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self.closed = False

    def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(
                self._run(), name=f"etherstate-{self.group.kind.value}-{self.group.firing_key}"
            )

    async def fire(self, context: FiringContext) -> bool:
        if self.closed:
            return False
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((context, future))
        return await future

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._worker is not None:
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None
        while not self._queue.empty():
            _, future = self._queue.get_nowait()
            if not future.done():
                future.set_result(False)

    async def _run(self) -> None:
        while True:
            context, future = await self._queue.get()
            if future.done():
                # initiator stopped waiting
                continue
            try:
                applied = await self._dispatcher.dispatch(self.group, context)
            except asyncio.CancelledError:
                if not future.done():
                    future.set_result(False)
                raise
            except Exception as exc:
                if not future.done():
                    future.set_exception(exc)
            else:
                if not future.done():
                    future.set_result(applied)


class EtherState:
    """
    Batched, trigger-driven contract reads.

    The action set is fixed at construction; build a new instance (and
    dispose the old one) to change it.

    Usage::

        state = EtherState(actions, client, StateOptions(populate_on_start=True))
        await state.initialize()
        ...
        await state.dispose()
    """

    def __init__(
        self,
        actions: Iterable[Action],
        client: ChainClient,
        options: Optional[StateOptions] = None,
    ):
        self.client = client
        self.options = options or StateOptions()
        self.state = EngineState.CONSTRUCTING

        self.groups = group_actions(actions)
        self.watermark = Watermark()
        self.aggregator = Aggregator(client, self.options.custom_aggregator_address)
        self._dispatcher = Dispatcher(self.aggregator, self.watermark)

        self._block_channel: Optional[FiringChannel] = None
        self._time_channels: Dict[int, FiringChannel] = {}
        self._event_channels: Dict[str, FiringChannel] = {}

        self._block_subscription: Optional[Subscription] = None
        self._event_subscriptions: List[Subscription] = []
        self._timers: Dict[int, asyncio.Task] = {}

        logger.debug(
            "EtherState built: %d block, %d interval, %d event group(s) via aggregator %s",
            1 if self.groups.block else 0,
            len(self.groups.time),
            len(self.groups.event),
            self.aggregator.address,
        )

    # ------------------------------------------------------------------ #
    # lifecycle                                                          #
    # ------------------------------------------------------------------ #

    @property
    def latest_block(self) -> int:
        return self.watermark.latest

    async def initialize(self) -> None:
        """Register listeners, timers and subscriptions, then warm start if requested."""
        if self.state is EngineState.ACTIVE:
            return
        self._require_state(EngineState.CONSTRUCTING, "initialize")

        if self.groups.block is not None:
            self._block_channel = self._open_channel(self.groups.block)
            self._block_subscription = self.client.subscribe_blocks(self._on_block)

        for interval_ms, group in self.groups.time.items():
            channel = self._open_channel(group)
            self._time_channels[interval_ms] = channel
            self._timers[interval_ms] = asyncio.create_task(
                self._run_timer(interval_ms, channel), name=f"etherstate-timer-{interval_ms}ms"
            )

        for key, group in self.groups.event.items():
            channel = self._open_channel(group)
            self._event_channels[key] = channel
            self._event_subscriptions.append(
                self.client.subscribe_logs(group.log_filter, self._log_listener(channel))
            )

        self.state = EngineState.ACTIVE
        logger.info(
            "EtherState active (%d timer(s), %d event subscription(s))",
            len(self._timers),
            len(self._event_subscriptions),
        )

        if self.options.populate_on_start:
            await self._populate()

    async def update(self, kind: TriggerType) -> None:
        """
        Re-evaluate BLOCK or TIME actions on demand.

        BLOCK fetches the chain head and runs the regular (gated) block path.
        TIME fires every interval group now, leaving the timer schedule as is.
        Failures of the aggregated call are raised to the caller.
        """
        self._require_state(EngineState.ACTIVE, "update")
        match kind:
            case TriggerType.BLOCK:
                if self._block_channel is None:
                    return
                block_number = await self.client.get_block_number()
                await self._on_block(block_number)
            case TriggerType.TIME:
                await asyncio.gather(
                    *(self._fire_time(channel) for channel in self._time_channels.values())
                )
            case TriggerType.EVENT:
                raise UnsupportedTriggerError("Event actions cannot be updated manually")
            case _:
                raise UnsupportedTriggerError(f"Unknown trigger kind: {kind!r}")

    async def dispose(self) -> None:
        """Stop every listener, timer and subscription. Safe to call repeatedly."""
        if self.state is EngineState.DISPOSED:
            return
        self.state = EngineState.DISPOSED
        self._dispatcher.close()

        subscriptions = list(self._event_subscriptions)
        if self._block_subscription is not None:
            subscriptions.insert(0, self._block_subscription)
        self._block_subscription = None
        self._event_subscriptions.clear()
        for subscription in subscriptions:
            try:
                self.client.unsubscribe(subscription)
            except Exception as e:
                logger.warning("Ignoring error while unsubscribing %s: %s", subscription, e)

        timers = list(self._timers.values())
        self._timers.clear()
        for task in timers:
            task.cancel()
        await asyncio.gather(*timers, return_exceptions=True)

        channels = list(self._time_channels.values()) + list(self._event_channels.values())
        if self._block_channel is not None:
            channels.append(self._block_channel)
        for channel in channels:
            await channel.close()

        logger.info("EtherState disposed at block %d", self.watermark.latest)

    async def __aenter__(self) -> "EtherState":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.dispose()

    # ------------------------------------------------------------------ #
    # trigger callbacks                                                  #
    # ------------------------------------------------------------------ #

    async def _on_block(self, block_number: int) -> bool:
        if self.state is not EngineState.ACTIVE or self._block_channel is None:
            return False
        if not self.watermark.admits(block_number):
            logger.debug(
                "Ignoring block %d (watermark %d)", block_number, self.watermark.latest
            )
            return False
        return await self._block_channel.fire(BlockContext(block_number))

    def _log_listener(self, channel: FiringChannel):
        async def _on_log(log: Mapping[str, Any]) -> bool:
            if self.state is not EngineState.ACTIVE:
                return False
            return await channel.fire(EventContext(log, log_block_number(log)))

        return _on_log

    async def _fire_time(self, channel: FiringChannel) -> bool:
        return await channel.fire(TimeContext(int(time.time() * 1000)))

    async def _run_timer(self, interval_ms: int, channel: FiringChannel) -> None:
        loop = asyncio.get_running_loop()
        period = interval_ms / 1000
        next_tick = loop.time() + period
        while True:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            next_tick += period
            try:
                await self._fire_time(channel)
            except Exception as e:
                logger.error(
                    "Timer firing (%d ms) failed: %s", interval_ms, e,
                    extra={"firing_key": interval_ms},
                )
            now = loop.time()
            while next_tick <= now:
                next_tick += period

    async def _populate(self) -> None:
        if self._block_channel is not None:
            # ungated; the staleness guard still protects a newer watermark
            await self._block_channel.fire(BlockContext(0))
        await self.update(TriggerType.TIME)

    # ------------------------------------------------------------------ #

    def _open_channel(self, group: ExecutionGroup) -> FiringChannel:
        channel = FiringChannel(group, self._dispatcher)
        channel.start()
        return channel

    def _require_state(self, expected: EngineState, operation: str) -> None:
        if self.state is not expected:
            raise EngineStateError(
                f"Cannot {operation} while {self.state.value} (expected {expected.value})"
            )
