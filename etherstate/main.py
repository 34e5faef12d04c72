"""
Watch an ERC-20 balance from the command line.

Reads HTTP_ENDPOINT, WATCH_TOKEN and WATCH_OWNER (see Configuration) and logs
every balance update until SIGINT/SIGTERM.
"""

import asyncio
import logging
import signal
import sys

from etherstate.actions import TriggerType
from etherstate.builtin import create_erc20_balance_action
from etherstate.chain_client import Web3ChainClient, create_web3
from etherstate.configuration import Configuration
from etherstate.exceptions import EtherStateError
from etherstate.loggingconfig import setup_logging
from etherstate.state_sync import EtherState

logger = setup_logging("Main", level=logging.INFO)


async def main(config: Configuration | None = None) -> int:
    config = config or Configuration()
    for name in ("Main", "EtherState", "Multicall", "ChainClient"):
        logging.getLogger(name).setLevel(config.LOG_LEVEL)
    if not (config.WATCH_TOKEN and config.WATCH_OWNER):
        logger.error("WATCH_TOKEN and WATCH_OWNER must be set to valid addresses")
        return 1

    balances = {}

    def _on_balance(source: str):
        def _set(balance: int) -> None:
            if balances.get(source) != balance:
                logger.info("[%s] balance of %s: %d", source, config.WATCH_OWNER, balance)
            balances[source] = balance
        return _set

    actions = [
        create_erc20_balance_action(
            TriggerType.BLOCK, config.WATCH_TOKEN, config.WATCH_OWNER, _on_balance("block")
        ),
        create_erc20_balance_action(
            TriggerType.TIME, config.WATCH_TOKEN, config.WATCH_OWNER, _on_balance("timer"),
            interval_ms=config.WATCH_INTERVAL_MS,
        ),
    ]

    client = Web3ChainClient(create_web3(config.HTTP_ENDPOINT), poll_interval=config.POLL_INTERVAL)
    state = EtherState(actions, client, config.state_options())

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _signal_handler():
        stop_event.set()

    loop.add_signal_handler(signal.SIGINT, _signal_handler)
    loop.add_signal_handler(signal.SIGTERM, _signal_handler)

    try:
        await state.initialize()
        await stop_event.wait()
    finally:
        await state.dispose()
        await client.close()
    return 0


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except EtherStateError as e:
        logger.critical(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
