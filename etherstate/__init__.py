"""
etherstate – batched, trigger-driven on-chain state synchronisation.
"""

from etherstate.actions import (
    Action,
    BlockAction,
    BlockTrigger,
    EventAction,
    EventTrigger,
    TimeAction,
    TimeTrigger,
    TriggerType,
)
from etherstate.chain_client import ChainClient, Subscription, Web3ChainClient
from etherstate.contract_call import ContractCall
from etherstate.exceptions import (
    ActionDecodeError,
    AggregateCallError,
    EngineStateError,
    EtherStateError,
    InvalidTargetError,
    UnsupportedTriggerError,
)
from etherstate.multicall import MULTICALL2_ADDRESS
from etherstate.state_sync import EtherState, StateOptions

__all__: list[str] = [
    "Action",
    "ActionDecodeError",
    "AggregateCallError",
    "BlockAction",
    "BlockTrigger",
    "ChainClient",
    "ContractCall",
    "EngineStateError",
    "EtherState",
    "EtherStateError",
    "EventAction",
    "EventTrigger",
    "InvalidTargetError",
    "MULTICALL2_ADDRESS",
    "StateOptions",
    "Subscription",
    "TimeAction",
    "TimeTrigger",
    "TriggerType",
    "UnsupportedTriggerError",
    "Web3ChainClient",
]
