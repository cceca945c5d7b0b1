"""
Counter ledger: the authoritative state machine, its change records and
read access to the deployed contract.
"""
from .abi import COUNTER_ABI
from .client import (
    InMemoryLedgerReader, LedgerReader, Web3LedgerReader, decode_revert, parse_events
)
from .counter import CounterLedger, is_null_identity
from .events import (
    ContractPaused, ContractUnpaused, CountDecremented, CountIncremented, CountReset,
    LedgerEvent, OwnershipTransferred
)

__all__ = [
    "COUNTER_ABI",
    "CounterLedger",
    "LedgerReader",
    "InMemoryLedgerReader",
    "Web3LedgerReader",
    "decode_revert",
    "parse_events",
    "is_null_identity",
    "LedgerEvent",
    "CountIncremented",
    "CountDecremented",
    "CountReset",
    "OwnershipTransferred",
    "ContractPaused",
    "ContractUnpaused",
]
