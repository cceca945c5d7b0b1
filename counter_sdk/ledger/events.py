"""
Structured change records emitted by the Counter ledger.
"""
from dataclasses import dataclass, asdict
from typing import Any, Dict


@dataclass(frozen=True)
class LedgerEvent:
    """Base class for ledger change records."""

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.name, "args": asdict(self)}


@dataclass(frozen=True)
class CountIncremented(LedgerEvent):
    new_count: int
    caller: str


@dataclass(frozen=True)
class CountDecremented(LedgerEvent):
    new_count: int
    caller: str


@dataclass(frozen=True)
class CountReset(LedgerEvent):
    caller: str


@dataclass(frozen=True)
class OwnershipTransferred(LedgerEvent):
    previous_owner: str
    new_owner: str


@dataclass(frozen=True)
class ContractPaused(LedgerEvent):
    caller: str


@dataclass(frozen=True)
class ContractUnpaused(LedgerEvent):
    caller: str


EVENT_TYPES = {
    cls.__name__: cls
    for cls in (
        CountIncremented,
        CountDecremented,
        CountReset,
        OwnershipTransferred,
        ContractPaused,
        ContractUnpaused,
    )
}
