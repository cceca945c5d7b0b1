"""
Data models for the Counter SDK.
"""
import time
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import MAX_COUNT, MIN_COUNT
from .exceptions import ERROR_MESSAGES, CounterSDKError, ErrorCode, ErrorKind


class BackendKind(str, Enum):
    """Wallet capability variants"""
    INJECTED = "injected"
    RELAY = "relay"
    MOCK = "mock"


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class TransactionKind(str, Enum):
    INCREMENT = "increment"
    DECREMENT = "decrement"
    INCREMENT_BY = "incrementBy"
    DECREMENT_BY = "decrementBy"
    RESET = "reset"
    PAUSE = "pause"
    UNPAUSE = "unpause"
    TRANSFER_OWNERSHIP = "transferOwnership"


OWNER_ONLY_KINDS = frozenset({
    TransactionKind.RESET,
    TransactionKind.PAUSE,
    TransactionKind.UNPAUSE,
    TransactionKind.TRANSFER_OWNERSHIP,
})

COUNTING_KINDS = frozenset({
    TransactionKind.INCREMENT,
    TransactionKind.DECREMENT,
    TransactionKind.INCREMENT_BY,
    TransactionKind.DECREMENT_BY,
})


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class CounterState(BaseModel):
    """Authoritative counter state held by the ledger"""
    count: int = Field(ge=MIN_COUNT, le=MAX_COUNT)
    owner: str
    paused: bool = False


class ContractInfo(BaseModel):
    """Result of getContractInfo()"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    count: int
    owner: str
    paused: bool
    max_count: int = Field(MAX_COUNT, alias="maxCount")
    min_count: int = Field(MIN_COUNT, alias="minCount")


class WalletSession(BaseModel):
    """The client's binding to one connected wallet capability"""
    account_id: str
    network: str
    status: ConnectionStatus = ConnectionStatus.CONNECTED
    backend: BackendKind
    balance: Optional[str] = None
    address: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED

    def to_descriptor(self) -> "SessionDescriptor":
        return SessionDescriptor(
            account_id=self.account_id,
            network=self.network,
            backend=self.backend,
            balance=self.balance,
            address=self.address,
        )


class SessionDescriptor(BaseModel):
    """Minimal persisted form of a WalletSession"""
    account_id: str
    network: str
    backend: BackendKind
    balance: Optional[str] = None
    address: Optional[str] = None


class OperationRequest(BaseModel):
    """A mutating ledger call to be signed and submitted by a capability"""
    kind: TransactionKind
    amount: Optional[int] = None
    new_owner: Optional[str] = None
    contract_address: Optional[str] = None

    @property
    def function_name(self) -> str:
        return self.kind.value

    @property
    def args(self) -> List[Any]:
        if self.kind in (TransactionKind.INCREMENT_BY, TransactionKind.DECREMENT_BY):
            return [self.amount]
        if self.kind == TransactionKind.TRANSFER_OWNERSHIP:
            return [self.new_owner]
        return []


class SubmissionResult(BaseModel):
    """Normalized acknowledgement from a capability's sign_and_submit()"""
    tx_hash: str
    accepted: bool = True
    error: Optional[str] = None
    caller: Optional[str] = None
    events: List[Dict[str, Any]] = Field(default_factory=list)


class TxError(BaseModel):
    """
    Tagged error value attached to a failed TransactionRecord.

    `kind` is one of the four taxonomy kinds; `code` refines it. `message`
    is always the human-readable text for `code`.
    """
    kind: ErrorKind
    code: ErrorCode
    message: str
    detail: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: CounterSDKError) -> "TxError":
        return cls(
            kind=exc.kind,
            code=exc.code,
            message=ERROR_MESSAGES[exc.code],
            detail=exc.detail,
        )


def _new_tx_id() -> str:
    return f"tx_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class TransactionRecord(BaseModel):
    """A single user-initiated ledger mutation and its outcome"""
    id: str = Field(default_factory=_new_tx_id)
    kind: TransactionKind
    status: TransactionStatus = TransactionStatus.PENDING
    amount: Optional[int] = None
    tx_hash: Optional[str] = None
    submitted_at: float = Field(default_factory=time.time)
    resolved_at: Optional[float] = None
    error: Optional[TxError] = None

    @property
    def is_resolved(self) -> bool:
        return self.status != TransactionStatus.PENDING


class CachedLedgerSnapshot(BaseModel):
    """Local mirror of ledger state produced by the contract state cache"""
    model_config = ConfigDict(frozen=True)

    info: ContractInfo
    refresh_sequence: int
    fetched_at: float = Field(default_factory=time.time)
    optimistic: bool = False

    @property
    def count(self) -> int:
        return self.info.count
