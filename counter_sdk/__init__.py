"""
Counter SDK - client for a bounded, access-controlled counter ledger.
"""
from .cache import ContractStateCache
from .client import CounterClient
from .config import NETWORKS, ClientConfig, NetworkConfig, get_network_config
from .constants import MAX_COUNT, MIN_COUNT, SESSION_STORAGE_KEY
from .exceptions import (
    ERROR_MESSAGES, CounterSDKError, ErrorCode, ErrorKind, InvalidIdentity, LedgerRejection,
    MaxCountExceeded, MinCountExceeded, NotOwner, Paused, TransientNetworkError,
    ValidationError, WalletError
)
from .history import TransactionHistory
from .ledger import CounterLedger, InMemoryLedgerReader, LedgerReader, Web3LedgerReader
from .models import (
    BackendKind, CachedLedgerSnapshot, ConnectionStatus, ContractInfo, OperationRequest,
    SessionDescriptor, SubmissionResult, TransactionKind, TransactionRecord,
    TransactionStatus, TxError, WalletSession
)
from .orchestrator import TransactionOrchestrator
from .session import SessionManager
from .storage import MemorySessionStore, SessionStore
from .version import __version__
from .wallet import (
    CapabilityRegistry, DeterministicTestCapability, LocalInjectedCapability,
    RelayPairingCapability, WalletCapability, default_registry
)

__all__ = [
    "CounterClient",
    "ClientConfig",
    "NetworkConfig",
    "NETWORKS",
    "get_network_config",
    "MAX_COUNT",
    "MIN_COUNT",
    "SESSION_STORAGE_KEY",
    "CounterLedger",
    "LedgerReader",
    "InMemoryLedgerReader",
    "Web3LedgerReader",
    "WalletCapability",
    "LocalInjectedCapability",
    "RelayPairingCapability",
    "DeterministicTestCapability",
    "CapabilityRegistry",
    "default_registry",
    "SessionManager",
    "SessionStore",
    "MemorySessionStore",
    "ContractStateCache",
    "TransactionOrchestrator",
    "TransactionHistory",
    "BackendKind",
    "ConnectionStatus",
    "TransactionKind",
    "TransactionStatus",
    "ContractInfo",
    "WalletSession",
    "SessionDescriptor",
    "OperationRequest",
    "SubmissionResult",
    "TransactionRecord",
    "CachedLedgerSnapshot",
    "TxError",
    "ErrorKind",
    "ErrorCode",
    "ERROR_MESSAGES",
    "CounterSDKError",
    "ValidationError",
    "LedgerRejection",
    "MaxCountExceeded",
    "MinCountExceeded",
    "Paused",
    "NotOwner",
    "InvalidIdentity",
    "WalletError",
    "TransientNetworkError",
    "__version__",
]
