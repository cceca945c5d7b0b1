"""
Exceptions and error codes for the Counter SDK.

Every failure the SDK can report belongs to one of four kinds (see ErrorKind).
Inner layers raise the exceptions defined here; the transaction orchestrator
converts them into tagged TxError values stored on transaction records.
"""
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Top-level error taxonomy."""
    VALIDATION = "VALIDATION"
    LEDGER_REJECTION = "LEDGER_REJECTION"
    WALLET = "WALLET"
    TRANSIENT_NETWORK = "TRANSIENT_NETWORK"


class ErrorCode(str, Enum):
    """
    Fine-grained error codes.

    Each code belongs to exactly one ErrorKind and maps to exactly one
    user-facing message in ERROR_MESSAGES.
    """
    # Validation
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    WALLET_NOT_CONNECTED = "WALLET_NOT_CONNECTED"
    CONTRACT_NOT_CONFIGURED = "CONTRACT_NOT_CONFIGURED"

    # Ledger rejections
    MAX_COUNT_EXCEEDED = "MAX_COUNT_EXCEEDED"
    MIN_COUNT_EXCEEDED = "MIN_COUNT_EXCEEDED"
    PAUSED = "PAUSED"
    NOT_OWNER = "NOT_OWNER"
    INVALID_IDENTITY = "INVALID_IDENTITY"
    REVERTED = "REVERTED"

    # Wallet
    UNAVAILABLE = "UNAVAILABLE"
    USER_REJECTED = "USER_REJECTED"
    HANDSHAKE_TIMEOUT = "HANDSHAKE_TIMEOUT"
    NETWORK_MISMATCH = "NETWORK_MISMATCH"

    # Transient network
    TIMEOUT = "TIMEOUT"
    CONNECTION_LOST = "CONNECTION_LOST"


ERROR_MESSAGES = {
    ErrorCode.INVALID_AMOUNT: "Please enter a valid amount",
    ErrorCode.INVALID_ADDRESS: "Please enter a valid account address",
    ErrorCode.WALLET_NOT_CONNECTED: "Please connect your wallet first",
    ErrorCode.CONTRACT_NOT_CONFIGURED: "Contract not deployed or invalid contract address",
    ErrorCode.MAX_COUNT_EXCEEDED: "Cannot increment beyond maximum count",
    ErrorCode.MIN_COUNT_EXCEEDED: "Cannot decrement below minimum count",
    ErrorCode.PAUSED: "Contract is currently paused",
    ErrorCode.NOT_OWNER: "Only the contract owner can perform this action",
    ErrorCode.INVALID_IDENTITY: "The new owner cannot be the zero address",
    ErrorCode.REVERTED: "Contract execution reverted",
    ErrorCode.UNAVAILABLE: "The selected wallet is not available",
    ErrorCode.USER_REJECTED: "Request was rejected by wallet",
    ErrorCode.HANDSHAKE_TIMEOUT: "Wallet did not respond in time",
    ErrorCode.NETWORK_MISMATCH: "Wallet is connected to the wrong network",
    ErrorCode.TIMEOUT: "Request timed out. Please try again.",
    ErrorCode.CONNECTION_LOST: "Network error. Please check your connection.",
}


class CounterSDKError(Exception):
    """Base exception for all Counter SDK errors."""

    kind: ErrorKind = ErrorKind.VALIDATION
    default_code: ErrorCode = ErrorCode.INVALID_AMOUNT

    def __init__(
        self,
        code: Optional[ErrorCode] = None,
        detail: Optional[str] = None,
        data: Optional[Any] = None,
    ):
        self.code = ErrorCode(code) if code is not None else self.default_code
        self.detail = detail
        self.data = data
        super().__init__(detail or ERROR_MESSAGES[self.code])

    @property
    def user_message(self) -> str:
        """Human-readable message for this error's code"""
        return ERROR_MESSAGES[self.code]


class ValidationError(CounterSDKError):
    """Client-side precondition failure, detected before any network traffic."""
    kind = ErrorKind.VALIDATION
    default_code = ErrorCode.INVALID_AMOUNT


class LedgerRejection(CounterSDKError):
    """Raised when the ledger (or the cache, best-effort) rejects an operation."""
    kind = ErrorKind.LEDGER_REJECTION
    default_code = ErrorCode.REVERTED


class MaxCountExceeded(LedgerRejection):
    default_code = ErrorCode.MAX_COUNT_EXCEEDED


class MinCountExceeded(LedgerRejection):
    default_code = ErrorCode.MIN_COUNT_EXCEEDED


class Paused(LedgerRejection):
    default_code = ErrorCode.PAUSED


class NotOwner(LedgerRejection):
    default_code = ErrorCode.NOT_OWNER


class InvalidIdentity(LedgerRejection):
    default_code = ErrorCode.INVALID_IDENTITY


class WalletError(CounterSDKError):
    """Raised when a wallet capability cannot complete a request."""
    kind = ErrorKind.WALLET
    default_code = ErrorCode.UNAVAILABLE


class TransientNetworkError(CounterSDKError):
    """Raised on read/submission timeouts or connectivity loss."""
    kind = ErrorKind.TRANSIENT_NETWORK
    default_code = ErrorCode.CONNECTION_LOST


_CODE_TO_CLASS = {
    ErrorCode.MAX_COUNT_EXCEEDED: MaxCountExceeded,
    ErrorCode.MIN_COUNT_EXCEEDED: MinCountExceeded,
    ErrorCode.PAUSED: Paused,
    ErrorCode.NOT_OWNER: NotOwner,
    ErrorCode.INVALID_IDENTITY: InvalidIdentity,
    ErrorCode.REVERTED: LedgerRejection,
}


def ledger_rejection(code: ErrorCode, detail: Optional[str] = None) -> LedgerRejection:
    """
    Build the LedgerRejection subclass matching a ledger error code.

    Args:
        code: One of the LEDGER_REJECTION codes
        detail: Optional diagnostic detail (kept out of user messages)

    Returns:
        LedgerRejection instance
    """
    cls = _CODE_TO_CLASS.get(code, LedgerRejection)
    return cls(code, detail)
