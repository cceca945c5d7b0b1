"""
Wallet capability interface.

A capability is one interchangeable signing backend. Every variant follows
the same protocol: availability probe, authorization handshake, session
established, then signed submissions of OperationRequests.
"""
import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from ..exceptions import ErrorCode, ValidationError, WalletError
from ..models import (
    BackendKind, ConnectionStatus, OperationRequest, SessionDescriptor, SubmissionResult,
    WalletSession
)

logger = logging.getLogger(__name__)

# Backend-originated events
ACCOUNTS_CHANGED = "accounts_changed"
NETWORK_CHANGED = "network_changed"
DISCONNECT = "disconnect"

EVENTS = (ACCOUNTS_CHANGED, NETWORK_CHANGED, DISCONNECT)


async def maybe_await(value: Any) -> Any:
    """Await value if it is awaitable, otherwise return it unchanged"""
    if inspect.isawaitable(value):
        return await value
    return value


class WalletCapability(ABC):
    """
    Abstract base class for wallet capability implementations.

    Subclasses provide the handshake and submission; this class keeps the
    connected session, the network-mismatch flag and event listeners.
    """

    kind: BackendKind

    def __init__(self, network: str = "testnet", contract_address: Optional[str] = None):
        self.network = network
        self.contract_address = contract_address
        self._session: Optional[WalletSession] = None
        self._network_mismatch = False
        self._listeners: Dict[str, List[Callable[..., Any]]] = {name: [] for name in EVENTS}

    @property
    def session(self) -> Optional[WalletSession]:
        return self._session

    @property
    def network_mismatch(self) -> bool:
        return self._network_mismatch

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check if this capability can be used right now.

        Returns:
            True if the backend is present, False otherwise
        """

    @abstractmethod
    async def connect(self) -> WalletSession:
        """
        Run the authorization handshake.

        Returns:
            The established session

        Raises:
            WalletError: UNAVAILABLE, USER_REJECTED, HANDSHAKE_TIMEOUT or
                NETWORK_MISMATCH
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Tear down the session. Never raises for backend-side failures."""

    @abstractmethod
    async def sign_and_submit(self, request: OperationRequest) -> SubmissionResult:
        """
        Sign and submit a ledger mutation.

        Returns:
            Submission acknowledgement

        Raises:
            ValidationError: If no session is established
            WalletError: If the wallet refuses or is on the wrong network
            LedgerRejection: If the ledger rejects the call
            TransientNetworkError: On timeouts or connectivity loss
        """

    async def resume(self, descriptor: SessionDescriptor) -> WalletSession:
        """
        Rebind a persisted session without a new handshake.

        Raises:
            WalletError: UNAVAILABLE if the backend cannot take the session back
        """
        if not self.is_available():
            raise WalletError(ErrorCode.UNAVAILABLE)
        if descriptor.backend != self.kind or descriptor.network != self.network:
            raise WalletError(ErrorCode.NETWORK_MISMATCH, detail="Persisted session does not match backend")
        return self._establish(
            account_id=descriptor.account_id,
            balance=descriptor.balance,
            address=descriptor.address,
        )

    # ------------------------------------------------------------------ events

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown wallet event '{event}'")
        self._listeners[event].append(callback)

    def off(self, event: str, callback: Callable[..., Any]) -> None:
        if callback in self._listeners.get(event, []):
            self._listeners[event].remove(callback)

    def _emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Wallet event listener for '{event}' failed: {e}")

    def handle_accounts_changed(self, accounts: List[str]) -> None:
        """Backend reported a new account list; an empty list means disconnect"""
        if not accounts:
            self.handle_disconnect()
            return
        if self._session is None:
            return
        account = accounts[0]
        self._session = self._session.model_copy(update={"account_id": account, "address": account})
        logger.info(f"{self.kind.value} wallet switched account")
        self._emit(ACCOUNTS_CHANGED, self._session)

    def handle_network_changed(self, network: str) -> None:
        """Backend switched networks; submissions are refused until it matches again"""
        self._network_mismatch = network != self.network
        if self._network_mismatch:
            logger.warning(f"{self.kind.value} wallet moved to {network}, expected {self.network}")
        self._emit(NETWORK_CHANGED, network)

    def handle_disconnect(self) -> None:
        """Backend dropped the session on its own"""
        was_connected = self._session is not None
        self._session = None
        self._network_mismatch = False
        if was_connected:
            logger.info(f"{self.kind.value} wallet disconnected by backend")
            self._emit(DISCONNECT)

    # ----------------------------------------------------------------- helpers

    def _establish(
        self,
        account_id: str,
        balance: Optional[str] = None,
        address: Optional[str] = None,
    ) -> WalletSession:
        self._session = WalletSession(
            account_id=account_id,
            network=self.network,
            status=ConnectionStatus.CONNECTED,
            backend=self.kind,
            balance=balance,
            address=address,
        )
        self._network_mismatch = False
        return self._session

    def _require_session(self) -> WalletSession:
        if self._session is None:
            raise ValidationError(ErrorCode.WALLET_NOT_CONNECTED)
        if self._network_mismatch:
            raise WalletError(ErrorCode.NETWORK_MISMATCH)
        return self._session

    def _contract_for(self, request: OperationRequest) -> str:
        address = request.contract_address or self.contract_address
        if not address:
            raise ValidationError(ErrorCode.CONTRACT_NOT_CONFIGURED)
        return address

    async def _sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)
