"""
Session state manager.

Owns the single active WalletSession: runs the connection handshake through
the selected capability, persists a SessionDescriptor so the session survives
restarts, and follows backend events (account switch, network switch,
disconnect) so that consumers always see the current binding.
"""
import asyncio
import logging
from typing import Any, Callable, List, Optional

import portalocker
from pydantic import ValidationError as ModelValidationError

from .config import ClientConfig
from .constants import SESSION_STORAGE_KEY
from .exceptions import CounterSDKError, ErrorCode, ValidationError, WalletError
from .models import BackendKind, ConnectionStatus, SessionDescriptor, WalletSession
from .storage import MemorySessionStore, SessionStore
from .wallet import ACCOUNTS_CHANGED, DISCONNECT, NETWORK_CHANGED, CapabilityRegistry, WalletCapability

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional[WalletSession]], Any]


class SessionManager:
    """
    Manages the connection to one wallet capability at a time.

    Listeners registered with add_listener() are called with the new
    WalletSession whenever the binding changes, and with None on teardown.
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        config: Optional[ClientConfig] = None,
        store: Optional[Any] = None,
        storage_key: str = SESSION_STORAGE_KEY,
    ):
        """
        Args:
            registry: Capability registry used to resolve backend kinds
            config: Client configuration (network, handshake timeout)
            store: Descriptor store with get/set/delete (defaults to SessionStore)
            storage_key: Key the descriptor is persisted under
        """
        self.registry = registry
        self.config = config or ClientConfig()
        self.store = store if store is not None else SessionStore(self.config.session_store_path)
        self.storage_key = storage_key

        self._session: Optional[WalletSession] = None
        self._capability: Optional[WalletCapability] = None
        self._status = ConnectionStatus.DISCONNECTED
        self._handshake: Optional[asyncio.Future] = None
        self._abandoned = False
        self._listeners: List[SessionListener] = []

    @classmethod
    def in_memory(cls, registry: CapabilityRegistry, config: Optional[ClientConfig] = None) -> "SessionManager":
        """Session manager that persists nothing outside the process"""
        return cls(registry, config=config, store=MemorySessionStore())

    # ------------------------------------------------------------------ state

    @property
    def session(self) -> Optional[WalletSession]:
        return self._session

    @property
    def capability(self) -> Optional[WalletCapability]:
        return self._capability if self._session is not None else None

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    def require_capability(self) -> WalletCapability:
        """
        The capability bound to the active session.

        Raises:
            ValidationError: WALLET_NOT_CONNECTED if no session is active
        """
        if self._session is None or self._capability is None:
            raise ValidationError(ErrorCode.WALLET_NOT_CONNECTED)
        return self._capability

    def add_listener(self, callback: SessionListener) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: SessionListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self._session)
            except Exception as e:
                logger.error(f"Session listener failed: {e}")

    # ------------------------------------------------------------- connection

    async def connect(self, kind: Optional[BackendKind] = None, **kwargs: Any) -> WalletSession:
        """
        Connect through a wallet capability.

        Any existing session is torn down first so that at most one session
        is active.

        Args:
            kind: Backend kind (defaults to config.wallet_backend)
            **kwargs: Passed to the capability factory on first creation

        Returns:
            The established session

        Raises:
            WalletError: UNAVAILABLE, USER_REJECTED, HANDSHAKE_TIMEOUT or
                NETWORK_MISMATCH; USER_REJECTED also when disconnect()
                abandons the handshake
        """
        if self._handshake is not None:
            raise WalletError(ErrorCode.UNAVAILABLE, detail="A connection attempt is already in progress")

        kind = BackendKind(kind or self.config.wallet_backend)
        capability = self.registry.get(kind, self.config, **kwargs)
        if not capability.is_available():
            raise WalletError(ErrorCode.UNAVAILABLE, detail=f"{kind.value} wallet is not available")

        if self._session is not None:
            await self.disconnect()

        self._status = ConnectionStatus.CONNECTING
        self._capability = capability
        self._abandoned = False
        handshake = asyncio.ensure_future(capability.connect())
        self._handshake = handshake
        logger.info(f"Connecting {kind.value} wallet")

        try:
            session = await asyncio.wait_for(handshake, timeout=self.config.handshake_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{kind.value} wallet handshake timed out after {self.config.handshake_timeout}s")
            await capability.disconnect()
            self._reset_binding()
            raise WalletError(ErrorCode.HANDSHAKE_TIMEOUT)
        except asyncio.CancelledError:
            if not self._abandoned:
                self._reset_binding()
                raise
            self._reset_binding()
            raise WalletError(ErrorCode.USER_REJECTED, detail="Connection abandoned")
        except CounterSDKError as e:
            logger.info(f"{kind.value} wallet connection failed: {e.code.value}")
            self._reset_binding()
            raise
        except Exception as e:
            logger.warning(f"{kind.value} wallet handshake failed: {e}")
            self._reset_binding()
            raise WalletError(ErrorCode.UNAVAILABLE, detail=str(e)) from e
        finally:
            self._handshake = None

        self._bind(capability, session)
        self._persist()
        logger.info(f"Wallet session established on {session.network}")
        self._notify()
        return session

    async def disconnect(self) -> None:
        """Tear down the session, including one still in its handshake"""
        handshake = self._handshake
        if handshake is not None and not handshake.done():
            logger.info("Abandoning wallet handshake")
            self._abandoned = True
            handshake.cancel()

        capability = self._capability
        had_session = self._session is not None
        self._unsubscribe()
        self._reset_binding()
        if capability is not None:
            try:
                await capability.disconnect()
            except CounterSDKError as e:
                logger.warning(f"Wallet disconnect failed: {e}")
        self._forget()
        if had_session:
            logger.info("Wallet disconnected")
            self._notify()

    async def restore(self) -> Optional[WalletSession]:
        """
        Rehydrate the persisted session, if any.

        A descriptor that is corrupt, belongs to another network, names an
        unknown backend or can no longer be resumed is discarded.

        Returns:
            The restored session, or None
        """
        if self._session is not None:
            return self._session

        raw = self._load()
        if raw is None:
            return None

        try:
            descriptor = SessionDescriptor.model_validate(raw)
        except ModelValidationError as e:
            logger.warning(f"Discarding corrupted session descriptor: {e.error_count()} error(s)")
            self._forget()
            return None

        if descriptor.network != self.config.network:
            logger.warning(f"Discarding session for {descriptor.network}, configured for {self.config.network}")
            self._forget()
            return None

        try:
            capability = self.registry.get(descriptor.backend, self.config)
        except ValueError as e:
            logger.warning(f"Discarding session: {e}")
            self._forget()
            return None

        try:
            session = await capability.resume(descriptor)
        except CounterSDKError as e:
            logger.warning(f"Discarding session that could not be resumed: {e}")
            self._forget()
            return None

        self._bind(capability, session)
        logger.info(f"Restored {descriptor.backend.value} wallet session")
        self._notify()
        return session

    # ----------------------------------------------------------- backend events

    def _on_accounts_changed(self, session: WalletSession) -> None:
        self._session = session
        self._persist()
        logger.info("Active wallet account changed")
        self._notify()

    def _on_network_changed(self, network: str) -> None:
        if self._session is None:
            return
        self._session = self._session.model_copy(update={"network": network})
        if network != self.config.network:
            logger.warning(f"Wallet moved to {network}; submissions are blocked until it returns to {self.config.network}")
        self._notify()

    def _on_disconnect(self) -> None:
        if self._session is None:
            return
        logger.info("Wallet session ended by backend")
        self._unsubscribe()
        self._reset_binding()
        self._forget()
        self._notify()

    # ---------------------------------------------------------------- helpers

    def _bind(self, capability: WalletCapability, session: WalletSession) -> None:
        self._unsubscribe()
        self._capability = capability
        self._session = session
        self._status = ConnectionStatus.CONNECTED
        capability.on(ACCOUNTS_CHANGED, self._on_accounts_changed)
        capability.on(NETWORK_CHANGED, self._on_network_changed)
        capability.on(DISCONNECT, self._on_disconnect)

    def _unsubscribe(self) -> None:
        capability = self._capability
        if capability is None:
            return
        capability.off(ACCOUNTS_CHANGED, self._on_accounts_changed)
        capability.off(NETWORK_CHANGED, self._on_network_changed)
        capability.off(DISCONNECT, self._on_disconnect)

    def _reset_binding(self) -> None:
        self._session = None
        self._capability = None
        self._status = ConnectionStatus.DISCONNECTED

    def _load(self) -> Optional[Any]:
        try:
            return self.store.get(self.storage_key)
        except (OSError, portalocker.LockException) as e:
            logger.warning(f"Could not read session store: {e}")
            return None

    def _persist(self) -> None:
        if self._session is None:
            return
        try:
            self.store.set(self.storage_key, self._session.to_descriptor().model_dump(mode="json"))
        except (OSError, portalocker.LockException) as e:
            logger.warning(f"Could not persist wallet session: {e}")

    def _forget(self) -> None:
        try:
            self.store.delete(self.storage_key)
        except (OSError, portalocker.LockException) as e:
            logger.warning(f"Could not clear persisted wallet session: {e}")
