"""
CounterClient: the public entry point of the Counter SDK.
"""
import logging
from typing import Any, List, Optional

from .cache import ContractStateCache
from .config import ClientConfig
from .history import TransactionHistory
from .ledger.client import InMemoryLedgerReader, LedgerReader, Web3LedgerReader
from .models import (
    BackendKind, CachedLedgerSnapshot, ContractInfo, TransactionRecord, WalletSession
)
from .orchestrator import TransactionOrchestrator
from .session import SessionManager
from .wallet import CapabilityRegistry, default_registry


class CounterClient:
    """
    Client for the Counter ledger.

    Mirrors the ledger operations one to one and adds session lifecycle
    (connect, disconnect, restore) and the transaction history. All
    collaborators can be injected; by default they are built from `config`.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        registry: Optional[CapabilityRegistry] = None,
        store: Optional[Any] = None,
        reader: Optional[LedgerReader] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the CounterClient

        Args:
            config: Client configuration (defaults to ClientConfig.from_env())
            registry: Wallet capability registry (defaults to the built-in variants)
            store: Session descriptor store (defaults to a file-backed SessionStore)
            reader: Ledger reader (defaults to the in-process ledger of the
                simulated wallet for the mock backend, web3 otherwise)
            logger: Optional logger instance to use for debug/info logging

        Raises:
            ValidationError: CONTRACT_NOT_CONFIGURED if a web3 reader is needed
                but no contract address is configured
        """
        self.config = config or ClientConfig.from_env()
        self.logger = logger or logging.getLogger(__name__)
        self.registry = registry or default_registry()

        if reader is None:
            if self.config.wallet_backend == BackendKind.MOCK:
                simulated = self.registry.get(BackendKind.MOCK, self.config)
                reader = InMemoryLedgerReader(simulated.ledger)
            else:
                reader = Web3LedgerReader(
                    self.config.contract_address,
                    rpc_url=self.config.effective_rpc_url,
                    timeout=int(self.config.tx_timeout),
                )
        self.reader = reader

        self.sessions = SessionManager(self.registry, config=self.config, store=store)
        self.cache = ContractStateCache(
            reader,
            refresh_interval=self.config.refresh_interval,
            read_retries=self.config.read_retries,
            read_backoff=self.config.read_backoff,
            reconcile_delays=self.config.reconcile_delays,
        )
        self.orchestrator = TransactionOrchestrator(
            self.sessions,
            self.cache,
            config=self.config,
            history=TransactionHistory(self.config.history_size),
        )
        self.sessions.add_listener(self.cache.on_session_changed)
        self.logger.debug(f"CounterClient ready for {self.config.network} ({self.config.wallet_backend.value} wallet)")

    # ------------------------------------------------------------- lifecycle

    async def start(self) -> Optional[WalletSession]:
        """
        Restore any persisted session and start polling the ledger.

        Returns:
            The restored session, or None
        """
        session = await self.sessions.restore()
        self.cache.start()
        return session

    async def close(self) -> None:
        """Stop background work. The wallet session stays persisted."""
        await self.cache.stop()

    async def __aenter__(self) -> "CounterClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def connect(self, kind: Optional[BackendKind] = None, **kwargs: Any) -> WalletSession:
        return await self.sessions.connect(kind, **kwargs)

    async def disconnect(self) -> None:
        await self.sessions.disconnect()

    async def restore(self) -> Optional[WalletSession]:
        return await self.sessions.restore()

    @property
    def session(self) -> Optional[WalletSession]:
        return self.sessions.session

    @property
    def is_connected(self) -> bool:
        return self.sessions.is_connected

    # ----------------------------------------------------------------- reads

    @property
    def state(self) -> Optional[CachedLedgerSnapshot]:
        """Latest cached snapshot (may be optimistic or stale)"""
        return self.cache.snapshot

    async def refresh(self) -> Optional[CachedLedgerSnapshot]:
        return await self.cache.refresh()

    async def get_count(self) -> int:
        return await self.reader.get_count()

    async def get_owner(self) -> str:
        return await self.reader.get_owner()

    async def is_paused(self) -> bool:
        return await self.reader.is_paused()

    async def get_contract_info(self) -> ContractInfo:
        return await self.reader.get_contract_info()

    # ------------------------------------------------------------- mutations

    async def increment(self) -> TransactionRecord:
        return await self.orchestrator.increment()

    async def decrement(self) -> TransactionRecord:
        return await self.orchestrator.decrement()

    async def increment_by(self, amount: int) -> TransactionRecord:
        return await self.orchestrator.increment_by(amount)

    async def decrement_by(self, amount: int) -> TransactionRecord:
        return await self.orchestrator.decrement_by(amount)

    async def reset(self) -> TransactionRecord:
        return await self.orchestrator.reset()

    async def pause(self) -> TransactionRecord:
        return await self.orchestrator.pause()

    async def unpause(self) -> TransactionRecord:
        return await self.orchestrator.unpause()

    async def transfer_ownership(self, new_owner: str) -> TransactionRecord:
        return await self.orchestrator.transfer_ownership(new_owner)

    # --------------------------------------------------------------- history

    @property
    def transactions(self) -> List[TransactionRecord]:
        """Newest-first transaction history"""
        return self.orchestrator.transactions

    def transaction_url(self, record: TransactionRecord) -> Optional[str]:
        return self.orchestrator.transaction_url(record)
