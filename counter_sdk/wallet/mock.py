"""
Deterministic test capability.

A simulated backend for development and test isolation. Identities are
derived from a seed, latency is artificial, and submissions execute against
an in-process CounterLedger. It honours the same contract as the real
capabilities.
"""
import hashlib
import itertools
import logging
from typing import Optional

from web3 import Web3

from ..exceptions import ErrorCode, WalletError
from ..ledger.counter import CounterLedger
from ..models import (
    BackendKind, OperationRequest, SessionDescriptor, SubmissionResult, TransactionKind,
    WalletSession
)
from .base import WalletCapability

logger = logging.getLogger(__name__)

DEFAULT_SEED = "counter-sdk"


def derive_identity(seed: str, index: int = 0) -> str:
    """Deterministic checksummed address for (seed, index)"""
    digest = hashlib.sha256(f"{seed}:{index}".encode()).hexdigest()
    return Web3.to_checksum_address("0x" + digest[:40])


class DeterministicTestCapability(WalletCapability):
    """
    Simulated wallet bound to an in-process ledger.

    Knobs such as `available`, `approve` and `latency` let tests drive every
    branch of the connection protocol.
    """

    kind = BackendKind.MOCK

    def __init__(
        self,
        ledger: Optional[CounterLedger] = None,
        seed: str = DEFAULT_SEED,
        account_index: int = 0,
        network: str = "testnet",
        contract_address: Optional[str] = None,
        latency: float = 0.0,
        balance: Optional[str] = "100.0000 HBAR",
        available: bool = True,
        approve: bool = True,
        wallet_network: Optional[str] = None,
    ):
        super().__init__(network=network, contract_address=contract_address)
        self.seed = seed
        self.account_index = account_index
        if ledger is None:
            ledger = CounterLedger(owner=derive_identity(seed, 0))
        self.ledger = ledger
        self.latency = latency
        self.balance = balance
        self.available = available
        self.approve = approve
        # Network the simulated wallet reports; defaults to the expected one
        self.wallet_network = wallet_network or network
        self._nonce = itertools.count()

    @property
    def identity(self) -> str:
        return derive_identity(self.seed, self.account_index)

    def is_available(self) -> bool:
        return self.available

    async def connect(self) -> WalletSession:
        if not self.is_available():
            raise WalletError(ErrorCode.UNAVAILABLE, detail="Simulated wallet disabled")
        await self._sleep(self.latency)
        if not self.approve:
            raise WalletError(ErrorCode.USER_REJECTED)
        if self.wallet_network != self.network:
            raise WalletError(
                ErrorCode.NETWORK_MISMATCH,
                detail=f"Simulated wallet is on {self.wallet_network}",
            )
        identity = self.identity
        logger.debug(f"Simulated wallet connected as {identity}")
        return self._establish(account_id=identity, balance=self.balance, address=identity)

    async def disconnect(self) -> None:
        self._session = None
        self._network_mismatch = False

    async def resume(self, descriptor: SessionDescriptor) -> WalletSession:
        if descriptor.account_id.lower() != self.identity.lower():
            raise WalletError(ErrorCode.UNAVAILABLE, detail="Persisted account is not the simulated identity")
        return await super().resume(descriptor)

    async def sign_and_submit(self, request: OperationRequest) -> SubmissionResult:
        session = self._require_session()
        await self._sleep(self.latency)
        if not self.approve:
            raise WalletError(ErrorCode.USER_REJECTED)

        caller = session.address
        ledger = self.ledger
        kind = request.kind
        if kind == TransactionKind.INCREMENT:
            event = ledger.increment(caller)
        elif kind == TransactionKind.DECREMENT:
            event = ledger.decrement(caller)
        elif kind == TransactionKind.INCREMENT_BY:
            event = ledger.increment_by(caller, request.amount)
        elif kind == TransactionKind.DECREMENT_BY:
            event = ledger.decrement_by(caller, request.amount)
        elif kind == TransactionKind.RESET:
            event = ledger.reset(caller)
        elif kind == TransactionKind.PAUSE:
            event = ledger.pause(caller)
        elif kind == TransactionKind.UNPAUSE:
            event = ledger.unpause(caller)
        elif kind == TransactionKind.TRANSFER_OWNERSHIP:
            event = ledger.transfer_ownership(caller, request.new_owner)
        else:
            raise ValueError(f"Unsupported operation: {kind}")

        nonce = next(self._nonce)
        tx_hash = "0x" + hashlib.sha256(f"{caller}:{nonce}:{kind.value}".encode()).hexdigest()
        return SubmissionResult(tx_hash=tx_hash, caller=caller, events=[event.to_dict()])

    def switch_account(self, index: int) -> None:
        """Simulate the user picking another account in the wallet"""
        self.account_index = index
        self.handle_accounts_changed([self.identity])

    def switch_network(self, network: str) -> None:
        """Simulate the wallet moving to another network"""
        self.wallet_network = network
        self.handle_network_changed(network)
