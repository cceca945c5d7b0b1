"""
Transaction orchestrator.

Turns user operations into OperationRequests, checks them against the
cached ledger state, hands them to the active wallet capability, applies
the optimistic update and schedules reconciliation reads.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from web3 import Web3

from .cache import ContractStateCache
from .config import ClientConfig, explorer_url
from .exceptions import (
    CounterSDKError, ErrorCode, MaxCountExceeded, MinCountExceeded, NotOwner, Paused,
    TransientNetworkError, ValidationError, WalletError
)
from .history import TransactionHistory
from .ledger.counter import is_null_identity
from .models import (
    COUNTING_KINDS, OWNER_ONLY_KINDS, OperationRequest, SubmissionResult, TransactionKind,
    TransactionRecord, TransactionStatus, TxError, WalletSession
)
from .session import SessionManager

logger = logging.getLogger(__name__)

_AMOUNT_KINDS = (TransactionKind.INCREMENT_BY, TransactionKind.DECREMENT_BY)

_DELTAS = {
    TransactionKind.INCREMENT: 1,
    TransactionKind.DECREMENT: -1,
}


class TransactionOrchestrator:
    """
    Runs ledger mutations through the active wallet session.

    Validation and wallet-state problems are raised before anything is
    submitted. Once an operation gets past them it always produces a
    TransactionRecord; failures from then on are stored on the record as a
    TxError rather than raised.
    """

    def __init__(
        self,
        sessions: SessionManager,
        cache: ContractStateCache,
        config: Optional[ClientConfig] = None,
        history: Optional[TransactionHistory] = None,
    ):
        self.sessions = sessions
        self.cache = cache
        self.config = config or sessions.config
        self.history = history or TransactionHistory(self.config.history_size)
        self._late: set = set()

    # ------------------------------------------------------------- operations

    async def increment(self) -> TransactionRecord:
        return await self.execute(TransactionKind.INCREMENT)

    async def decrement(self) -> TransactionRecord:
        return await self.execute(TransactionKind.DECREMENT)

    async def increment_by(self, amount: int) -> TransactionRecord:
        return await self.execute(TransactionKind.INCREMENT_BY, amount=amount)

    async def decrement_by(self, amount: int) -> TransactionRecord:
        return await self.execute(TransactionKind.DECREMENT_BY, amount=amount)

    async def reset(self) -> TransactionRecord:
        return await self.execute(TransactionKind.RESET)

    async def pause(self) -> TransactionRecord:
        return await self.execute(TransactionKind.PAUSE)

    async def unpause(self) -> TransactionRecord:
        return await self.execute(TransactionKind.UNPAUSE)

    async def transfer_ownership(self, new_owner: str) -> TransactionRecord:
        return await self.execute(TransactionKind.TRANSFER_OWNERSHIP, new_owner=new_owner)

    async def execute(
        self,
        kind: TransactionKind,
        amount: Optional[int] = None,
        new_owner: Optional[str] = None,
    ) -> TransactionRecord:
        """
        Validate, submit and record one ledger mutation.

        Args:
            kind: Operation to perform
            amount: Amount for incrementBy / decrementBy
            new_owner: Target address for transferOwnership

        Returns:
            The resolved TransactionRecord (status success or error)

        Raises:
            ValidationError: Invalid input or no wallet connected
            WalletError: NETWORK_MISMATCH if the wallet is on another network
        """
        kind = TransactionKind(kind)
        request = self.build_request(kind, amount=amount, new_owner=new_owner)
        capability = self.sessions.require_capability()
        session = self.sessions.session
        if session.network != self.config.network or capability.network_mismatch:
            raise WalletError(
                ErrorCode.NETWORK_MISMATCH,
                detail=f"Wallet is on {session.network}, expected {self.config.network}",
            )

        record = self.history.add(TransactionRecord(kind=kind, amount=request.amount))
        logger.info(f"Submitting {kind.value} ({record.id})")

        try:
            self.check_preconditions(request, session)
            result = await self._submit(capability, request)
        except CounterSDKError as e:
            return self._fail(record, e)
        except Exception as e:
            logger.error(f"Unexpected error during {kind.value}: {e}")
            return self._fail(record, TransientNetworkError(ErrorCode.CONNECTION_LOST, detail=str(e)))

        if not result.accepted:
            return self._fail(
                record,
                TransientNetworkError(ErrorCode.CONNECTION_LOST, detail=result.error or "Submission not accepted"),
            )

        self._apply_optimistic(request)
        self.cache.force_refresh()
        resolved = self.history.resolve(record.id, TransactionStatus.SUCCESS, tx_hash=result.tx_hash)
        logger.info(f"{kind.value} acknowledged: {result.tx_hash}")
        return resolved or record

    # ------------------------------------------------------------- validation

    def build_request(
        self,
        kind: TransactionKind,
        amount: Optional[int] = None,
        new_owner: Optional[str] = None,
    ) -> OperationRequest:
        """
        Client-side validation. Performs no network traffic.

        Raises:
            ValidationError: INVALID_AMOUNT or INVALID_ADDRESS
        """
        if kind in _AMOUNT_KINDS:
            if isinstance(amount, bool) or not isinstance(amount, int):
                raise ValidationError(ErrorCode.INVALID_AMOUNT, detail=f"Amount must be an integer, got {amount!r}")
            if not self.config.min_amount <= amount <= self.config.max_amount:
                raise ValidationError(
                    ErrorCode.INVALID_AMOUNT,
                    detail=f"Amount must be between {self.config.min_amount} and {self.config.max_amount}",
                )
        else:
            amount = None

        if kind == TransactionKind.TRANSFER_OWNERSHIP:
            if is_null_identity(new_owner) or not Web3.is_address(new_owner):
                raise ValidationError(ErrorCode.INVALID_ADDRESS, detail=f"Invalid new owner: {new_owner!r}")
            new_owner = Web3.to_checksum_address(new_owner)
        else:
            new_owner = None

        return OperationRequest(
            kind=kind,
            amount=amount,
            new_owner=new_owner,
            contract_address=self.config.contract_address,
        )

    def check_preconditions(self, request: OperationRequest, session: WalletSession) -> None:
        """
        Best-effort check against the cached ledger state.

        The ledger stays authoritative; with no snapshot yet this is a no-op.

        Raises:
            LedgerRejection: If the cached state says the ledger would reject
        """
        info = self.cache.info
        if info is None:
            return
        kind = request.kind

        if kind in COUNTING_KINDS:
            if info.paused:
                raise Paused(detail="Cached state reports the contract as paused")
            delta = self._delta(request)
            if info.count + delta > info.max_count:
                raise MaxCountExceeded(detail=f"{info.count} + {delta} exceeds {info.max_count}")
            if info.count + delta < info.min_count:
                raise MinCountExceeded(detail=f"{info.count} - {-delta} is below {info.min_count}")

        if kind in OWNER_ONLY_KINDS and session.address:
            if session.address.lower() != info.owner.lower():
                raise NotOwner(detail=f"{session.address} is not the owner")

    # ------------------------------------------------------------- submission

    async def _submit(self, capability, request: OperationRequest) -> SubmissionResult:
        task = asyncio.ensure_future(capability.sign_and_submit(request))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.config.tx_timeout)
        except asyncio.TimeoutError:
            # The submission may still land; stop waiting but reconcile if it does
            self._late.add(task)
            task.add_done_callback(self._on_late_completion)
            raise TransientNetworkError(
                ErrorCode.TIMEOUT,
                detail=f"No acknowledgement within {self.config.tx_timeout}s",
            )

    def _on_late_completion(self, task: asyncio.Future) -> None:
        self._late.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug(f"Timed out submission failed later: {error}")
            return
        logger.info(f"Timed out submission was acknowledged later: {task.result().tx_hash}")
        self.cache.force_refresh()

    def _fail(self, record: TransactionRecord, error: CounterSDKError) -> TransactionRecord:
        tx_error = TxError.from_exception(error)
        logger.warning(f"{record.kind.value} failed: {tx_error.code.value}")
        if error.detail:
            logger.debug(f"{record.kind.value} failure detail: {error.detail}")
        resolved = self.history.resolve(record.id, TransactionStatus.ERROR, error=tx_error)
        return resolved or record.model_copy(update={"status": TransactionStatus.ERROR, "error": tx_error})

    # ------------------------------------------------------------- optimistic

    @staticmethod
    def _delta(request: OperationRequest) -> int:
        if request.kind == TransactionKind.INCREMENT_BY:
            return request.amount
        if request.kind == TransactionKind.DECREMENT_BY:
            return -request.amount
        return _DELTAS.get(request.kind, 0)

    def _apply_optimistic(self, request: OperationRequest) -> None:
        changes: Dict[str, Any] = {}
        kind = request.kind
        if kind == TransactionKind.RESET:
            changes["count"] = 0
        elif kind == TransactionKind.PAUSE:
            changes["paused"] = True
        elif kind == TransactionKind.UNPAUSE:
            changes["paused"] = False
        elif kind == TransactionKind.TRANSFER_OWNERSHIP:
            changes["owner"] = request.new_owner
        self.cache.apply_optimistic(self._delta(request), **changes)

    # ---------------------------------------------------------------- history

    @property
    def transactions(self):
        """Newest-first transaction records"""
        return self.history.list()

    def transaction_url(self, record: TransactionRecord) -> Optional[str]:
        """Block explorer link for a record, if it has a transaction hash"""
        if not record.tx_hash:
            return None
        return explorer_url(self.config.network, "transaction", record.tx_hash)

    def error_message(self, record: TransactionRecord) -> Optional[str]:
        """Human-readable failure reason for a record"""
        error: Optional[TxError] = record.error
        return error.message if error else None
