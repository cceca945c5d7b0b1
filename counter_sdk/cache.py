"""
Contract state cache.

Mirrors the ledger's ContractInfo locally. Every refresh is stamped with a
refresh sequence taken when the read starts; a result is applied only if
nothing newer (another read or an optimistic update) has been applied in
the meantime, so a slow read can never overwrite fresher state.
"""
import asyncio
import logging
from typing import Any, Callable, List, Optional, Sequence, Set

from ._rate_limited_log import rate_limited_log
from .exceptions import CounterSDKError, TransientNetworkError
from .ledger.client import LedgerReader
from .models import CachedLedgerSnapshot, ContractInfo, WalletSession

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[CachedLedgerSnapshot], Any]


class ContractStateCache:
    """
    Polled, sequence-ordered snapshot of the ledger state.

    On a failed refresh the last-known-good snapshot is kept and `stale` is
    set until the next successful read.
    """

    def __init__(
        self,
        reader: LedgerReader,
        refresh_interval: float = 10.0,
        read_retries: int = 3,
        read_backoff: float = 0.5,
        reconcile_delays: Sequence[float] = (2.0, 5.0),
    ):
        """
        Args:
            reader: Source of authoritative ledger reads
            refresh_interval: Seconds between background polls
            read_retries: Attempts per refresh on transient errors
            read_backoff: Initial backoff in seconds, doubled per attempt
            reconcile_delays: Delays of the reads scheduled by force_refresh()
        """
        self.reader = reader
        self.refresh_interval = refresh_interval
        self.read_retries = max(1, read_retries)
        self.read_backoff = read_backoff
        self.reconcile_delays = tuple(reconcile_delays)

        self._snapshot: Optional[CachedLedgerSnapshot] = None
        self._issued = 0
        self._applied = 0
        self._stale = False
        self.last_error: Optional[CounterSDKError] = None

        self._poll_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self._listeners: List[SnapshotListener] = []

    # ------------------------------------------------------------------ state

    @property
    def snapshot(self) -> Optional[CachedLedgerSnapshot]:
        return self._snapshot

    @property
    def info(self) -> Optional[ContractInfo]:
        return self._snapshot.info if self._snapshot else None

    @property
    def stale(self) -> bool:
        return self._stale

    @property
    def refresh_sequence(self) -> int:
        """Sequence of the snapshot currently applied"""
        return self._applied

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def add_listener(self, callback: SnapshotListener) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: SnapshotListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _next_sequence(self) -> int:
        self._issued += 1
        return self._issued

    def _apply(self, info: ContractInfo, sequence: int, optimistic: bool) -> CachedLedgerSnapshot:
        self._snapshot = CachedLedgerSnapshot(
            info=info,
            refresh_sequence=sequence,
            optimistic=optimistic,
        )
        self._applied = sequence
        for callback in list(self._listeners):
            try:
                callback(self._snapshot)
            except Exception as e:
                logger.error(f"Cache listener failed: {e}")
        return self._snapshot

    # ---------------------------------------------------------------- refresh

    async def _read_with_retry(self) -> ContractInfo:
        attempt = 1
        delay = self.read_backoff
        while True:
            try:
                return await self.reader.get_contract_info()
            except TransientNetworkError as e:
                if attempt >= self.read_retries:
                    raise
                logger.debug(f"Ledger read attempt {attempt} failed ({e.code.value}), retrying in {delay}s")
                await asyncio.sleep(delay)
                attempt += 1
                delay *= 2

    async def refresh(self) -> Optional[CachedLedgerSnapshot]:
        """
        Read the ledger once (with retries) and apply the result if it is
        still the newest.

        Returns:
            The current snapshot, which may be stale or None
        """
        sequence = self._next_sequence()
        try:
            info = await self._read_with_retry()
        except CounterSDKError as e:
            return self._mark_stale(sequence, e)
        except Exception as e:
            logger.debug(f"Unexpected ledger read error: {e!r}")
            return self._mark_stale(sequence, TransientNetworkError(detail=str(e)))

        if sequence < self._applied:
            logger.debug(f"Discarding refresh #{sequence}, #{self._applied} already applied")
            return self._snapshot

        self._stale = False
        self.last_error = None
        return self._apply(info, sequence, optimistic=False)

    def _mark_stale(self, sequence: int, error: CounterSDKError) -> Optional[CachedLedgerSnapshot]:
        if sequence > self._applied:
            self._stale = True
            self.last_error = error
            rate_limited_log(
                f"Ledger refresh failed ({error.code.value}); keeping last known state",
                level="warning",
                logger_instance=logger,
            )
        return self._snapshot

    def apply_optimistic(self, delta: int = 0, **changes: Any) -> Optional[CachedLedgerSnapshot]:
        """
        Apply a local prediction on top of the current snapshot.

        The count moves by `delta` (clamped to the ledger bounds); other
        ContractInfo fields can be overridden by keyword. Reads started
        before this call are discarded when they complete.

        Returns:
            The optimistic snapshot, or None if nothing has been read yet
        """
        if self._snapshot is None:
            return None
        info = self._snapshot.info
        count = min(info.max_count, max(info.min_count, info.count + delta))
        updated = info.model_copy(update={"count": count, **changes})
        return self._apply(updated, self._next_sequence(), optimistic=True)

    def force_refresh(self, delays: Optional[Sequence[float]] = None) -> List[asyncio.Task]:
        """
        Schedule staggered reconciliation reads.

        Args:
            delays: Seconds from now for each read (defaults to reconcile_delays)

        Returns:
            The scheduled tasks
        """
        tasks = []
        for delay in (self.reconcile_delays if delays is None else delays):
            task = asyncio.ensure_future(self._delayed_refresh(delay))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            tasks.append(task)
        return tasks

    async def _delayed_refresh(self, delay: float) -> Optional[CachedLedgerSnapshot]:
        if delay > 0:
            await asyncio.sleep(delay)
        return await self.refresh()

    def on_session_changed(self, session: Optional[WalletSession]) -> None:
        """Refresh right away when a wallet session is bound"""
        if session is not None:
            self.force_refresh((0,))

    # ---------------------------------------------------------------- polling

    async def _poll(self) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(self.refresh_interval)

    def start(self) -> asyncio.Task:
        """Start background polling; idempotent"""
        if not self.is_polling:
            logger.debug(f"Polling ledger every {self.refresh_interval}s")
            self._poll_task = asyncio.ensure_future(self._poll())
        return self._poll_task

    async def stop(self) -> None:
        """Stop polling and cancel pending reconciliation reads"""
        tasks = list(self._pending)
        if self._poll_task is not None:
            tasks.append(self._poll_task)
            self._poll_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._pending.clear()
