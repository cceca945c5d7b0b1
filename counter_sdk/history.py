"""
Bounded transaction history.
"""
import logging
import threading
import time
from collections import deque
from typing import Deque, Dict, List, Optional

from .models import TransactionRecord, TransactionStatus, TxError

logger = logging.getLogger(__name__)


class TransactionHistory:
    """
    Newest-first list of TransactionRecords with a fixed capacity.

    Adding to a full history evicts the oldest record.
    """

    def __init__(self, capacity: int = 50):
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self.capacity = capacity
        self._records: Deque[TransactionRecord] = deque(maxlen=capacity)
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(self.list())

    def add(self, record: TransactionRecord) -> TransactionRecord:
        with self._lock:
            self._records.appendleft(record)
        return record

    def get(self, tx_id: str) -> Optional[TransactionRecord]:
        with self._lock:
            for record in self._records:
                if record.id == tx_id:
                    return record
        return None

    def update(self, tx_id: str, **changes) -> Optional[TransactionRecord]:
        """
        Replace a record with an updated copy.

        Returns:
            The updated record, or None if it has been evicted
        """
        with self._lock:
            for index, record in enumerate(self._records):
                if record.id == tx_id:
                    updated = record.model_copy(update=changes)
                    self._records[index] = updated
                    return updated
        return None

    def resolve(
        self,
        tx_id: str,
        status: TransactionStatus,
        tx_hash: Optional[str] = None,
        error: Optional[TxError] = None,
    ) -> Optional[TransactionRecord]:
        """
        Mark a pending record as succeeded or failed.

        A record resolves once; later calls return it unchanged.
        """
        with self._lock:
            current = self.get(tx_id)
            if current is not None and current.is_resolved:
                logger.debug(f"Ignoring second resolution of {tx_id} ({current.status.value})")
                return current
            changes: Dict[str, object] = {"status": status, "resolved_at": time.time()}
            if tx_hash is not None:
                changes["tx_hash"] = tx_hash
            if error is not None:
                changes["error"] = error
            return self.update(tx_id, **changes)

    def list(self) -> List[TransactionRecord]:
        with self._lock:
            return list(self._records)

    def by_status(self, status: TransactionStatus) -> List[TransactionRecord]:
        return [record for record in self.list() if record.status == status]

    def pending(self) -> List[TransactionRecord]:
        return self.by_status(TransactionStatus.PENDING)

    def successful(self) -> List[TransactionRecord]:
        return self.by_status(TransactionStatus.SUCCESS)

    def failed(self) -> List[TransactionRecord]:
        return self.by_status(TransactionStatus.ERROR)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
