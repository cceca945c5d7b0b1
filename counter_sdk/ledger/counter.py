"""
In-process Counter ledger.

This is the authoritative state machine the deployed contract implements:
a bounded unsigned counter with an owner and a pause switch. It backs the
deterministic test capability and serves as the reference for the remote
contract's behaviour.
"""
import logging
import threading
from typing import Callable, List, Optional

from ..constants import MAX_COUNT, MIN_COUNT, ZERO_ADDRESS
from ..exceptions import (
    InvalidIdentity, MaxCountExceeded, MinCountExceeded, NotOwner, Paused
)
from ..models import ContractInfo, CounterState
from .events import (
    ContractPaused, ContractUnpaused, CountDecremented, CountIncremented,
    CountReset, LedgerEvent, OwnershipTransferred
)

logger = logging.getLogger(__name__)

NULL_IDENTITIES = frozenset({"", ZERO_ADDRESS, "0.0.0"})


def is_null_identity(identity: Optional[str]) -> bool:
    """True for the empty, zero-address or 0.0.0 identity"""
    if identity is None:
        return True
    return identity.strip().lower() in NULL_IDENTITIES


def _check_amount(amount: int) -> int:
    # bool is an int subclass but never a valid amount
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"Amount must be an unsigned integer, got {type(amount).__name__}")
    if amount < 0:
        raise ValueError(f"Amount must be unsigned, got {amount}")
    return amount


class CounterLedger:
    """
    Thread-safe bounded counter with ownership and pause semantics.

    Every mutating method takes the caller identity first, the way a
    contract call carries msg.sender. Failed calls leave state unchanged.
    """

    max_count = MAX_COUNT
    min_count = MIN_COUNT

    def __init__(self, owner: str, initial_count: int = 0):
        """
        Deploy a new ledger.

        Args:
            owner: Deployer identity; becomes the initial owner
            initial_count: Starting count

        Raises:
            InvalidIdentity: If owner is the null identity
            MaxCountExceeded / MinCountExceeded: If initial_count is out of bounds
        """
        if is_null_identity(owner):
            raise InvalidIdentity(detail="Deployer identity cannot be null")
        _check_amount(initial_count)
        if initial_count > self.max_count:
            raise MaxCountExceeded(detail=f"initial count {initial_count} > {self.max_count}")

        self._lock = threading.RLock()
        self._state = CounterState(count=initial_count, owner=owner, paused=False)
        self._events: List[LedgerEvent] = []
        self._listeners: List[Callable[[LedgerEvent], None]] = []

    # ------------------------------------------------------------------ reads

    def get_count(self) -> int:
        return self._state.count

    def get_owner(self) -> str:
        return self._state.owner

    def is_paused(self) -> bool:
        return self._state.paused

    def get_contract_info(self) -> ContractInfo:
        with self._lock:
            state = self._state
            return ContractInfo(
                count=state.count,
                owner=state.owner,
                paused=state.paused,
                max_count=self.max_count,
                min_count=self.min_count,
            )

    @property
    def state(self) -> CounterState:
        return self._state.model_copy()

    @property
    def events(self) -> List[LedgerEvent]:
        """All change records emitted so far, oldest first"""
        with self._lock:
            return list(self._events)

    def subscribe(self, listener: Callable[[LedgerEvent], None]) -> None:
        self._listeners.append(listener)

    # -------------------------------------------------------------- counting

    def increment(self, caller: str) -> LedgerEvent:
        return self.increment_by(caller, 1)

    def decrement(self, caller: str) -> LedgerEvent:
        return self.decrement_by(caller, 1)

    def increment_by(self, caller: str, amount: int) -> LedgerEvent:
        """
        Add `amount` to the count atomically.

        Raises:
            Paused: If the ledger is paused
            MaxCountExceeded: If the result would exceed max_count
        """
        _check_amount(amount)
        with self._lock:
            self._require_not_paused()
            new_count = self._state.count + amount
            if new_count > self.max_count:
                raise MaxCountExceeded(
                    detail=f"{self._state.count} + {amount} exceeds {self.max_count}"
                )
            self._state = self._state.model_copy(update={"count": new_count})
            return self._emit(CountIncremented(new_count=new_count, caller=caller))

    def decrement_by(self, caller: str, amount: int) -> LedgerEvent:
        """
        Subtract `amount` from the count atomically.

        Raises:
            Paused: If the ledger is paused
            MinCountExceeded: If the result would drop below min_count
        """
        _check_amount(amount)
        with self._lock:
            self._require_not_paused()
            new_count = self._state.count - amount
            if new_count < self.min_count:
                raise MinCountExceeded(
                    detail=f"{self._state.count} - {amount} is below {self.min_count}"
                )
            self._state = self._state.model_copy(update={"count": new_count})
            return self._emit(CountDecremented(new_count=new_count, caller=caller))

    # ------------------------------------------------------------ owner-only

    def reset(self, caller: str) -> LedgerEvent:
        with self._lock:
            self._require_owner(caller)
            self._state = self._state.model_copy(update={"count": 0})
            return self._emit(CountReset(caller=caller))

    def pause(self, caller: str) -> LedgerEvent:
        with self._lock:
            self._require_owner(caller)
            self._state = self._state.model_copy(update={"paused": True})
            return self._emit(ContractPaused(caller=caller))

    def unpause(self, caller: str) -> LedgerEvent:
        with self._lock:
            self._require_owner(caller)
            self._state = self._state.model_copy(update={"paused": False})
            return self._emit(ContractUnpaused(caller=caller))

    def transfer_ownership(self, caller: str, new_owner: str) -> LedgerEvent:
        """
        Hand ownership to `new_owner`.

        Raises:
            NotOwner: If caller is not the current owner
            InvalidIdentity: If new_owner is the null identity
        """
        with self._lock:
            self._require_owner(caller)
            if is_null_identity(new_owner):
                raise InvalidIdentity(detail="New owner cannot be the zero address")
            previous = self._state.owner
            self._state = self._state.model_copy(update={"owner": new_owner})
            return self._emit(OwnershipTransferred(previous_owner=previous, new_owner=new_owner))

    # -------------------------------------------------------------- internal

    def _require_not_paused(self) -> None:
        if self._state.paused:
            raise Paused()

    def _require_owner(self, caller: str) -> None:
        if caller.lower() != self._state.owner.lower():
            raise NotOwner(detail=f"{caller} is not the owner")

    def _emit(self, event: LedgerEvent) -> LedgerEvent:
        self._events.append(event)
        logger.debug(f"Ledger event: {event}")
        for listener in list(self._listeners):
            listener(event)
        return event
