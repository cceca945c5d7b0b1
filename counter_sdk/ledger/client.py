"""
Read access to the Counter ledger.

LedgerReader is the interface the contract state cache refreshes from.
Web3LedgerReader talks to the deployed contract over JSON-RPC;
InMemoryLedgerReader wraps an in-process CounterLedger.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple, Union

import requests
from web3 import Web3
from web3.exceptions import ContractCustomError, ContractLogicError, TimeExhausted, Web3Exception
from web3.logs import DISCARD

from ..exceptions import (
    CounterSDKError, ErrorCode, LedgerRejection, TransientNetworkError, ValidationError,
    ledger_rejection
)
from ..models import ContractInfo
from .abi import COUNTER_ABI, CUSTOM_ERRORS, ERROR_SELECTORS
from .counter import CounterLedger
from .events import EVENT_TYPES, LedgerEvent

logger = logging.getLogger(__name__)

CUSTOM_ERROR_CODES = {
    "OnlyOwner": ErrorCode.NOT_OWNER,
    "CounterPaused": ErrorCode.PAUSED,
    "MaxCountExceeded": ErrorCode.MAX_COUNT_EXCEEDED,
    "MinCountExceeded": ErrorCode.MIN_COUNT_EXCEEDED,
    "InvalidAddress": ErrorCode.INVALID_IDENTITY,
}

# camelCase event argument names on the wire -> LedgerEvent field names
_EVENT_ARG_NAMES = {
    "newCount": "new_count",
    "caller": "caller",
    "previousOwner": "previous_owner",
    "newOwner": "new_owner",
}


def _normalize_hex(value: Union[str, bytes, None]) -> str:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    value = str(value).lower()
    return value[2:] if value.startswith("0x") else value


def decode_revert(error: Exception) -> Optional[LedgerRejection]:
    """
    Map a contract revert onto a LedgerRejection.

    Recognizes custom-error selectors in the revert data as well as the
    error name appearing in the revert message.

    Args:
        error: Exception raised by web3 or by a wallet backend

    Returns:
        LedgerRejection, or None if the error is not a contract revert
    """
    if isinstance(error, LedgerRejection):
        return error
    if isinstance(error, CounterSDKError):
        return None

    data = getattr(error, "data", None)
    if isinstance(data, (str, bytes, bytearray)):
        name = ERROR_SELECTORS.get(_normalize_hex(data)[:8])
        if name:
            return ledger_rejection(CUSTOM_ERROR_CODES[name], detail=str(error))

    message = str(error)
    for name in CUSTOM_ERRORS:
        if name in message:
            return ledger_rejection(CUSTOM_ERROR_CODES[name], detail=message)

    if isinstance(error, (ContractLogicError, ContractCustomError)) or "revert" in message.lower():
        return ledger_rejection(ErrorCode.REVERTED, detail=message)
    return None


def to_ledger_event(name: str, args: Dict[str, Any]) -> Optional[LedgerEvent]:
    """Build a typed change record from an event name and its raw arguments"""
    cls = EVENT_TYPES.get(name)
    if cls is None:
        return None
    kwargs = {_EVENT_ARG_NAMES.get(k, k): v for k, v in args.items()}
    return cls(**kwargs)


def parse_events(contract, receipt) -> List[LedgerEvent]:
    """
    Decode Counter change records from a transaction receipt.

    Args:
        contract: web3 contract bound to COUNTER_ABI
        receipt: Transaction receipt returned by web3

    Returns:
        Decoded events in log order
    """
    events = []
    for name in EVENT_TYPES:
        for log in contract.events[name]().process_receipt(receipt, errors=DISCARD):
            event = to_ledger_event(name, dict(log["args"]))
            if event is not None:
                events.append((log.get("logIndex", 0), event))
    return [event for _, event in sorted(events, key=lambda pair: pair[0])]


class LedgerReader(ABC):
    """Read-only view of the authoritative ledger."""

    @abstractmethod
    async def get_contract_info(self) -> ContractInfo:
        """
        Read the full contract state.

        Raises:
            TransientNetworkError: On timeouts or connectivity loss
        """

    async def get_count(self) -> int:
        return (await self.get_contract_info()).count

    async def get_owner(self) -> str:
        return (await self.get_contract_info()).owner

    async def is_paused(self) -> bool:
        return (await self.get_contract_info()).paused


class InMemoryLedgerReader(LedgerReader):
    """Reads an in-process CounterLedger, with optional artificial latency"""

    def __init__(self, ledger: CounterLedger, latency: float = 0.0):
        self.ledger = ledger
        self.latency = latency

    async def get_contract_info(self) -> ContractInfo:
        if self.latency:
            await asyncio.sleep(self.latency)
        return self.ledger.get_contract_info()


class Web3LedgerReader(LedgerReader):
    """
    Reads the deployed Counter contract through web3.

    Blocking RPC calls run in a worker thread so they never stall the
    event loop.
    """

    def __init__(
        self,
        contract_address: str,
        rpc_url: Optional[str] = None,
        w3: Optional[Web3] = None,
        timeout: int = 30,
    ):
        """
        Args:
            contract_address: Counter contract address
            rpc_url: JSON-RPC endpoint (ignored if w3 is given)
            w3: Pre-configured Web3 instance
            timeout: HTTP timeout in seconds

        Raises:
            ValidationError: If no contract address is given
            ValueError: If neither rpc_url nor w3 is given
        """
        if not contract_address:
            raise ValidationError(ErrorCode.CONTRACT_NOT_CONFIGURED)
        if w3 is None:
            if not rpc_url:
                raise ValueError("Either rpc_url or w3 must be provided")
            w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self.w3 = w3
        self.contract_address = contract_address
        self.contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=COUNTER_ABI,
        )

    def _call(self, function_name: str):
        try:
            return getattr(self.contract.functions, function_name)().call()
        except (requests.Timeout, TimeExhausted) as e:
            raise TransientNetworkError(ErrorCode.TIMEOUT, detail=str(e)) from e
        except requests.RequestException as e:
            raise TransientNetworkError(ErrorCode.CONNECTION_LOST, detail=str(e)) from e
        except (ContractLogicError, ContractCustomError) as e:
            raise decode_revert(e) from e
        except Web3Exception as e:
            raise TransientNetworkError(ErrorCode.CONNECTION_LOST, detail=str(e)) from e
        except ValueError as e:
            # JSON-RPC error payloads from the provider
            rejection = decode_revert(e)
            if rejection is not None:
                raise rejection from e
            raise TransientNetworkError(ErrorCode.CONNECTION_LOST, detail=str(e)) from e

    async def get_contract_info(self) -> ContractInfo:
        count, owner, paused, max_count, min_count = await asyncio.to_thread(
            self._call, "getContractInfo"
        )
        return ContractInfo(
            count=int(count),
            owner=str(owner),
            paused=bool(paused),
            max_count=int(max_count),
            min_count=int(min_count),
        )

    async def get_count(self) -> int:
        return int(await asyncio.to_thread(self._call, "getCount"))

    async def get_owner(self) -> str:
        return str(await asyncio.to_thread(self._call, "getOwner"))

    async def is_paused(self) -> bool:
        return bool(await asyncio.to_thread(self._call, "isPaused"))

    async def get_bounds(self) -> Tuple[int, int]:
        """Read the (MIN_COUNT, MAX_COUNT) constants from the contract"""
        min_count = await asyncio.to_thread(self._call, "MIN_COUNT")
        max_count = await asyncio.to_thread(self._call, "MAX_COUNT")
        return int(min_count), int(max_count)
