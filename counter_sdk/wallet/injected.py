"""
Local injected capability.

Wraps a signer that is present in the host process (an eth_account account
or anything following the Signer protocol) together with a web3 provider.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Protocol, Union

import requests
from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception

from ..config import get_network_config
from ..constants import GAS_LIMIT
from ..exceptions import (
    CounterSDKError, ErrorCode, TransientNetworkError, WalletError,
    ledger_rejection
)
from ..ledger.abi import COUNTER_ABI
from ..ledger.client import decode_revert, parse_events
from ..models import (
    BackendKind, OperationRequest, SessionDescriptor, SubmissionResult, WalletSession
)
from .base import WalletCapability, maybe_await

logger = logging.getLogger(__name__)


class Signer(Protocol):
    """Protocol for custom signers"""
    address: str

    def sign_transaction(self, transaction_dict: Dict[str, Any]) -> Any:
        """Sign transaction and return signed tx object"""
        ...


def _raw_bytes(signed_tx: Any) -> bytes:
    # eth_account renamed rawTransaction to raw_transaction in 0.13
    raw = getattr(signed_tx, "raw_transaction", None)
    if raw is None:
        raw = getattr(signed_tx, "rawTransaction")
    return raw


def _hex(value: Union[bytes, str]) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value if value.startswith("0x") else "0x" + value


class LocalInjectedCapability(WalletCapability):
    """
    Signs with a locally present key and submits over JSON-RPC.

    Connecting is a single authorization prompt (the `authorize` callback,
    sync or async, returning True to approve) followed by a chain id check.
    """

    kind = BackendKind.INJECTED

    def __init__(
        self,
        signer: Optional[Signer] = None,
        priv_key: Optional[str] = None,
        w3: Optional[Web3] = None,
        rpc_url: Optional[str] = None,
        network: str = "testnet",
        contract_address: Optional[str] = None,
        authorize: Optional[Callable[[str], Any]] = None,
        gas: Optional[int] = None,
        wait_for_receipt: bool = True,
        receipt_timeout: int = 120,
        poll_interval: float = 0.1,
    ):
        """
        Args:
            signer: Custom signer (optional if priv_key provided)
            priv_key: Private key for a local eth_account signer
            w3: Pre-configured Web3 instance
            rpc_url: JSON-RPC endpoint used when w3 is not given
            network: Expected network name
            contract_address: Counter contract address
            authorize: Authorization prompt, called with the account address
            gas: Fixed gas limit (estimated when None)
            wait_for_receipt: Whether to wait for the receipt after sending
            receipt_timeout: Receipt wait timeout in seconds
            poll_interval: Receipt poll latency in seconds
        """
        super().__init__(network=network, contract_address=contract_address)
        if signer is None and priv_key:
            signer = Account.from_key(priv_key)
        self.signer = signer
        if w3 is None and rpc_url:
            w3 = Web3(Web3.HTTPProvider(rpc_url))
        self.w3 = w3
        self.authorize = authorize or (lambda address: True)
        self.gas = gas
        self.wait_for_receipt = wait_for_receipt
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval

    def is_available(self) -> bool:
        return self.signer is not None and self.w3 is not None

    async def connect(self) -> WalletSession:
        if not self.is_available():
            raise WalletError(ErrorCode.UNAVAILABLE, detail="No local signer or provider present")

        address = self.signer.address
        approved = await maybe_await(self.authorize(address))
        if not approved:
            raise WalletError(ErrorCode.USER_REJECTED)

        await self.ensure_network()
        balance = await asyncio.to_thread(self._fetch_balance, address)

        session = self._establish(account_id=address, balance=balance, address=address)
        logger.info(f"Injected wallet connected on {self.network}")
        return session

    async def disconnect(self) -> None:
        self._session = None
        self._network_mismatch = False

    async def resume(self, descriptor: SessionDescriptor) -> WalletSession:
        if self.signer is not None and descriptor.account_id.lower() != self.signer.address.lower():
            raise WalletError(ErrorCode.UNAVAILABLE, detail="Persisted account is not the local signer")
        return await super().resume(descriptor)

    async def ensure_network(self) -> None:
        """
        Make sure the provider is on the configured network.

        Tries wallet_switchEthereumChain once when the chain id differs.

        Raises:
            WalletError: NETWORK_MISMATCH if the provider stays on another chain
        """
        expected = get_network_config(self.network).chain_id
        current = await asyncio.to_thread(self._chain_id)
        if current == expected:
            return

        logger.info(f"Switching provider from chain {current} to {expected}")
        try:
            response = await asyncio.to_thread(
                self.w3.provider.make_request,
                "wallet_switchEthereumChain",
                [{"chainId": hex(expected)}],
            )
            switched = not (isinstance(response, dict) and response.get("error"))
        except (Web3Exception, requests.RequestException, ValueError) as e:
            logger.debug(f"wallet_switchEthereumChain failed: {e}")
            switched = False

        if not switched or await asyncio.to_thread(self._chain_id) != expected:
            raise WalletError(
                ErrorCode.NETWORK_MISMATCH,
                detail=f"Provider is on chain {current}, expected {expected}",
            )

    def _chain_id(self) -> int:
        try:
            return int(self.w3.eth.chain_id)
        except (requests.RequestException, Web3Exception) as e:
            raise WalletError(ErrorCode.UNAVAILABLE, detail=f"Provider unreachable: {e}") from e

    def _fetch_balance(self, address: str) -> Optional[str]:
        try:
            wei = self.w3.eth.get_balance(address)
            return f"{float(Web3.from_wei(wei, 'ether')):.4f} HBAR"
        except Exception as e:
            logger.warning(f"Could not fetch wallet balance: {e}")
            return None

    async def sign_and_submit(self, request: OperationRequest) -> SubmissionResult:
        session = self._require_session()
        contract_address = self._contract_for(request)
        return await asyncio.to_thread(self._submit, session.address, contract_address, request)

    def _submit(self, from_address: str, contract_address: str, request: OperationRequest) -> SubmissionResult:
        contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=COUNTER_ABI,
        )
        function = getattr(contract.functions, request.function_name)(*request.args)

        try:
            nonce = self.w3.eth.get_transaction_count(from_address)

            gas = self.gas
            if gas is None:
                try:
                    gas = int(function.estimate_gas({"from": from_address}) * 1.1)
                    logger.debug(f"Estimated gas: {gas}")
                except Exception as e:
                    rejection = decode_revert(e)
                    if rejection is not None:
                        raise rejection from e
                    gas = GAS_LIMIT
                    logger.warning(f"Gas estimation failed, using default: {gas}. Error: {e}")

            tx = function.build_transaction({
                "from": from_address,
                "nonce": nonce,
                "gas": gas,
                "gasPrice": self.w3.eth.gas_price,
            })

            try:
                signed_tx = self.signer.sign_transaction(tx)
            except Exception as e:
                logger.error(f"Transaction signing failed: {e}")
                raise WalletError(ErrorCode.USER_REJECTED, detail=str(e)) from e

            tx_hash = _hex(self.w3.eth.send_raw_transaction(_raw_bytes(signed_tx)))
            logger.info(f"Transaction sent: {tx_hash}")

            if not self.wait_for_receipt:
                return SubmissionResult(tx_hash=tx_hash, caller=from_address)

            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self.receipt_timeout,
                poll_latency=self.poll_interval,
            )
            if receipt["status"] != 1:
                raise ledger_rejection(ErrorCode.REVERTED, detail=f"Transaction {tx_hash} reverted")
            events = [event.to_dict() for event in parse_events(contract, receipt)]
            return SubmissionResult(tx_hash=tx_hash, caller=from_address, events=events)

        except CounterSDKError:
            raise
        except TimeExhausted as e:
            raise TransientNetworkError(ErrorCode.TIMEOUT, detail=str(e)) from e
        except requests.Timeout as e:
            raise TransientNetworkError(ErrorCode.TIMEOUT, detail=str(e)) from e
        except requests.RequestException as e:
            raise TransientNetworkError(ErrorCode.CONNECTION_LOST, detail=str(e)) from e
        except Web3Exception as e:
            rejection = decode_revert(e)
            if rejection is not None:
                raise rejection from e
            logger.error(f"Web3 error: {e}")
            raise TransientNetworkError(ErrorCode.CONNECTION_LOST, detail=str(e)) from e
        except ValueError as e:
            # JSON-RPC error payloads from the provider
            rejection = decode_revert(e)
            if rejection is not None:
                raise rejection from e
            logger.error(f"Provider rejected the transaction: {e}")
            raise TransientNetworkError(ErrorCode.CONNECTION_LOST, detail=str(e)) from e
