"""
Relay pairing capability.

Negotiates a session with a remote wallet through an HTTP relay: the relay
issues a pairing URI (shown as a QR code or opened as a deep link), the
remote wallet approves, and signing requests are relayed to it afterwards.

Relay endpoints:
    POST   /pairings                          -> {"topic", "uri"}
    GET    /pairings/{topic}                  -> {"status", "accounts", "balance"}
    POST   /sessions/{topic}/requests         -> {"id"}
    GET    /sessions/{topic}/requests/{id}    -> {"status", "tx_hash", "error"}
    GET    /sessions/{topic}/events           -> {"events": [...]}
    DELETE /sessions/{topic}
"""
import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import get_network_config, validate_url
from ..constants import GAS_LIMIT
from ..exceptions import ErrorCode, TransientNetworkError, WalletError
from ..ledger.client import decode_revert
from ..models import (
    BackendKind, OperationRequest, SessionDescriptor, SubmissionResult, WalletSession
)
from .base import ACCOUNTS_CHANGED, DISCONNECT, NETWORK_CHANGED, WalletCapability, maybe_await

logger = logging.getLogger(__name__)


def parse_account(account: str) -> Tuple[str, str]:
    """
    Split a namespaced account string.

    "hedera:testnet:0.0.123456" -> ("testnet", "0.0.123456")

    Raises:
        ValueError: If the string is not namespace:network:account
    """
    parts = account.split(":")
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Malformed relay account: {account!r}")
    return parts[1], parts[2]


class RelayPairingCapability(WalletCapability):
    """
    Remote wallet reached through a pairing relay.

    `on_pairing_uri` is called with the pairing URI as soon as the relay
    issues it; the handshake then waits for the remote approval.
    """

    kind = BackendKind.RELAY

    def __init__(
        self,
        relay_url: Optional[str],
        network: str = "testnet",
        contract_address: Optional[str] = None,
        app_name: str = "Counter SDK",
        on_pairing_uri: Optional[Callable[[str], Any]] = None,
        handshake_timeout: float = 60.0,
        request_timeout: float = 120.0,
        poll_interval: float = 1.0,
        retry_count: int = 3,
        timeout: int = 10,
    ):
        """
        Args:
            relay_url: Relay base URL
            network: Expected network name
            contract_address: Counter contract address
            app_name: Name shown to the user in the remote wallet
            on_pairing_uri: Callback receiving the pairing URI
            handshake_timeout: Seconds to wait for pairing approval
            request_timeout: Seconds to wait for a signing response
            poll_interval: Seconds between relay polls
            retry_count: HTTP retries on 5xx and connection errors
            timeout: Per-request HTTP timeout in seconds

        Raises:
            ValueError: If relay_url is not https (unless local)
        """
        super().__init__(network=network, contract_address=contract_address)
        if relay_url:
            validate_url("relay_url", relay_url)
            relay_url = relay_url.rstrip("/")
        self.relay_url = relay_url
        self.app_name = app_name
        self.on_pairing_uri = on_pairing_uri
        self.handshake_timeout = handshake_timeout
        self.request_timeout = request_timeout
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.topic: Optional[str] = None

        self.http = requests.Session()
        retries = Retry(
            total=retry_count,
            backoff_factor=0.5,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=["GET", "POST", "DELETE"],
            raise_on_status=False,
            connect=retry_count,
            read=retry_count,
            other=retry_count,
        )
        self.http.mount("http://", HTTPAdapter(max_retries=retries))
        self.http.mount("https://", HTTPAdapter(max_retries=retries))

    def is_available(self) -> bool:
        return bool(self.relay_url)

    # --------------------------------------------------------------- transport

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = self.http.request(
            method,
            f"{self.relay_url}{path}",
            timeout=self.timeout,
            **kwargs,
        )
        response.raise_for_status()
        if not response.content:
            return {}
        return response.json()

    async def _call(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        return await asyncio.to_thread(self._request, method, path, **kwargs)

    # --------------------------------------------------------------- handshake

    async def connect(self) -> WalletSession:
        if not self.is_available():
            raise WalletError(ErrorCode.UNAVAILABLE, detail="No relay configured")

        net = get_network_config(self.network)
        try:
            pairing = await self._call(
                "POST",
                "/pairings",
                json={"app": self.app_name, "network": self.network, "chain_id": net.chain_id},
            )
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Relay pairing request failed: {e}")
            raise WalletError(ErrorCode.UNAVAILABLE, detail=str(e)) from e

        topic = pairing.get("topic")
        uri = pairing.get("uri")
        if not topic or not uri:
            raise WalletError(ErrorCode.UNAVAILABLE, detail=f"Invalid pairing response: {pairing}")
        self.topic = topic

        if self.on_pairing_uri is not None:
            await maybe_await(self.on_pairing_uri(uri))
        logger.info("Waiting for remote wallet approval")

        try:
            approval = await self._wait_for_approval(topic)
        except (WalletError, asyncio.CancelledError):
            self.topic = None
            raise

        accounts = approval.get("accounts") or []
        if not accounts:
            self.topic = None
            raise WalletError(ErrorCode.USER_REJECTED, detail="No accounts found in wallet session")
        try:
            account_network, account_id = parse_account(accounts[0])
        except ValueError as e:
            self.topic = None
            raise WalletError(ErrorCode.UNAVAILABLE, detail=str(e)) from e

        if account_network != self.network:
            await self.disconnect()
            raise WalletError(
                ErrorCode.NETWORK_MISMATCH,
                detail=f"Wallet approved on {account_network}, expected {self.network}",
            )

        session = self._establish(
            account_id=account_id,
            balance=approval.get("balance"),
            address=approval.get("address"),
        )
        logger.info(f"Relay wallet paired on {self.network}")
        return session

    async def _wait_for_approval(self, topic: str) -> Dict[str, Any]:
        deadline = time.monotonic() + self.handshake_timeout
        while True:
            try:
                status = await self._call("GET", f"/pairings/{topic}")
            except (requests.RequestException, ValueError) as e:
                logger.warning(f"Pairing status poll failed: {e}")
                status = {"status": "pending"}

            state = status.get("status")
            if state == "approved":
                return status
            if state == "rejected":
                raise WalletError(ErrorCode.USER_REJECTED)
            if state == "expired" or time.monotonic() >= deadline:
                raise WalletError(ErrorCode.HANDSHAKE_TIMEOUT)
            await asyncio.sleep(self.poll_interval)

    async def disconnect(self) -> None:
        topic = self.topic
        self.topic = None
        self._session = None
        self._network_mismatch = False
        if topic and self.relay_url:
            try:
                await self._call("DELETE", f"/sessions/{topic}")
            except (requests.RequestException, ValueError) as e:
                logger.warning(f"Relay disconnect failed: {e}")

    async def resume(self, descriptor: SessionDescriptor) -> WalletSession:
        # Pairing topics live only in this process
        if not self.topic:
            raise WalletError(ErrorCode.UNAVAILABLE, detail="No live relay pairing to resume")
        return await super().resume(descriptor)

    # -------------------------------------------------------------- submission

    async def sign_and_submit(self, request: OperationRequest) -> SubmissionResult:
        session = self._require_session()
        contract_address = self._contract_for(request)

        payload = {
            "method": "contract_call",
            "params": {
                "contract": contract_address,
                "function": request.function_name,
                "args": request.args,
                "gas": GAS_LIMIT,
                "account": session.account_id,
            },
        }
        try:
            created = await self._call("POST", f"/sessions/{self.topic}/requests", json=payload)
        except requests.Timeout as e:
            raise TransientNetworkError(ErrorCode.TIMEOUT, detail=str(e)) from e
        except (requests.RequestException, ValueError) as e:
            raise TransientNetworkError(ErrorCode.CONNECTION_LOST, detail=str(e)) from e

        request_id = created.get("id")
        if not request_id:
            raise TransientNetworkError(ErrorCode.CONNECTION_LOST, detail=f"Invalid relay response: {created}")

        deadline = time.monotonic() + self.request_timeout
        while True:
            try:
                result = await self._call("GET", f"/sessions/{self.topic}/requests/{request_id}")
            except (requests.RequestException, ValueError) as e:
                raise TransientNetworkError(ErrorCode.CONNECTION_LOST, detail=str(e)) from e

            state = result.get("status")
            if state == "approved":
                tx_hash = result.get("tx_hash")
                if not tx_hash:
                    raise TransientNetworkError(
                        ErrorCode.CONNECTION_LOST, detail=f"Approved request without hash: {result}"
                    )
                return SubmissionResult(
                    tx_hash=tx_hash,
                    caller=session.account_id,
                    events=result.get("events") or [],
                )
            if state == "rejected":
                raise WalletError(ErrorCode.USER_REJECTED)
            if state == "failed":
                error = Exception(result.get("error") or "Transaction failed")
                rejection = decode_revert(error)
                if rejection is not None:
                    raise rejection
                raise TransientNetworkError(ErrorCode.CONNECTION_LOST, detail=str(error))
            if time.monotonic() >= deadline:
                raise TransientNetworkError(ErrorCode.TIMEOUT, detail="Wallet did not answer the request")
            await asyncio.sleep(self.poll_interval)

    # ------------------------------------------------------------------ events

    async def sync_events(self) -> int:
        """
        Fetch pending backend events from the relay and dispatch them.

        Returns:
            Number of events dispatched
        """
        if not self.topic:
            return 0
        try:
            body = await self._call("GET", f"/sessions/{self.topic}/events")
        except (requests.RequestException, ValueError) as e:
            logger.debug(f"Relay event poll failed: {e}")
            return 0

        events = body.get("events") or []
        for event in events:
            kind = event.get("type")
            if kind == ACCOUNTS_CHANGED:
                raw_accounts = event.get("accounts") or []
                accounts = []
                for raw in raw_accounts:
                    try:
                        accounts.append(parse_account(raw)[1])
                    except (ValueError, AttributeError) as e:
                        logger.debug(f"Skipping malformed relay account {raw!r}: {e}")
                # An empty list means disconnect; one with only bad entries does not
                if accounts or not raw_accounts:
                    self.handle_accounts_changed(accounts)
            elif kind == NETWORK_CHANGED:
                self.handle_network_changed(event.get("network", ""))
            elif kind == DISCONNECT:
                self.topic = None
                self.handle_disconnect()
            else:
                logger.debug(f"Ignoring unknown relay event {kind!r}")
        return len(events)
