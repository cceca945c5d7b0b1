"""
Configuration for the Counter SDK.

Values come from explicit arguments or from COUNTER_* environment variables.
"""
import os
import urllib.parse
from typing import Optional, Tuple

from pydantic import BaseModel, Field

from .models import BackendKind


class NetworkConfig(BaseModel):
    """Static description of a supported network"""
    name: str
    chain_id: int
    rpc_url: str
    mirror_node_url: str
    explorer_url: str
    faucet_url: Optional[str] = None


NETWORKS = {
    "testnet": NetworkConfig(
        name="Hedera Testnet",
        chain_id=296,
        rpc_url="https://testnet.hashio.io/api",
        mirror_node_url="https://testnet.mirrornode.hedera.com",
        explorer_url="https://hashscan.io/testnet",
        faucet_url="https://portal.hedera.com/",
    ),
    "mainnet": NetworkConfig(
        name="Hedera Mainnet",
        chain_id=295,
        rpc_url="https://mainnet.hashio.io/api",
        mirror_node_url="https://mainnet.mirrornode.hedera.com",
        explorer_url="https://hashscan.io/mainnet",
    ),
    "previewnet": NetworkConfig(
        name="Hedera Previewnet",
        chain_id=297,
        rpc_url="https://previewnet.hashio.io/api",
        mirror_node_url="https://previewnet.mirrornode.hedera.com",
        explorer_url="https://hashscan.io/previewnet",
    ),
}


def get_network_config(network: str) -> NetworkConfig:
    """
    Look up a network by name.

    Raises:
        ValueError: If the network is unknown
    """
    try:
        return NETWORKS[network]
    except KeyError:
        raise ValueError(f"Unknown network '{network}'. Expected one of: {', '.join(NETWORKS)}")


def network_for_chain_id(chain_id: int) -> Optional[str]:
    """Return the network name for a chain id, or None if unsupported"""
    for name, net in NETWORKS.items():
        if net.chain_id == chain_id:
            return name
    return None


def validate_url(name: str, url: str) -> None:
    """
    Require https for remote endpoints.

    Local addresses are always allowed; COUNTER_INSECURE_RPC=1 allows plain
    http for development.

    Raises:
        ValueError: If the URL is not secure
    """
    parsed = urllib.parse.urlparse(url)
    host = parsed.hostname or ""
    is_local = host in ("localhost", "127.0.0.1", "::1")
    if parsed.scheme != "https" and not is_local:
        if os.environ.get("COUNTER_INSECURE_RPC") != "1":
            raise ValueError(
                f"{name} must use https:// for security (got: {parsed.scheme}://). "
                "Set COUNTER_INSECURE_RPC=1 to allow HTTP for development."
            )


def explorer_url(network: str, kind: str, identifier: str) -> str:
    """Build a block explorer URL for a transaction, contract or account"""
    return f"{get_network_config(network).explorer_url}/{kind}/{identifier}"


class ClientConfig(BaseModel):
    """Runtime configuration for a CounterClient"""
    network: str = "testnet"
    contract_address: Optional[str] = None
    rpc_url: Optional[str] = None
    wallet_backend: BackendKind = BackendKind.INJECTED
    relay_url: Optional[str] = None
    session_store_path: Optional[str] = None

    refresh_interval: float = 10.0
    tx_timeout: float = 30.0
    handshake_timeout: float = 60.0
    history_size: int = 50
    reconcile_delays: Tuple[float, ...] = (2.0, 5.0)
    read_retries: int = 3
    read_backoff: float = 0.5

    min_amount: int = Field(default=1, ge=1)
    max_amount: int = Field(default=1000, ge=1)

    @property
    def network_config(self) -> NetworkConfig:
        return get_network_config(self.network)

    @property
    def effective_rpc_url(self) -> str:
        return self.rpc_url or self.network_config.rpc_url

    @classmethod
    def from_env(cls, **overrides) -> "ClientConfig":
        """
        Build a configuration from COUNTER_* environment variables.

        Keyword overrides take precedence over the environment.
        """
        values = {}
        env_map = {
            "network": "COUNTER_NETWORK",
            "contract_address": "COUNTER_CONTRACT_ADDRESS",
            "rpc_url": "COUNTER_RPC_URL",
            "wallet_backend": "COUNTER_WALLET_BACKEND",
            "relay_url": "COUNTER_RELAY_URL",
            "session_store_path": "COUNTER_SESSION_STORE_PATH",
            "tx_timeout": "COUNTER_TX_TIMEOUT",
            "refresh_interval": "COUNTER_REFRESH_INTERVAL",
        }
        for field, env_var in env_map.items():
            value = os.environ.get(env_var)
            if value:
                values[field] = value
        values.update({k: v for k, v in overrides.items() if v is not None})

        config = cls.model_validate(values)
        if config.rpc_url:
            validate_url("rpc_url", config.rpc_url)
        if config.relay_url:
            validate_url("relay_url", config.relay_url)
        get_network_config(config.network)
        return config
