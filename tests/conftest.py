"""
Pytest fixtures for the Counter SDK tests.
"""
import asyncio
import time

import pytest
from unittest.mock import MagicMock

from counter_sdk._rate_limited_log import reset_rate_limits
from counter_sdk.cache import ContractStateCache
from counter_sdk.config import ClientConfig
from counter_sdk.history import TransactionHistory
from counter_sdk.ledger import CounterLedger, InMemoryLedgerReader
from counter_sdk.models import BackendKind
from counter_sdk.orchestrator import TransactionOrchestrator
from counter_sdk.session import SessionManager
from counter_sdk.storage import MemorySessionStore
from counter_sdk.wallet import CapabilityRegistry, DeterministicTestCapability, derive_identity
from counter_sdk.wallet.mock import DEFAULT_SEED

# Constants for testing
TEST_CONTRACT = "0x1234567890123456789012345678901234567890"
TEST_RPC_URL = "https://rpc.example.com"
TEST_RELAY_URL = "https://relay.example.com"
TEST_PRIV_KEY = "0x0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
OWNER = derive_identity(DEFAULT_SEED, 0)
STRANGER = derive_identity(DEFAULT_SEED, 1)

_real_sleep = asyncio.sleep


# ─────────────────────────────────────────────────────────────────────────
#  FAST SLEEP BEHAVIOUR FOR TESTS
# ─────────────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def _fast_sleep(monkeypatch):
    """Make sleeps instantaneous while still yielding to the event loop"""
    async def _instant(delay, result=None):
        await _real_sleep(0)
        return result

    monkeypatch.setattr(time, "sleep", lambda *_a, **_kw: None)
    monkeypatch.setattr(asyncio, "sleep", _instant)


@pytest.fixture(autouse=True)
def _clear_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture
def ledger():
    """Ledger deployed by the first simulated identity"""
    return CounterLedger(owner=OWNER)


@pytest.fixture
def config():
    return ClientConfig(
        network="testnet",
        contract_address=TEST_CONTRACT,
        wallet_backend=BackendKind.MOCK,
        reconcile_delays=(0.0,),
        handshake_timeout=0.5,
        tx_timeout=0.5,
    )


@pytest.fixture
def wallet(ledger):
    return DeterministicTestCapability(ledger=ledger, network="testnet", contract_address=TEST_CONTRACT)


@pytest.fixture
def registry(wallet):
    registry = CapabilityRegistry()
    registry.add(wallet)
    return registry


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def sessions(registry, config, store):
    return SessionManager(registry, config=config, store=store)


@pytest.fixture
def reader(ledger):
    return InMemoryLedgerReader(ledger)


@pytest.fixture
def cache(reader):
    return ContractStateCache(reader, reconcile_delays=(0.0,))


@pytest.fixture
def orchestrator(sessions, cache, config):
    return TransactionOrchestrator(sessions, cache, config=config, history=TransactionHistory(config.history_size))


@pytest.fixture
def mock_w3():
    """Mock Web3 instance on the Hedera testnet chain"""
    w3 = MagicMock()
    w3.eth.chain_id = 296
    w3.eth.gas_price = 1000000000
    w3.eth.get_transaction_count = MagicMock(return_value=7)
    w3.eth.get_balance = MagicMock(return_value=10**18)
    w3.eth.send_raw_transaction = MagicMock(return_value=bytes.fromhex("ab" * 32))
    w3.eth.wait_for_transaction_receipt = MagicMock(return_value={"status": 1, "logs": []})
    return w3


async def drain():
    """Let scheduled reconciliation tasks run to completion"""
    for _ in range(5):
        await _real_sleep(0)
