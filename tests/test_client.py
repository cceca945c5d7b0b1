"""
End-to-end tests for CounterClient on the simulated backend.
"""
import logging

import pytest
from unittest.mock import MagicMock

from counter_sdk import CounterClient
from counter_sdk.config import ClientConfig
from counter_sdk.constants import SESSION_STORAGE_KEY
from counter_sdk.exceptions import ErrorCode, ErrorKind, ValidationError
from counter_sdk.ledger import Web3LedgerReader
from counter_sdk.models import BackendKind, TransactionStatus
from counter_sdk.storage import MemorySessionStore
from conftest import OWNER, STRANGER, TEST_CONTRACT, drain


@pytest.fixture
def mock_config():
    return ClientConfig(
        contract_address=TEST_CONTRACT,
        wallet_backend=BackendKind.MOCK,
        reconcile_delays=(0.0,),
        refresh_interval=3600,
    )


@pytest.fixture
def client(mock_config):
    return CounterClient(mock_config, store=MemorySessionStore())


@pytest.mark.asyncio
async def test_connect_and_mutate(client):
    session = await client.connect()
    assert session.account_id == OWNER
    assert client.is_connected

    record = await client.increment_by(5)
    await client.increment()
    await client.decrement()

    assert record.status == TransactionStatus.SUCCESS
    assert await client.get_count() == 5
    await drain()
    assert client.state.count == 5
    assert [r.kind.value for r in client.transactions] == ["decrement", "increment", "incrementBy"]
    assert client.transaction_url(record).startswith("https://hashscan.io/testnet/transaction/0x")


@pytest.mark.asyncio
async def test_scenario_overflow_at_upper_bound(client):
    await client.connect()
    for _ in range(1000):
        await client.increment_by(1000)
    assert await client.get_count() == 1_000_000
    await client.refresh()

    record = await client.increment()

    assert record.status == TransactionStatus.ERROR
    assert record.error.code == ErrorCode.MAX_COUNT_EXCEEDED
    assert await client.get_count() == 1_000_000


@pytest.mark.asyncio
async def test_scenario_non_owner_reset(client, mock_config):
    await client.connect(BackendKind.MOCK)
    await client.increment_by(9)
    client.registry.get(BackendKind.MOCK).switch_account(1)
    assert client.session.account_id == STRANGER

    record = await client.reset()

    assert record.error.kind == ErrorKind.LEDGER_REJECTION
    assert record.error.code == ErrorCode.NOT_OWNER
    assert await client.get_count() == 9


@pytest.mark.asyncio
async def test_scenario_pause_then_increment(client):
    await client.connect()
    await client.pause()
    assert await client.is_paused()

    record = await client.increment()
    assert record.error.code == ErrorCode.PAUSED

    await client.unpause()
    assert (await client.increment()).status == TransactionStatus.SUCCESS


@pytest.mark.asyncio
async def test_ownership_handover(client):
    await client.connect()
    await client.transfer_ownership(STRANGER)
    assert await client.get_owner() == STRANGER
    info = await client.get_contract_info()
    assert info.owner == STRANGER


@pytest.mark.asyncio
async def test_invalid_amount_raises(client):
    await client.connect()
    with pytest.raises(ValidationError):
        await client.increment_by(0)


@pytest.mark.asyncio
async def test_session_survives_restart(mock_config):
    store = MemorySessionStore()
    first = CounterClient(mock_config, store=store)
    await first.connect()
    assert store.get(SESSION_STORAGE_KEY)["backend"] == "mock"

    second = CounterClient(mock_config, store=store)
    async with second:
        assert second.session is not None
        assert second.session.account_id == OWNER
        assert second.cache.is_polling
    assert not second.cache.is_polling

    await second.disconnect()
    assert store.get(SESSION_STORAGE_KEY) is None


@pytest.mark.asyncio
async def test_start_without_session(client):
    assert await client.start() is None
    await drain()
    assert client.state.count == 0
    await client.close()


def test_web3_reader_by_default():
    config = ClientConfig(contract_address=TEST_CONTRACT)
    client = CounterClient(config, store=MemorySessionStore())
    assert isinstance(client.reader, Web3LedgerReader)


def test_web3_reader_needs_contract():
    with pytest.raises(ValidationError) as exc_info:
        CounterClient(ClientConfig(), store=MemorySessionStore())
    assert exc_info.value.code == ErrorCode.CONTRACT_NOT_CONFIGURED


def test_injected_logger(mock_config):
    logger = MagicMock(spec=logging.Logger)
    client = CounterClient(mock_config, store=MemorySessionStore(), logger=logger)
    assert client.logger is logger
    logger.debug.assert_called_once()
