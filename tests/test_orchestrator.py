"""
Tests for the transaction orchestrator: validation, optimistic updates,
reconciliation, error mapping and history.
"""
import asyncio

import pytest

from counter_sdk.constants import ZERO_ADDRESS
from counter_sdk.exceptions import ERROR_MESSAGES, ErrorCode, ErrorKind, ValidationError, WalletError
from counter_sdk.history import TransactionHistory
from counter_sdk.models import (
    BackendKind, SubmissionResult, TransactionKind, TransactionRecord, TransactionStatus
)
from counter_sdk.orchestrator import TransactionOrchestrator
from conftest import OWNER, STRANGER, drain


async def _connected(sessions, cache, index=0):
    sessions.registry.get(BackendKind.MOCK).account_index = index
    await sessions.connect(BackendKind.MOCK)
    await cache.refresh()


@pytest.mark.asyncio
async def test_requires_connected_wallet(orchestrator, ledger):
    with pytest.raises(ValidationError) as exc_info:
        await orchestrator.increment()
    assert exc_info.value.code == ErrorCode.WALLET_NOT_CONNECTED
    assert orchestrator.transactions == []
    assert ledger.events == []


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -5, 1001, 2.5, "10", None, True])
async def test_amount_validation(orchestrator, sessions, cache, ledger, amount):
    await _connected(sessions, cache)
    with pytest.raises(ValidationError) as exc_info:
        await orchestrator.increment_by(amount)
    assert exc_info.value.code == ErrorCode.INVALID_AMOUNT
    assert exc_info.value.kind == ErrorKind.VALIDATION
    assert orchestrator.transactions == []
    assert ledger.events == []


@pytest.mark.asyncio
@pytest.mark.parametrize("target", ["", ZERO_ADDRESS, "not-an-address", None])
async def test_transfer_target_validation(orchestrator, sessions, cache, target):
    await _connected(sessions, cache)
    with pytest.raises(ValidationError) as exc_info:
        await orchestrator.transfer_ownership(target)
    assert exc_info.value.code == ErrorCode.INVALID_ADDRESS


@pytest.mark.asyncio
async def test_network_mismatch_blocks_submission(orchestrator, sessions, cache, wallet, ledger):
    await _connected(sessions, cache)
    wallet.switch_network("mainnet")
    with pytest.raises(WalletError) as exc_info:
        await orchestrator.increment()
    assert exc_info.value.code == ErrorCode.NETWORK_MISMATCH
    assert ledger.get_count() == 0


@pytest.mark.asyncio
async def test_optimistic_update_then_reconciliation(orchestrator, sessions, cache, ledger):
    ledger.increment_by(OWNER, 10)
    await _connected(sessions, cache)
    assert cache.info.count == 10

    seen = []
    cache.add_listener(lambda snapshot: seen.append((snapshot.count, snapshot.optimistic)))

    # An unrelated mutation lands on the ledger around the same time
    record = await orchestrator.increment_by(5)
    ledger.increment(STRANGER)

    assert record.status == TransactionStatus.SUCCESS
    assert record.amount == 5
    assert record.tx_hash.startswith("0x")
    assert record.resolved_at is not None
    assert seen[0] == (15, True)

    await drain()
    assert cache.info.count == 16
    assert not cache.snapshot.optimistic


@pytest.mark.asyncio
async def test_each_operation_gets_its_own_record(orchestrator, sessions, cache, ledger):
    await _connected(sessions, cache)
    results = await asyncio.gather(orchestrator.increment(), orchestrator.increment(), orchestrator.increment())
    assert len({record.id for record in results}) == 3
    assert all(record.status == TransactionStatus.SUCCESS for record in results)
    assert ledger.get_count() == 3


@pytest.mark.asyncio
async def test_cache_precondition_rejects_without_submitting(orchestrator, sessions, cache, ledger):
    await _connected(sessions, cache)
    events_before = len(ledger.events)

    record = await orchestrator.decrement()

    assert record.status == TransactionStatus.ERROR
    assert record.error.kind == ErrorKind.LEDGER_REJECTION
    assert record.error.code == ErrorCode.MIN_COUNT_EXCEEDED
    assert record.error.message == ERROR_MESSAGES[ErrorCode.MIN_COUNT_EXCEEDED]
    assert len(ledger.events) == events_before


@pytest.mark.asyncio
async def test_paused_precondition(orchestrator, sessions, cache, ledger):
    ledger.pause(OWNER)
    await _connected(sessions, cache)
    record = await orchestrator.increment()
    assert record.error.code == ErrorCode.PAUSED
    assert orchestrator.error_message(record) == "Contract is currently paused"


@pytest.mark.asyncio
async def test_owner_precondition(orchestrator, sessions, cache, ledger):
    await _connected(sessions, cache, index=1)
    record = await orchestrator.reset()
    assert record.error.code == ErrorCode.NOT_OWNER
    assert ledger.events == []


@pytest.mark.asyncio
async def test_ledger_stays_authoritative(orchestrator, sessions, cache, ledger):
    """A stale cache lets the call through; the ledger rejects it"""
    await _connected(sessions, cache)
    ledger.pause(OWNER)

    record = await orchestrator.increment()

    assert record.status == TransactionStatus.ERROR
    assert record.error.code == ErrorCode.PAUSED
    assert ledger.get_count() == 0


@pytest.mark.asyncio
async def test_owner_operations(orchestrator, sessions, cache, ledger):
    await _connected(sessions, cache)
    await orchestrator.increment_by(20)

    assert (await orchestrator.pause()).status == TransactionStatus.SUCCESS
    assert cache.info.paused
    assert (await orchestrator.unpause()).status == TransactionStatus.SUCCESS
    assert (await orchestrator.reset()).status == TransactionStatus.SUCCESS
    assert cache.info.count == 0

    record = await orchestrator.transfer_ownership(STRANGER.lower())
    assert record.status == TransactionStatus.SUCCESS
    assert ledger.get_owner() == STRANGER
    assert cache.info.owner == STRANGER


@pytest.mark.asyncio
async def test_user_rejection_recorded(orchestrator, sessions, cache, wallet):
    await _connected(sessions, cache)
    wallet.approve = False

    record = await orchestrator.increment()

    assert record.status == TransactionStatus.ERROR
    assert record.error.kind == ErrorKind.WALLET
    assert record.error.code == ErrorCode.USER_REJECTED
    assert cache.info.count == 0


@pytest.mark.asyncio
async def test_submission_timeout(orchestrator, sessions, cache, wallet, ledger):
    await _connected(sessions, cache)
    release = asyncio.Event()
    original = wallet.sign_and_submit

    async def _slow(request):
        await release.wait()
        return await original(request)

    wallet.sign_and_submit = _slow
    orchestrator.config = orchestrator.config.model_copy(update={"tx_timeout": 0.05})

    record = await orchestrator.increment()

    assert record.status == TransactionStatus.ERROR
    assert record.error.kind == ErrorKind.TRANSIENT_NETWORK
    assert record.error.code == ErrorCode.TIMEOUT
    assert cache.info.count == 0

    # The submission still lands later and is picked up by reconciliation
    release.set()
    await drain()
    await drain()
    assert ledger.get_count() == 1
    assert cache.info.count == 1


@pytest.mark.asyncio
async def test_unaccepted_submission(orchestrator, sessions, cache, wallet):
    await _connected(sessions, cache)

    async def _dropped(request):
        return SubmissionResult(tx_hash="0x00", accepted=False)

    wallet.sign_and_submit = _dropped
    record = await orchestrator.increment()
    assert record.error.code == ErrorCode.CONNECTION_LOST


@pytest.mark.asyncio
async def test_history_is_bounded(sessions, cache, config, ledger):
    orchestrator = TransactionOrchestrator(sessions, cache, config=config, history=TransactionHistory(3))
    await _connected(sessions, cache)
    records = [await orchestrator.increment() for _ in range(5)]

    assert [record.id for record in orchestrator.transactions] == [record.id for record in reversed(records[-3:])]


@pytest.mark.asyncio
async def test_transaction_url(orchestrator, sessions, cache):
    await _connected(sessions, cache)
    record = await orchestrator.increment()
    assert orchestrator.transaction_url(record) == f"https://hashscan.io/testnet/transaction/{record.tx_hash}"
    assert orchestrator.transaction_url(TransactionRecord(kind=TransactionKind.INCREMENT)) is None


@pytest.mark.asyncio
async def test_unexpected_backend_error_resolves_record(orchestrator, sessions, cache, wallet, ledger):
    await _connected(sessions, cache)

    async def _rpc_error(request):
        raise ValueError({"code": -32000, "message": "insufficient funds for gas"})

    wallet.sign_and_submit = _rpc_error
    record = await orchestrator.increment()

    assert record.status == TransactionStatus.ERROR
    assert record.error.kind == ErrorKind.TRANSIENT_NETWORK
    assert record.error.code == ErrorCode.CONNECTION_LOST
    assert record.error.message == ERROR_MESSAGES[ErrorCode.CONNECTION_LOST]
    assert "insufficient funds" not in record.error.message
    assert [r.status for r in orchestrator.transactions] == [TransactionStatus.ERROR]
    assert ledger.get_count() == 0
