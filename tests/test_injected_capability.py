"""
Tests for the local injected capability with a mocked web3 provider.
"""
import pytest
import requests
from unittest.mock import MagicMock, PropertyMock
from eth_account import Account
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from counter_sdk.exceptions import (
    ErrorCode, ErrorKind, LedgerRejection, NotOwner, Paused, TransientNetworkError, WalletError
)
from counter_sdk.ledger.abi import error_selector
from counter_sdk.models import BackendKind, OperationRequest, SessionDescriptor, TransactionKind
from counter_sdk.wallet import LocalInjectedCapability
from conftest import TEST_CONTRACT, TEST_PRIV_KEY


@pytest.fixture
def account():
    return Account.from_key(TEST_PRIV_KEY)


@pytest.fixture
def contract_fn(mock_w3):
    """The bound contract function the capability calls"""
    fn = MagicMock()
    fn.estimate_gas = MagicMock(return_value=100000)
    fn.build_transaction = MagicMock(side_effect=lambda params: {**params, "to": TEST_CONTRACT, "data": "0x"})
    contract = MagicMock()
    contract.functions.incrementBy = MagicMock(return_value=fn)
    contract.functions.increment = MagicMock(return_value=fn)
    contract.functions.reset = MagicMock(return_value=fn)
    mock_w3.eth.contract = MagicMock(return_value=contract)
    return fn


@pytest.fixture
def injected(mock_w3, account):
    return LocalInjectedCapability(w3=mock_w3, priv_key=TEST_PRIV_KEY, contract_address=TEST_CONTRACT)


def test_availability(mock_w3, account):
    assert LocalInjectedCapability(w3=mock_w3, signer=account).is_available()
    assert not LocalInjectedCapability(w3=mock_w3).is_available()
    assert not LocalInjectedCapability(signer=account).is_available()


@pytest.mark.asyncio
async def test_connect(injected, account):
    session = await injected.connect()
    assert session.backend == BackendKind.INJECTED
    assert session.account_id == account.address
    assert session.address == account.address
    assert session.balance == "1.0000 HBAR"


@pytest.mark.asyncio
async def test_connect_unavailable(mock_w3):
    with pytest.raises(WalletError) as exc_info:
        await LocalInjectedCapability(w3=mock_w3).connect()
    assert exc_info.value.code == ErrorCode.UNAVAILABLE


@pytest.mark.asyncio
async def test_connect_declined(mock_w3):
    capability = LocalInjectedCapability(w3=mock_w3, priv_key=TEST_PRIV_KEY, authorize=lambda address: False)
    with pytest.raises(WalletError) as exc_info:
        await capability.connect()
    assert exc_info.value.code == ErrorCode.USER_REJECTED


@pytest.mark.asyncio
async def test_connect_async_authorize(mock_w3, account):
    prompts = []

    async def _authorize(address):
        prompts.append(address)
        return True

    capability = LocalInjectedCapability(w3=mock_w3, signer=account, authorize=_authorize)
    await capability.connect()
    assert prompts == [account.address]


@pytest.mark.asyncio
async def test_connect_wrong_chain(mock_w3):
    mock_w3.eth.chain_id = 1
    mock_w3.provider.make_request = MagicMock(return_value={"error": {"code": 4902, "message": "Unrecognized chain"}})
    capability = LocalInjectedCapability(w3=mock_w3, priv_key=TEST_PRIV_KEY)
    with pytest.raises(WalletError) as exc_info:
        await capability.connect()
    assert exc_info.value.code == ErrorCode.NETWORK_MISMATCH
    mock_w3.provider.make_request.assert_called_once_with("wallet_switchEthereumChain", [{"chainId": hex(296)}])


@pytest.mark.asyncio
async def test_connect_switches_chain(mock_w3):
    mock_w3.eth.chain_id = 1

    def _switch(method, params):
        mock_w3.eth.chain_id = int(params[0]["chainId"], 16)
        return {"result": None}

    mock_w3.provider.make_request = MagicMock(side_effect=_switch)
    capability = LocalInjectedCapability(w3=mock_w3, priv_key=TEST_PRIV_KEY)
    session = await capability.connect()
    assert session.network == "testnet"


@pytest.mark.asyncio
async def test_sign_and_submit(injected, mock_w3, contract_fn, account):
    await injected.connect()
    result = await injected.sign_and_submit(OperationRequest(kind=TransactionKind.INCREMENT_BY, amount=5))

    assert result.tx_hash == "0x" + "ab" * 32
    assert result.caller == account.address
    mock_w3.eth.contract.return_value.functions.incrementBy.assert_called_once_with(5)
    tx = contract_fn.build_transaction.call_args[0][0]
    assert tx["from"] == account.address
    assert tx["nonce"] == 7
    assert tx["gas"] == 110000
    mock_w3.eth.send_raw_transaction.assert_called_once()


@pytest.mark.asyncio
async def test_gas_estimation_fallback(injected, mock_w3, contract_fn):
    contract_fn.estimate_gas.side_effect = ValueError("estimation unsupported")
    await injected.connect()
    await injected.sign_and_submit(OperationRequest(kind=TransactionKind.INCREMENT))
    assert contract_fn.build_transaction.call_args[0][0]["gas"] == 300_000


@pytest.mark.asyncio
async def test_estimate_revert_maps_to_ledger_rejection(injected, contract_fn):
    contract_fn.estimate_gas.side_effect = ContractLogicError(
        "execution reverted", data="0x" + error_selector("OnlyOwner")
    )
    await injected.connect()
    with pytest.raises(NotOwner):
        await injected.sign_and_submit(OperationRequest(kind=TransactionKind.RESET))
    contract_fn.build_transaction.assert_not_called()


@pytest.mark.asyncio
async def test_revert_message_decoded(injected, mock_w3, contract_fn):
    mock_w3.eth.send_raw_transaction.side_effect = ContractLogicError("execution reverted: CounterPaused()")
    await injected.connect()
    with pytest.raises(Paused):
        await injected.sign_and_submit(OperationRequest(kind=TransactionKind.INCREMENT))


@pytest.mark.asyncio
async def test_failed_receipt(injected, mock_w3, contract_fn):
    mock_w3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "logs": []}
    await injected.connect()
    with pytest.raises(LedgerRejection) as exc_info:
        await injected.sign_and_submit(OperationRequest(kind=TransactionKind.INCREMENT))
    assert exc_info.value.code == ErrorCode.REVERTED


@pytest.mark.asyncio
async def test_signing_refused(mock_w3, contract_fn):
    signer = MagicMock()
    signer.address = Account.from_key(TEST_PRIV_KEY).address
    signer.sign_transaction.side_effect = RuntimeError("user denied")
    capability = LocalInjectedCapability(w3=mock_w3, signer=signer, contract_address=TEST_CONTRACT)
    await capability.connect()
    with pytest.raises(WalletError) as exc_info:
        await capability.sign_and_submit(OperationRequest(kind=TransactionKind.INCREMENT))
    assert exc_info.value.code == ErrorCode.USER_REJECTED


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, code",
    [
        (TimeExhausted("no receipt"), ErrorCode.TIMEOUT),
        (requests.Timeout("read timed out"), ErrorCode.TIMEOUT),
        (requests.ConnectionError("connection reset"), ErrorCode.CONNECTION_LOST),
    ],
)
async def test_transient_errors(injected, mock_w3, contract_fn, error, code):
    mock_w3.eth.wait_for_transaction_receipt.side_effect = error
    await injected.connect()
    with pytest.raises(TransientNetworkError) as exc_info:
        await injected.sign_and_submit(OperationRequest(kind=TransactionKind.INCREMENT))
    assert exc_info.value.code == code
    assert exc_info.value.kind == ErrorKind.TRANSIENT_NETWORK


@pytest.mark.asyncio
async def test_no_receipt_wait(mock_w3, contract_fn):
    capability = LocalInjectedCapability(
        w3=mock_w3, priv_key=TEST_PRIV_KEY, contract_address=TEST_CONTRACT, wait_for_receipt=False
    )
    await capability.connect()
    result = await capability.sign_and_submit(OperationRequest(kind=TransactionKind.INCREMENT))
    assert result.accepted
    mock_w3.eth.wait_for_transaction_receipt.assert_not_called()


@pytest.mark.asyncio
async def test_resume_requires_matching_signer(injected, account):
    other = SessionDescriptor(
        account_id="0x0000000000000000000000000000000000000001",
        network="testnet",
        backend=BackendKind.INJECTED,
    )
    with pytest.raises(WalletError):
        await injected.resume(other)

    own = SessionDescriptor(account_id=account.address.lower(), network="testnet", backend=BackendKind.INJECTED)
    session = await injected.resume(own)
    assert session.is_connected


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, expected",
    [
        (ValueError({"code": -32000, "message": "insufficient funds for gas * price + value"}), TransientNetworkError),
        (ValueError({"code": 3, "message": "execution reverted: CounterPaused()"}), Paused),
    ],
)
async def test_rpc_error_payloads_are_mapped(injected, mock_w3, contract_fn, error, expected):
    mock_w3.eth.send_raw_transaction.side_effect = error
    await injected.connect()
    with pytest.raises(expected):
        await injected.sign_and_submit(OperationRequest(kind=TransactionKind.INCREMENT))


@pytest.mark.asyncio
async def test_provider_error_on_chain_id(mock_w3):
    type(mock_w3.eth).chain_id = PropertyMock(side_effect=Web3Exception("rpc failure"))
    capability = LocalInjectedCapability(w3=mock_w3, priv_key=TEST_PRIV_KEY)
    with pytest.raises(WalletError) as exc_info:
        await capability.connect()
    assert exc_info.value.code == ErrorCode.UNAVAILABLE
