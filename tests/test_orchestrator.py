"""
Unit-tests for multisig/orchestrator.py

• confirmation polling ends CONFIRMED exactly once
• a pending unresolved transfer blocks a second broadcast
• owner builds under permission 0, signer co-signs and broadcasts
• build validation, broadcast failures, FAILED and TIMEOUT outcomes
"""
import pytest

from conftest import (
    RecordingSleep, address_of, sun,
    OWNER_KEY, SIGNER_KEY, SOURCE_KEY, RECEIVER_KEY,
)
from credentials.rotator import CredentialPool, CredentialRotator, OWNER_BINDING, SIGNER_BINDING
from errors.exceptions import (
    BroadcastError, ConfirmationFailed, ConfirmationTimeout,
    InsufficientFundsError, ResourceError, ValidationError
)
from mempool.pending_manager import PendingTxManager
from multisig.orchestrator import MultiSignOrchestrator, TransferState

FROM = address_of(SOURCE_KEY)
TO = address_of(RECEIVER_KEY)
FIRST_TXID = f"{1:064x}"


@pytest.fixture
def credentials(client_factory):
    rotator = CredentialRotator(CredentialPool(["k1"]), "http://fake", client_factory)
    rotator.create_binding(OWNER_BINDING, OWNER_KEY)
    rotator.create_binding(SIGNER_BINDING, SIGNER_KEY)
    return rotator


@pytest.fixture
def pending(clock):
    return PendingTxManager(clock=clock)


@pytest.fixture
def make_orchestrator(credentials, pending, sleep):
    def make(**kwargs):
        kwargs.setdefault("poll_interval", 3)
        kwargs.setdefault("poll_attempts", 20)
        return MultiSignOrchestrator(credentials, pending, sleep=sleep, **kwargs)
    return make


def _calls(chain, method):
    return [c for c in chain.calls if c[0] == method]


@pytest.mark.asyncio
async def test_not_found_then_success_confirms_once(make_orchestrator, chain, sleep):
    chain.fund(FROM, 10)
    chain.tx_results[FIRST_TXID] = ["NOT_FOUND", "NOT_FOUND", "PENDING", "SUCCESS"]

    outcome = await make_orchestrator().transfer(FROM, TO, sun(5))

    assert outcome.status == TransferState.CONFIRMED
    assert outcome.txid == FIRST_TXID
    assert len(_calls(chain, "get_transaction")) == 4
    assert sleep.delays == [3, 3, 3]


@pytest.mark.asyncio
async def test_pending_transfer_blocks_second_broadcast(make_orchestrator, chain, pending):
    chain.fund(FROM, 10)
    chain.tx_results[FIRST_TXID] = ["NOT_FOUND"]
    orchestrator = make_orchestrator(poll_attempts=2)

    with pytest.raises(ConfirmationTimeout):
        await orchestrator.transfer(FROM, TO, 100)

    outcome = await orchestrator.transfer(FROM, TO, 100)
    assert outcome.status == TransferState.DUPLICATE_PENDING
    assert outcome.txid == FIRST_TXID
    assert len(chain.broadcasts) == 1
    assert pending.size() == 1


@pytest.mark.asyncio
async def test_owner_builds_and_signer_cosigns(make_orchestrator, chain):
    chain.fund(FROM, 10)
    await make_orchestrator().transfer(FROM, TO, sun(1))

    build = _calls(chain, "create_transfer")[0]
    assert build[2:] == (FROM, TO, sun(1), 0)

    tx = chain.broadcasts[0]
    assert tx["signature"] == [f"sig:{address_of(SIGNER_KEY)}"]
    assert tx["fee_limit"] == 1_000_000


@pytest.mark.asyncio
async def test_invalid_recipient_is_rejected_before_build(make_orchestrator, chain):
    chain.fund(FROM, 10)
    with pytest.raises(ValidationError):
        await make_orchestrator().transfer(FROM, "not-an-address", sun(1))
    assert _calls(chain, "create_transfer") == []


@pytest.mark.asyncio
async def test_insufficient_balance_is_rejected_before_build(make_orchestrator, chain):
    chain.fund(FROM, 1)
    with pytest.raises(InsufficientFundsError):
        await make_orchestrator().transfer(FROM, TO, sun(2))
    assert chain.broadcasts == []


@pytest.mark.asyncio
async def test_broadcast_rejected_for_balance_is_resource_error(make_orchestrator, chain):
    chain.fund(FROM, 10)
    chain.broadcast_result = {"result": False, "code": "CONTRACT_VALIDATE_ERROR", "message": "balance is not sufficient"}
    with pytest.raises(ResourceError):
        await make_orchestrator().transfer(FROM, TO, sun(1))


@pytest.mark.asyncio
async def test_unsuccessful_broadcast_is_fatal(make_orchestrator, chain, pending):
    chain.fund(FROM, 10)
    chain.broadcast_result = {"result": False, "code": "SIGERROR", "message": "bad signature"}
    with pytest.raises(BroadcastError):
        await make_orchestrator().transfer(FROM, TO, sun(1))
    assert pending.size() == 0


@pytest.mark.asyncio
async def test_txid_falls_back_to_transaction_field(make_orchestrator, chain):
    chain.fund(FROM, 10)
    chain.broadcast_result = {"result": True, "transaction": {"txID": "ab" * 32}}
    outcome = await make_orchestrator().transfer(FROM, TO, sun(1))
    assert outcome.txid == "ab" * 32


@pytest.mark.asyncio
async def test_explicit_failure_result_raises(make_orchestrator, chain, pending):
    chain.fund(FROM, 10)
    chain.tx_results[FIRST_TXID] = ["REVERT"]
    with pytest.raises(ConfirmationFailed) as exc_info:
        await make_orchestrator().transfer(FROM, TO, sun(1))
    assert exc_info.value.result == "REVERT"
    assert pending.size() == 0


@pytest.mark.asyncio
async def test_not_found_past_staleness_times_out(credentials, pending, chain, clock):
    chain.fund(FROM, 10)
    chain.tx_results[FIRST_TXID] = ["NOT_FOUND"]
    sleep = RecordingSleep(clock)
    orchestrator = MultiSignOrchestrator(credentials, pending, poll_interval=600, poll_attempts=20, sleep=sleep)

    with pytest.raises(ConfirmationTimeout):
        await orchestrator.transfer(FROM, TO, sun(1))
    assert len(sleep.delays) == 4
