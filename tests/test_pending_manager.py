import pytest

from conftest import FakeTronClient
from mempool.pending_manager import PendingTxManager

KEY = PendingTxManager.make_key("TA", "TB", 100)


@pytest.fixture
def pending(clock):
    return PendingTxManager(stale_after=30 * 60, clock=clock)


@pytest.mark.asyncio
async def test_unknown_key_is_not_pending(pending, chain):
    assert await pending.is_pending(KEY, FakeTronClient(chain)) is False


@pytest.mark.asyncio
async def test_unconfirmed_entry_blocks(pending, chain):
    pending.record(KEY, "tx1")
    chain.tx_results["tx1"] = ["NOT_FOUND"]
    assert await pending.is_pending(KEY, FakeTronClient(chain)) is True
    chain.tx_results["tx1"] = ["PENDING"]
    assert await pending.is_pending(KEY, FakeTronClient(chain)) is True
    assert pending.size() == 1


@pytest.mark.asyncio
async def test_transient_lookup_error_keeps_entry(pending, chain):
    pending.record(KEY, "tx1")
    chain.tx_results["tx1"] = ["TRANSIENT"]
    assert await pending.is_pending(KEY, FakeTronClient(chain)) is True


@pytest.mark.asyncio
@pytest.mark.parametrize("result", ["SUCCESS", "REVERT", "OUT_OF_ENERGY"])
async def test_resolved_entry_is_cleared(pending, chain, result):
    pending.record(KEY, "tx1")
    chain.tx_results["tx1"] = [result]
    assert await pending.is_pending(KEY, FakeTronClient(chain)) is False
    assert pending.size() == 0


@pytest.mark.asyncio
async def test_stale_entry_is_abandoned(pending, chain, clock):
    pending.record(KEY, "tx1")
    chain.tx_results["tx1"] = ["NOT_FOUND"]
    clock.advance(30 * 60 + 1)
    assert await pending.is_pending(KEY, FakeTronClient(chain)) is False
    assert pending.get(KEY) is None


def test_stats_report_oldest_age(pending, clock):
    pending.record(KEY, "tx1")
    clock.advance(90)
    pending.record(PendingTxManager.make_key("TA", "TC", 5), "tx2")
    stats = pending.get_stats()
    assert stats["pending_count"] == 2
    assert stats["oldest_age_seconds"] == 90
