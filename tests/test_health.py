import pytest

from errors.exceptions import LedgerError
from monitoring.health import HealthStatus


@pytest.mark.asyncio
async def test_fresh_service_is_healthy(services):
    components = await services.health.run_health_checks()

    assert set(components) == {"node", "ledger", "scheduler", "pending"}
    assert services.health.get_overall_health() == HealthStatus.HEALTHY
    assert components["node"].details["block_number"] == 1000


@pytest.mark.asyncio
async def test_unreachable_node_is_unhealthy(services, chain):
    chain.failures["get_now_block"] = LedgerError("node unavailable")
    await services.health.run_health_checks()

    summary = services.health.get_health_summary()
    assert summary["status"] == "unhealthy"
    assert summary["components"]["node"]["status"] == "unhealthy"


@pytest.mark.asyncio
async def test_stale_pending_transfer_degrades(services, clock):
    services.pending.record(services.pending.make_key("TA", "TB", 1), "tx1")
    clock.advance(31 * 60)
    await services.health.run_health_checks()
    assert services.health.components["pending"].status == HealthStatus.DEGRADED


def test_no_checks_run_yet_is_unhealthy(services):
    assert services.health.get_overall_health() == HealthStatus.UNHEALTHY


def test_metrics_exposition(services):
    content, content_type = services.health.generate_metrics()
    assert b"sweeper_uptime_seconds" in content
    assert content_type.startswith("text/plain")
