from decimal import Decimal

import pytest

from conftest import FakeTronClient, address_of, SOURCE_KEY
from errors.exceptions import LedgerError, ErrorKind
from fees.resources import ResourceInspector

ADDRESS = address_of(SOURCE_KEY)


@pytest.mark.asyncio
async def test_available_resources_subtract_usage(chain):
    chain.fund(ADDRESS, "12.5")
    chain.resources[ADDRESS] = {
        "EnergyLimit": 5000, "EnergyUsed": 1200,
        "freeNetLimit": 600, "freeNetUsed": 250,
        "NetLimit": 100, "NetUsed": 40,
    }
    snapshot = await ResourceInspector(FakeTronClient(chain)).get_resources(ADDRESS)
    assert snapshot.energy == 3800
    assert snapshot.bandwidth == 350 + 60
    assert snapshot.balance == Decimal("12.5")


@pytest.mark.asyncio
async def test_overused_resources_floor_at_zero(chain):
    chain.fund(ADDRESS, 1)
    chain.resources[ADDRESS] = {"EnergyLimit": 10, "EnergyUsed": 50, "freeNetLimit": 5, "freeNetUsed": 9}
    snapshot = await ResourceInspector(FakeTronClient(chain)).get_resources(ADDRESS)
    assert snapshot.energy == 0
    assert snapshot.bandwidth == 0


@pytest.mark.asyncio
async def test_unknown_account_yields_zero_snapshot(chain):
    snapshot = await ResourceInspector(FakeTronClient(chain)).get_resources(ADDRESS)
    assert snapshot.to_dict() == {"energy": 0, "bandwidth": 0, "balance": "0"}


@pytest.mark.asyncio
async def test_transient_failure_yields_zero_snapshot(chain):
    chain.fund(ADDRESS, 3)
    chain.failures["get_account_resource"] = LedgerError("timeout", ErrorKind.TRANSIENT)
    snapshot = await ResourceInspector(FakeTronClient(chain)).get_resources(ADDRESS)
    assert (snapshot.energy, snapshot.bandwidth, snapshot.balance) == (0, 0, Decimal("0"))
