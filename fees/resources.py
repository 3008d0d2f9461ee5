"""
Account resource lookups for fee estimation
"""

import logging
from dataclasses import dataclass, asdict
from decimal import Decimal

from config.config import SUN_PER_TRX
from errors.exceptions import SweeperError

logger = logging.getLogger(__name__)


@dataclass
class AccountResourceSnapshot:
    """Energy and bandwidth available to an account, and its TRX balance"""
    energy: int = 0
    bandwidth: int = 0
    balance: Decimal = Decimal("0")

    def to_dict(self) -> dict:
        data = asdict(self)
        data["balance"] = str(self.balance)
        return data


def _available(limit, used) -> int:
    return max(0, int(limit or 0) - int(used or 0))


class ResourceInspector:
    """
    Reads an account's resources.

    Any lookup failure yields an all-zero snapshot so fee estimation
    over-provisions instead of under-provisioning.
    """

    def __init__(self, client):
        self.client = client

    async def get_resources(self, address: str, client=None) -> AccountResourceSnapshot:
        client = client or self.client
        try:
            account = await client.get_account(address)
            resource = await client.get_account_resource(address)
        except SweeperError as e:
            logger.error(f"Failed to fetch account resources for {address}: {e}")
            return AccountResourceSnapshot()

        try:
            energy = _available(resource.get("EnergyLimit"), resource.get("EnergyUsed"))
            bandwidth = (
                _available(resource.get("freeNetLimit"), resource.get("freeNetUsed"))
                + _available(resource.get("NetLimit"), resource.get("NetUsed"))
            )
            balance = Decimal(int(account.get("balance", 0))) / SUN_PER_TRX
        except (TypeError, ValueError) as e:
            logger.error(f"Malformed resource data for {address}: {e}")
            return AccountResourceSnapshot()

        return AccountResourceSnapshot(energy=energy, bandwidth=bandwidth, balance=balance)
