"""
Transfer fee estimation from cached network prices and account resources
"""

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

from config.config import (
    SUN_PER_TRX, STANDARD_FEE_TRX, ACTIVATION_FEE_TRX, FALLBACK_FEE_TRX, BANDWIDTH_TARGET
)
from errors.exceptions import SweeperError
from fees.resources import ResourceInspector

logger = logging.getLogger(__name__)

ENERGY_PRICE_PARAM = "getEnergyFee"
BANDWIDTH_PRICE_PARAM = "getTransactionFee"


@dataclass
class NetworkFeeSnapshot:
    """Network resource prices in SUN per unit"""
    energy_price: int
    bandwidth_price: int
    last_update: Optional[float] = None


class FeeEstimator:
    """
    Estimates the TRX cost of one transfer.

    Prices are cached for ``ttl`` seconds. A failed refresh keeps the previous
    snapshot and estimation itself never raises: on any internal failure the
    conservative fallback fee is returned.
    """

    def __init__(self, client, inspector: ResourceInspector, energy_target: int,
                 default_energy_price: int, default_bandwidth_price: int, ttl: float,
                 clock: Callable[[], float] = time.time):
        self.client = client
        self.inspector = inspector
        self.energy_target = energy_target
        self.ttl = ttl
        self.clock = clock
        self.snapshot = NetworkFeeSnapshot(
            energy_price=default_energy_price,
            bandwidth_price=default_bandwidth_price,
        )

    async def refresh(self, client=None) -> NetworkFeeSnapshot:
        """Refresh network prices if the cached snapshot has expired"""
        now = self.clock()
        last_update = self.snapshot.last_update
        if last_update is not None and now - last_update < self.ttl:
            return self.snapshot

        client = client or self.client
        try:
            params = await client.get_chain_parameters()
            values = {p.get("key"): p.get("value") for p in params if isinstance(p, dict)}
            energy_price = values.get(ENERGY_PRICE_PARAM)
            bandwidth_price = values.get(BANDWIDTH_PRICE_PARAM)
            if energy_price is not None:
                energy_price = int(energy_price)
            if bandwidth_price is not None:
                bandwidth_price = int(bandwidth_price)
        except SweeperError as e:
            logger.error(f"Failed to fetch network fees: {e}")
            return self.snapshot
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to fetch network fees: malformed chain parameters ({e})")
            return self.snapshot

        if energy_price is not None:
            self.snapshot.energy_price = energy_price
        if bandwidth_price is not None:
            self.snapshot.bandwidth_price = bandwidth_price
        self.snapshot.last_update = now
        logger.info(
            f"Network fees updated - energy price: {self.snapshot.energy_price}, "
            f"bandwidth price: {self.snapshot.bandwidth_price}"
        )
        return self.snapshot

    async def estimate_fee(self, target_address: str, is_new_account: bool = False,
                           client=None) -> Decimal:
        """Fee in TRX for one transfer touching ``target_address``"""
        try:
            fees = await self.refresh(client)
            resources = await self.inspector.get_resources(target_address, client)

            energy_needed = max(0, self.energy_target - resources.energy)
            energy_fee = Decimal(energy_needed * fees.energy_price) / SUN_PER_TRX

            bandwidth_needed = max(0, BANDWIDTH_TARGET - resources.bandwidth)
            bandwidth_fee = Decimal(bandwidth_needed * fees.bandwidth_price) / SUN_PER_TRX

            activation_fee = ACTIVATION_FEE_TRX if is_new_account else Decimal("0")
            total = STANDARD_FEE_TRX + energy_fee + bandwidth_fee + activation_fee

            logger.info(
                f"Fee estimate for {target_address}: total {total} TRX "
                f"(standard {STANDARD_FEE_TRX}, energy {energy_fee} for {energy_needed} units @ {fees.energy_price}, "
                f"bandwidth {bandwidth_fee} for {bandwidth_needed} units @ {fees.bandwidth_price}, "
                f"activation {activation_fee}); account balance {resources.balance} TRX, "
                f"energy {resources.energy}, bandwidth {resources.bandwidth}"
            )
            return total
        except Exception as e:
            logger.error(f"Fee estimation failed for {target_address}, using fallback {FALLBACK_FEE_TRX} TRX: {e}")
            return FALLBACK_FEE_TRX
