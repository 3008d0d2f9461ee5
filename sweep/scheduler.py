"""
Periodic sweep of monitored addresses into their receiving addresses.

One cycle visits every monitored address in order. Each address is checked
for an activated receiver, a balance above the reserve and a transferable
amount after fees, then swept through the multi-sign orchestrator and
recorded once the transfer is included in a block.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_DOWN
from typing import Awaitable, Callable, Dict, List, Optional, Set

from config.config import (
    SUN_PER_TRX, RESERVE_TRX,
    INCLUSION_POLL_INTERVAL, INCLUSION_POLL_ATTEMPTS,
    BLOCK_LOOKUP_INTERVAL, BLOCK_LOOKUP_ATTEMPTS,
    SWEEP_RETRY_ATTEMPTS, SWEEP_RETRY_BASE_DELAY,
)
from config.config import MonitoredAddress
from database.transfer_ledger import TransferLedger, TransferSuccessRecord
from errors.exceptions import (
    ActivationError, ConfirmationFailed, ConfirmationTimeout,
    LedgerError, ResourceError, SweeperError, ValidationError
)
from fees.fee_estimator import FeeEstimator
from log_utils import get_logger, log_performance
from monitoring.metrics import (
    last_cycle_time, sweep_cycle_duration, sweep_results_total, swept_amount_trx_total
)
from multisig.orchestrator import MultiSignOrchestrator
from sweep.retry import retry_with_backoff
from tron.client import block_number_of, block_timestamp_of

logger = logging.getLogger(__name__)
perf_logger = get_logger(__name__)

SIX_DECIMALS = Decimal("0.000001")

# Per-address sweep results
TRANSFERRED = "transferred"
BELOW_RESERVE = "below_reserve"
INSUFFICIENT_FUNDS = "insufficient_funds"
DUPLICATE_PENDING = "duplicate_pending"
RECENT_DUPLICATE = "recent_duplicate"
ACTIVATION_FAILED = "activation_failed"
IN_FLIGHT = "in_flight"
REJECTED = "rejected"
FAILED = "failed"


def floor6(amount: Decimal) -> Decimal:
    """Truncate to the six decimals TRX supports"""
    return Decimal(amount).quantize(SIX_DECIMALS, rounding=ROUND_DOWN)


def sun_to_trx(amount_sun: int) -> Decimal:
    return Decimal(int(amount_sun)) / SUN_PER_TRX


def trx_to_sun(amount: Decimal) -> int:
    return int(floor6(amount) * SUN_PER_TRX)


def _iso(ts: Optional[float] = None) -> str:
    dt = datetime.now(timezone.utc) if ts is None else datetime.fromtimestamp(ts, timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


@dataclass
class CycleReport:
    started_at: float
    skipped: bool = False
    results: Dict[str, str] = field(default_factory=dict)
    duration: float = 0.0

    def to_dict(self) -> dict:
        return {
            "started_at": _iso(self.started_at),
            "skipped": self.skipped,
            "results": dict(self.results),
            "duration": round(self.duration, 3),
        }


class SweepScheduler:
    """Runs sweep cycles over the monitored addresses"""

    def __init__(self, addresses: List[MonitoredAddress], credentials, fee_estimator: FeeEstimator,
                 orchestrator: MultiSignOrchestrator, ledger: TransferLedger,
                 reserve: Decimal = RESERVE_TRX,
                 skip_recent_duplicates: bool = False,
                 retry_attempts: int = SWEEP_RETRY_ATTEMPTS,
                 retry_base_delay: float = SWEEP_RETRY_BASE_DELAY,
                 inclusion_interval: float = INCLUSION_POLL_INTERVAL,
                 inclusion_attempts: int = INCLUSION_POLL_ATTEMPTS,
                 block_lookup_interval: float = BLOCK_LOOKUP_INTERVAL,
                 block_lookup_attempts: int = BLOCK_LOOKUP_ATTEMPTS,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep,
                 clock: Callable[[], float] = time.time):
        self.addresses = list(addresses)
        self.credentials = credentials
        self.fee_estimator = fee_estimator
        self.orchestrator = orchestrator
        self.ledger = ledger
        self.reserve = reserve
        self.skip_recent_duplicates = skip_recent_duplicates
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self.inclusion_interval = inclusion_interval
        self.inclusion_attempts = inclusion_attempts
        self.block_lookup_interval = block_lookup_interval
        self.block_lookup_attempts = block_lookup_attempts
        self.sleep = sleep
        self.clock = clock

        self.cycle_running = False
        self.in_flight: Set[str] = set()
        self.last_report: Optional[CycleReport] = None
        self.cycles_completed = 0

    # ------------------------------------------------------------------
    # Cycle control
    # ------------------------------------------------------------------
    @log_performance(perf_logger, "sweep_cycle")
    async def run_cycle(self) -> CycleReport:
        """Sweep every monitored address once; overlapping triggers are skipped"""
        report = CycleReport(started_at=self.clock())
        if self.cycle_running:
            logger.warning("Sweep cycle already running, skipping trigger")
            report.skipped = True
            return report

        self.cycle_running = True
        try:
            logger.info(f"Starting sweep cycle over {len(self.addresses)} addresses")
            for monitored in self.addresses:
                report.results[monitored.address] = await self._sweep_with_retry(monitored)
        finally:
            self.cycle_running = False

        report.duration = self.clock() - report.started_at
        self.last_report = report
        self.cycles_completed += 1
        last_cycle_time.set(self.clock())
        sweep_cycle_duration.observe(max(report.duration, 0.0))
        logger.info(f"Sweep cycle completed: {report.results}")
        return report

    async def _sweep_with_retry(self, monitored: MonitoredAddress) -> str:
        address = monitored.address
        if address in self.in_flight:
            logger.warning(f"Sweep of {address} already in flight, skipping")
            return IN_FLIGHT

        self.in_flight.add(address)
        confirmation_error = None

        async def attempt() -> str:
            # A timed-out or failed transfer stays pending, so a retry sees it as a
            # duplicate; keep surfacing the confirmation error instead
            nonlocal confirmation_error
            try:
                result = await self.sweep_address(monitored)
            except (ConfirmationTimeout, ConfirmationFailed) as e:
                confirmation_error = e
                raise
            if result == DUPLICATE_PENDING and confirmation_error is not None:
                raise confirmation_error
            return result

        try:
            result = await retry_with_backoff(
                attempt,
                attempts=self.retry_attempts,
                base_delay=self.retry_base_delay,
                sleep=self.sleep,
                description=f"Sweep of {address}",
            )
        except ResourceError as e:
            logger.error(f"Address {address} cannot cover the transfer, not retrying: {e}")
            result = INSUFFICIENT_FUNDS
        except ValidationError as e:
            logger.error(f"Sweep of {address} rejected: {e}")
            result = REJECTED
        except ActivationError as e:
            logger.error(str(e))
            result = ACTIVATION_FAILED
        except Exception as e:
            logger.error(f"Sweep of {address} failed after {self.retry_attempts} attempts: {e}")
            key = self.credentials.rotate_and_apply(reason="failure")
            await self.credentials.rebind(address, key)
            result = FAILED
        finally:
            self.in_flight.discard(address)

        sweep_results_total.labels(result=result).inc()
        return result

    async def run_forever(self, interval: float):
        """Run a cycle now and then every ``interval`` seconds until cancelled"""
        logger.info(f"Sweep monitoring started, checking every {interval}s")
        while True:
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Sweep cycle failed: {e}")
                await self.test_connection()
                self.credentials.rotate_and_apply(reason="failure")
            await self.sleep(interval)

    async def test_connection(self) -> bool:
        try:
            block = await self.credentials.owner.get_now_block()
        except SweeperError as e:
            logger.error(f"Connection to TRON node failed: {e}")
            return False
        logger.info(f"Connected to TRON node, current block {block_number_of(block)}")
        return True

    # ------------------------------------------------------------------
    # Per-address sweep
    # ------------------------------------------------------------------
    async def sweep_address(self, monitored: MonitoredAddress) -> str:
        address = monitored.address
        receiving = monitored.receiving_address
        client = self.credentials.get(address)
        log = perf_logger.with_context(address=address, receiving_address=receiving)

        if not await self.ensure_activated(client, address, receiving):
            log.error(f"Receiving account {receiving} could not be activated, skipping sweep")
            return ACTIVATION_FAILED

        balance = sun_to_trx(await client.get_balance(address))
        log.info(f"Balance check - address: {address}, balance: {balance} TRX", extra={"stream": "balance"})
        if balance <= self.reserve:
            log.info(f"Address {address} holds no more than the {self.reserve} TRX reserve, skipping")
            return BELOW_RESERVE

        fee = await self.fee_estimator.estimate_fee(receiving, False, client)
        transferable = floor6(balance - self.reserve - fee)
        if transferable <= 0:
            log.info(f"Insufficient funds - address: {address}, balance: {balance} TRX, required fee: {fee} TRX",
                     extra={"stream": "balance"})
            return INSUFFICIENT_FUNDS

        if self.skip_recent_duplicates and self.ledger.has_recent_transfer(address, transferable):
            log.info(f"Transfer of {transferable} TRX from {address} already made recently, skipping")
            return RECENT_DUPLICATE

        log.info(f"Preparing to transfer {transferable} TRX (estimated fee {fee} TRX, "
                 f"expected residual {balance - transferable - fee:.6f} TRX)", extra={"stream": "transfer"})
        try:
            receiver_balance = sun_to_trx(await client.get_balance(receiving))
            log.info(f"Receiving address {receiving} current balance: {receiver_balance} TRX")
        except SweeperError as e:
            log.warning(f"Could not read receiving address balance: {e}")

        transfer_time = _iso(self.clock())
        outcome = await self.orchestrator.transfer(address, receiving, trx_to_sun(transferable))
        if outcome.duplicate:
            return DUPLICATE_PENDING

        txid = outcome.txid
        info = await self.wait_for_inclusion(client, txid)
        log.info(f"Transferred {transferable} TRX to {receiving}, txid {txid}, block {info.get('blockNumber')}",
                 extra={"txid": txid, "stream": "transfer"})

        try:
            new_balance = sun_to_trx(await client.get_balance(address))
            log.info(f"Balance after transfer: {new_balance} TRX", extra={"stream": "balance"})
            if new_balance > self.reserve:
                log.warning(f"Residual balance {new_balance} TRX exceeds the reserve, it will be swept next cycle")
        except SweeperError as e:
            log.warning(f"Could not read balance after transfer {txid}: {e}")

        self.ledger.record_transfer(address, transferable, txid)
        swept_amount_trx_total.inc(float(transferable))
        await self.record_success(client, address, receiving, transferable, txid, info, transfer_time)
        return TRANSFERRED

    async def ensure_activated(self, client, address: str, receiving: str) -> bool:
        try:
            await client.get_account(receiving)
            return True
        except LedgerError as e:
            if not e.not_found:
                raise

        logger.info(f"Receiving account {receiving} is not activated, activating")
        try:
            tx = await client.create_account(address, receiving)
            signed = client.sign(tx)
            result = await client.broadcast(signed)
            if not result.get("result"):
                raise ActivationError(receiving, result.get("message") or "broadcast rejected")
        except SweeperError as e:
            logger.error(f"Account activation failed: {e}")
            return False
        logger.info(f"Account {receiving} activated, txid {signed.get('txID')}")
        return True

    async def wait_for_inclusion(self, client, txid: str) -> dict:
        """Poll transaction info until the transfer lands in a block"""
        for attempt in range(1, self.inclusion_attempts + 1):
            try:
                info = await client.get_transaction_info(txid)
            except LedgerError as e:
                if e.not_found:
                    logger.warning(f"Transaction {txid} not found yet, waiting")
                else:
                    logger.warning(f"Transaction info lookup for {txid} failed: {e}")
                info = None

            if info:
                if (info.get("receipt") or {}).get("result") == "FAILED":
                    raise ConfirmationFailed(txid, "FAILED")
                if info.get("blockNumber"):
                    logger.info(f"Transaction {txid} included in block {info['blockNumber']}")
                    return info

            logger.info(f"Transaction {txid} awaiting inclusion ({attempt}/{self.inclusion_attempts})")
            await self.sleep(self.inclusion_interval)

        raise ConfirmationTimeout(txid, self.inclusion_attempts)

    async def record_success(self, client, address: str, receiving: str, amount: Decimal,
                             txid: str, info: dict, transfer_time: str) -> Optional[TransferSuccessRecord]:
        block_number = info.get("blockNumber")
        block = None
        for attempt in range(1, self.block_lookup_attempts + 1):
            try:
                block = await client.get_block(block_number)
                break
            except SweeperError as e:
                logger.error(f"Block lookup failed (attempt {attempt}/{self.block_lookup_attempts}): {e}")
            await self.sleep(self.block_lookup_interval)

        if block is None:
            logger.error(f"Could not fetch block {block_number} for {txid}, success record not written")
            return None

        timestamp_ms = block_timestamp_of(block)
        record = TransferSuccessRecord(
            transfer_time=transfer_time,
            from_address=address,
            to_address=receiving,
            amount=str(amount),
            txid=txid,
            block_number=block_number,
            block_timestamp=_iso(timestamp_ms / 1000) if timestamp_ms is not None else None,
            confirmation_time=_iso(self.clock()),
            gas_fee=str(sun_to_trx(info.get("fee", 0) or 0)),
        )
        self.ledger.record_success(record)
        perf_logger.info(
            f"Transfer success - from: {address}, to: {receiving}, amount: {amount} TRX, txid: {txid}, "
            f"block: {block_number}", extra={"txid": txid, "stream": "transfer_success"}
        )
        return record

    def get_stats(self) -> dict:
        return {
            "cycle_running": self.cycle_running,
            "in_flight": sorted(self.in_flight),
            "cycles_completed": self.cycles_completed,
            "last_cycle": self.last_report.to_dict() if self.last_report else None,
        }
