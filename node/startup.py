"""
Service startup and shutdown procedures
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from config.config import Settings
from credentials.rotator import CredentialPool, CredentialRotator, OWNER_BINDING, SIGNER_BINDING
from database.transfer_ledger import TransferLedger
from fees.fee_estimator import FeeEstimator
from fees.resources import ResourceInspector
from log_utils import get_logger
from mempool.pending_manager import PendingTxManager
from monitoring.health import HealthMonitor
from multisig.orchestrator import MultiSignOrchestrator
from sweep.scheduler import SweepScheduler
from tron.client import TronClient

logger = get_logger(__name__)


@dataclass
class ServiceContext:
    """Every long-lived service object, assembled once at startup"""
    settings: Settings
    credentials: CredentialRotator
    pending: PendingTxManager
    ledger: TransferLedger
    inspector: ResourceInspector
    fee_estimator: FeeEstimator
    orchestrator: MultiSignOrchestrator
    scheduler: SweepScheduler
    health: HealthMonitor
    tasks: List[asyncio.Task] = field(default_factory=list)


def build_services(settings: Settings,
                   client_factory: Callable[..., TronClient] = TronClient,
                   sleep: Callable[[float], Awaitable] = asyncio.sleep,
                   clock: Callable[[], float] = time.time) -> ServiceContext:
    """Wire service objects from validated settings; nothing touches the network yet"""
    credentials = CredentialRotator(CredentialPool(settings.tron_api_keys), settings.tron.full_host, client_factory)
    for monitored in settings.addresses:
        credentials.create_binding(monitored.address, monitored.private_key)

    multi_sign = settings.multi_sign
    credentials.create_binding(OWNER_BINDING, multi_sign.owner_private_key)
    credentials.create_binding(SIGNER_BINDING, multi_sign.signer_private_key)

    pending = PendingTxManager(clock=clock)
    ledger = TransferLedger(
        settings.resolve_path(settings.transfer_records.file_path),
        settings.resolve_path(settings.transfer_records.success_file_path),
        clock=clock,
    )
    inspector = ResourceInspector(credentials.owner)
    fee_estimator = FeeEstimator(
        credentials.owner,
        inspector,
        energy_target=settings.tron.energy_limit,
        default_energy_price=settings.network_fee.default_energy_price,
        default_bandwidth_price=settings.network_fee.default_bandwidth_price,
        ttl=settings.network_fee.update_interval,
        clock=clock,
    )
    orchestrator = MultiSignOrchestrator(credentials, pending, permission_id=multi_sign.permission_id, sleep=sleep)
    scheduler = SweepScheduler(
        settings.addresses,
        credentials,
        fee_estimator,
        orchestrator,
        ledger,
        skip_recent_duplicates=settings.monitor.skip_recent_duplicates,
        sleep=sleep,
        clock=clock,
    )
    health = HealthMonitor(credentials, ledger, scheduler, pending, settings.monitor.sweep_interval)

    return ServiceContext(
        settings=settings,
        credentials=credentials,
        pending=pending,
        ledger=ledger,
        inspector=inspector,
        fee_estimator=fee_estimator,
        orchestrator=orchestrator,
        scheduler=scheduler,
        health=health,
    )


async def startup(context: ServiceContext, start_timers: bool = True):
    """Load persisted state, probe the node and start the periodic tasks"""
    settings = context.settings
    logger.info("Starting sweeper service")

    try:
        context.ledger.load()
        logger.info(f"Monitoring {len(settings.addresses)} addresses")
        logger.info(f"Rotating across {len(settings.tron_api_keys)} API keys")

        await context.scheduler.test_connection()

        if start_timers:
            context.tasks.append(asyncio.create_task(
                context.scheduler.run_forever(settings.monitor.sweep_interval)
            ))
            context.tasks.append(asyncio.create_task(
                context.credentials.run_rotation_timer(settings.monitor.api_key_rotate_interval)
            ))
            logger.info(f"Sweep timer started, every {settings.monitor.sweep_interval}s")

        logger.info("Sweeper startup completed")

    except Exception as e:
        logger.error(f"Failed to start sweeper: {str(e)}")
        raise


async def shutdown(context: Optional[ServiceContext]):
    """Cancel timers and release client sessions"""
    if context is None:
        return
    logger.info("Starting sweeper shutdown")

    try:
        for task in context.tasks:
            task.cancel()
        if context.tasks:
            await asyncio.gather(*context.tasks, return_exceptions=True)
        context.tasks.clear()
        logger.info("Timers cancelled")

        await context.credentials.close()
        logger.info("Sweeper shutdown completed")

    except Exception as e:
        logger.error(f"Error during shutdown: {str(e)}")
        # Don't raise during shutdown to allow graceful exit
