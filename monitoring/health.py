"""
Health monitoring for the TRON sweeper
"""

import os
import time
import asyncio
from typing import Dict, Any, Optional
from dataclasses import asdict, dataclass
from enum import Enum

from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from log_utils import get_logger
from monitoring.metrics import (
    service_info, uptime_seconds, pending_multisign_count, health_check_status
)
from tron.client import block_number_of

logger = get_logger(__name__)

SLOW_NODE_SECONDS = 2.0


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    status: HealthStatus
    message: str
    last_check: float
    details: Optional[Dict[str, Any]] = None


_STATUS_VALUES = {
    HealthStatus.HEALTHY: 1.0,
    HealthStatus.DEGRADED: 0.5,
    HealthStatus.UNHEALTHY: 0.0,
}


def _component(name: str, status: HealthStatus, message: str, details=None) -> ComponentHealth:
    health_check_status.labels(component=name).set(_STATUS_VALUES[status])
    return ComponentHealth(status=status, message=message, last_check=time.time(), details=details)


class HealthMonitor:
    """Service health checks over the node connection, ledger files and sweep loop"""

    def __init__(self, credentials=None, ledger=None, scheduler=None, pending=None,
                 sweep_interval: float = 30, version: str = "1.0.0"):
        self.credentials = credentials
        self.ledger = ledger
        self.scheduler = scheduler
        self.pending = pending
        self.sweep_interval = sweep_interval
        self.components: Dict[str, ComponentHealth] = {}
        self.start_time = time.time()
        service_info.info({
            'version': version,
            'host_id': os.environ.get('HOSTNAME', 'unknown')
        })

    async def check_node_health(self) -> ComponentHealth:
        """Check the TRON node answers through the owner binding"""
        if self.credentials is None:
            return _component('node', HealthStatus.UNHEALTHY, "No client bindings configured")
        try:
            start_time = time.time()
            block = await self.credentials.owner.get_now_block()
            duration = time.time() - start_time
        except Exception as e:
            logger.error(f"Node health check failed: {str(e)}")
            return _component('node', HealthStatus.UNHEALTHY, f"Node error: {str(e)}")

        details = {
            "response_time": duration,
            "block_number": block_number_of(block),
            "api_key_index": self.credentials.pool.cursor,
        }
        if duration > SLOW_NODE_SECONDS:
            return _component('node', HealthStatus.DEGRADED, f"Node slow: {duration:.2f}s", details)
        return _component('node', HealthStatus.HEALTHY, "Node reachable", details)

    async def check_ledger_health(self) -> ComponentHealth:
        """Check the transfer record files can be written"""
        if self.ledger is None:
            return _component('ledger', HealthStatus.UNHEALTHY, "Transfer ledger not initialized")

        details = self.ledger.get_stats()
        for path in (self.ledger.records_path, self.ledger.success_path):
            directory = os.path.dirname(os.path.abspath(path))
            if not os.access(directory, os.W_OK) or (os.path.exists(path) and not os.access(path, os.W_OK)):
                return _component('ledger', HealthStatus.DEGRADED, f"Ledger file not writable: {path}", details)
        return _component('ledger', HealthStatus.HEALTHY, "Ledger writable", details)

    async def check_scheduler_health(self) -> ComponentHealth:
        """Check sweep cycles keep completing"""
        if self.scheduler is None:
            return _component('scheduler', HealthStatus.UNHEALTHY, "Sweep scheduler not running")

        details = self.scheduler.get_stats()
        report = self.scheduler.last_report
        if report is None:
            age = time.time() - self.start_time
            if age > 3 * self.sweep_interval:
                return _component('scheduler', HealthStatus.DEGRADED, "No sweep cycle completed yet", details)
            return _component('scheduler', HealthStatus.HEALTHY, "Waiting for first sweep cycle", details)

        since = time.time() - (report.started_at + report.duration)
        if since > 3 * self.sweep_interval and not self.scheduler.cycle_running:
            return _component('scheduler', HealthStatus.DEGRADED,
                              f"Last sweep cycle {since / 60:.1f} minutes ago", details)
        return _component('scheduler', HealthStatus.HEALTHY, "Sweep cycles running", details)

    async def check_pending_health(self) -> ComponentHealth:
        """Check broadcast transfers are resolving"""
        if self.pending is None:
            return _component('pending', HealthStatus.HEALTHY, "No pending tracker")

        stats = self.pending.get_stats()
        pending_multisign_count.set(stats["pending_count"])
        oldest = stats["oldest_age_seconds"]
        if oldest is not None and oldest > stats["stale_after_seconds"]:
            return _component('pending', HealthStatus.DEGRADED,
                              f"Pending transfer unresolved for {oldest / 60:.1f} minutes", stats)
        return _component('pending', HealthStatus.HEALTHY, "Pending transfers normal", stats)

    async def run_health_checks(self) -> Dict[str, ComponentHealth]:
        uptime_seconds.set(time.time() - self.start_time)
        names = ("node", "ledger", "scheduler", "pending")
        results = await asyncio.gather(
            self.check_node_health(),
            self.check_ledger_health(),
            self.check_scheduler_health(),
            self.check_pending_health(),
            return_exceptions=True,
        )
        self.components = {
            name: result if isinstance(result, ComponentHealth)
            else _component(name, HealthStatus.UNHEALTHY, f"Health check failed: {result}")
            for name, result in zip(names, results)
        }
        return self.components

    def get_overall_health(self) -> HealthStatus:
        """Worst component status; unhealthy before the first run"""
        statuses = {comp.status for comp in self.components.values()}
        if not statuses or HealthStatus.UNHEALTHY in statuses:
            return HealthStatus.UNHEALTHY
        if HealthStatus.DEGRADED in statuses:
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    def get_health_summary(self) -> Dict[str, Any]:
        now = time.time()
        components = {name: dict(asdict(comp), status=comp.status.value) for name, comp in self.components.items()}
        return {
            "status": self.get_overall_health().value,
            "uptime": now - self.start_time,
            "timestamp": now,
            "components": components,
        }

    def generate_metrics(self) -> tuple[bytes, str]:
        uptime_seconds.set(time.time() - self.start_time)
        return generate_latest(), CONTENT_TYPE_LATEST
