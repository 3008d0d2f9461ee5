"""
Child process supervision for the sweeper service
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass
class RestartPolicy:
    """How the watchdog reconnects and when it restarts the service"""
    max_retries: int = 3
    retry_delay: float = 5.0
    check_interval: float = 60.0
    kill_timeout: float = 10.0

    @classmethod
    def from_settings(cls, ws_settings) -> "RestartPolicy":
        return cls(
            max_retries=ws_settings.max_retries,
            retry_delay=ws_settings.retry_delay,
            check_interval=ws_settings.check_interval,
            kill_timeout=ws_settings.kill_timeout,
        )


class ProcessSupervisor:
    """Spawns the service, relays its output and restarts it on demand"""

    def __init__(self, command: List[str], policy: RestartPolicy, cwd: Optional[str] = None):
        self.command = list(command)
        self.policy = policy
        self.cwd = cwd
        self.process: Optional[asyncio.subprocess.Process] = None
        self.restart_count = 0
        self._relays: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    async def start(self):
        logger.info(f"Starting service: {' '.join(self.command)}")
        self.process = await asyncio.create_subprocess_exec(
            *self.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.cwd,
        )
        self._relays = [
            asyncio.create_task(self._relay(self.process.stdout, logging.INFO, "output")),
            asyncio.create_task(self._relay(self.process.stderr, logging.ERROR, "error")),
        ]
        logger.info(f"Service started with pid {self.process.pid}")

    async def _relay(self, stream, level: int, label: str):
        if stream is None:
            return
        while True:
            line = await stream.readline()
            if not line:
                break
            logger.log(level, f"service {label}: {line.decode(errors='replace').rstrip()}")

    async def stop(self):
        """Terminate the service, killing it after ``kill_timeout``"""
        process = self.process
        if process is None:
            return
        if process.returncode is None:
            logger.info(f"Stopping service pid {process.pid}")
            try:
                process.terminate()
                await asyncio.wait_for(process.wait(), timeout=self.policy.kill_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Service pid {process.pid} did not exit in {self.policy.kill_timeout}s, killing")
                process.kill()
                await process.wait()
            except ProcessLookupError:
                pass
        logger.info(f"Service exited with code {process.returncode}")
        await asyncio.gather(*self._relays, return_exceptions=True)
        self._relays = []
        self.process = None

    async def restart(self):
        logger.warning("Restarting service")
        await self.stop()
        await self.start()
        self.restart_count += 1
