"""
Heartbeat channel client that decides when the service must be restarted.

The watcher keeps a WebSocket open to the service's heartbeat endpoint.
Every lost or failed connection counts one retry; once ``max_retries``
retries have been spent the service is restarted and the count starts
over. Any successful connect or received message resets the count.
"""

import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional

import aiohttp
from pydantic import ValidationError

from models.validation import HeartbeatMessage
from liveness.supervisor import RestartPolicy

logger = logging.getLogger(__name__)


class HeartbeatWatcher:

    def __init__(self, url: str, policy: RestartPolicy, supervisor,
                 session_factory: Callable[[], aiohttp.ClientSession] = aiohttp.ClientSession,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep):
        self.url = url
        self.policy = policy
        self.supervisor = supervisor
        self.session_factory = session_factory
        self.sleep = sleep

        self.connected = False
        self.connecting = False
        self.retry_count = 0
        self.last_heartbeat: Optional[HeartbeatMessage] = None
        self._session = None
        self._ws = None
        self._stopping = False

    @property
    def channel_open(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def connect(self) -> bool:
        self.connecting = True
        try:
            if self._session is None:
                self._session = self.session_factory()
            self._ws = await self._session.ws_connect(self.url)
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Heartbeat channel error: {e}")
            self._ws = None
            return False
        finally:
            self.connecting = False

        self.connected = True
        self.retry_count = 0
        logger.info(f"Heartbeat channel connected to {self.url}")
        return True

    async def listen(self):
        """Consume heartbeats until the channel closes"""
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._on_message(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"Heartbeat channel error: {self._ws.exception()}")
                    break
        finally:
            self.connected = False
        if not self._stopping:
            logger.warning("Heartbeat channel closed")

    def _on_message(self, data: str):
        self.retry_count = 0
        try:
            self.last_heartbeat = HeartbeatMessage(**json.loads(data))
        except (ValueError, TypeError, ValidationError):
            logger.warning(f"Unexpected heartbeat message: {data}")
            return
        logger.debug(f"Heartbeat received: {self.last_heartbeat.timestamp}")

    async def handle_connection_loss(self):
        """Count one retry, or restart the service once retries run out"""
        if self.retry_count < self.policy.max_retries:
            self.retry_count += 1
            logger.info(f"Reconnecting to heartbeat channel ({self.retry_count}/{self.policy.max_retries})")
        else:
            logger.error("Max reconnect attempts reached, restarting service")
            try:
                await self.supervisor.restart()
            except (OSError, RuntimeError) as e:
                logger.error(f"Service restart failed: {e}")
            self.retry_count = 0
        await self.sleep(self.policy.retry_delay)

    async def run(self):
        """Connect, listen and handle losses until stopped"""
        while not self._stopping:
            if await self.connect():
                await self.listen()
            if self._stopping:
                break
            await self.handle_connection_loss()

    async def check_connection(self):
        """Ping an open channel; a failed ping closes it so ``run`` reconnects"""
        if self.channel_open:
            try:
                await self._ws.ping()
            except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
                logger.warning(f"Heartbeat ping failed: {e}")
                await self._ws.close()
        elif not self.connecting:
            logger.warning("Heartbeat channel not open")

    async def run_probe(self):
        while not self._stopping:
            await self.sleep(self.policy.check_interval)
            await self.check_connection()

    def stop(self):
        self._stopping = True

    async def close(self):
        self.stop()
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._session is not None:
            await self._session.close()
            self._session = None
