"""
Heartbeat channel watched by the liveness watchdog
"""

import asyncio
import logging
from typing import Dict

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from models.validation import HeartbeatMessage
from monitoring.metrics import heartbeat_watchers

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_INTERVAL = 30


class HeartbeatManager:
    """Pushes a heartbeat to each connected watcher every ``interval`` seconds"""

    def __init__(self, interval: float = DEFAULT_HEARTBEAT_INTERVAL):
        self.interval = interval
        self.connections: Dict[WebSocket, asyncio.Task] = {}

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.connections[websocket] = asyncio.create_task(self._push(websocket))
        heartbeat_watchers.set(len(self.connections))
        logger.info(f"Watchdog client connected: {websocket.client}")

    async def disconnect(self, websocket: WebSocket):
        task = self.connections.pop(websocket, None)
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        heartbeat_watchers.set(len(self.connections))
        logger.info(f"Watchdog client disconnected: {websocket.client}")

    async def _push(self, websocket: WebSocket):
        try:
            while True:
                await websocket.send_json(HeartbeatMessage().model_dump())
                await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Heartbeat push stopped for {websocket.client}: {e}")

    async def close_all(self):
        for websocket in list(self.connections):
            await self.disconnect(websocket)


heartbeat_app = FastAPI(title="TRON Sweeper Heartbeat")
heartbeat_app.state.manager = HeartbeatManager()


def configure_heartbeat(interval: float) -> HeartbeatManager:
    heartbeat_app.state.manager = HeartbeatManager(interval)
    return heartbeat_app.state.manager


@heartbeat_app.on_event("shutdown")
async def heartbeat_shutdown():
    await heartbeat_app.state.manager.close_all()


@heartbeat_app.websocket("/ws")
async def heartbeat_endpoint(websocket: WebSocket):
    manager: HeartbeatManager = websocket.app.state.manager
    await manager.connect(websocket)
    try:
        while True:
            data = await websocket.receive_text()
            logger.debug(f"Heartbeat channel received: {data}")
    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(websocket)
