# store_api/broadcast.py
import asyncio
import logging
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


class ChangeBroadcaster:
    """
    Fans product change events out to connected WebSocket listeners.

    publish() only enqueues; a background task does the sending, so a slow
    or dead listener never holds up an HTTP response. Delivery is
    best-effort: a listener whose send fails is dropped.
    """

    def __init__(self):
        self.listeners: Set[WebSocket] = set()
        self._queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    async def start(self):
        if self._task is None:
            self._task = asyncio.create_task(self._drain())

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.listeners.clear()

    def publish(self, operation: str, resource: str, record: Dict[str, Any]) -> None:
        self._queue.put_nowait({
            "event": operation,
            "resource": resource,
            "data": jsonable_encoder(record),
        })

    async def listen(self, websocket: WebSocket):
        await websocket.accept()
        self.listeners.add(websocket)
        logger.debug("listener connected (%d total)", len(self.listeners))
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            self.listeners.discard(websocket)
            logger.debug("listener disconnected (%d total)", len(self.listeners))

    async def _drain(self):
        while True:
            event = await self._queue.get()
            for ws in list(self.listeners):
                try:
                    await ws.send_json(event)
                except Exception as exc:
                    logger.warning("dropping listener after failed send: %s", exc)
                    self.listeners.discard(ws)
            self._queue.task_done()
