import asyncio
from typing import Dict, Optional, Tuple

from fastapi import WebSocket

from .logger import get_logger
from .models import EventEnvelope

log = get_logger("timelock.ws")


class WSManager:
    """
    Fans registry events out to connected WebSocket observers.

    `notify` is an EventLog listener and may be called from any thread; it
    only schedules a put on each subscriber's queue in that subscriber's loop.
    """

    def __init__(self) -> None:
        self._subs: Dict[WebSocket, Tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = {}

    def connect(self, ws: WebSocket) -> asyncio.Queue:
        # ws.accept() is done by the endpoint
        queue: asyncio.Queue = asyncio.Queue()
        self._subs[ws] = (asyncio.get_running_loop(), queue)
        return queue

    def disconnect(self, ws: WebSocket) -> None:
        self._subs.pop(ws, None)

    def notify(self, entry: EventEnvelope) -> None:
        for ws, (loop, queue) in list(self._subs.items()):
            try:
                loop.call_soon_threadsafe(queue.put_nowait, entry)
            except RuntimeError:
                # loop already closed
                log.warning(f"[WS] dropping subscriber on closed loop seq={entry.seq}")
                self.disconnect(ws)

    async def stream(self, ws: WebSocket, queue: asyncio.Queue, last_seq: Optional[int]) -> None:
        while True:
            entry = await queue.get()
            if last_seq is not None and entry.seq <= last_seq:
                continue  # replayed already, or below the requested start
            await ws.send_json(entry.model_dump(mode="json"))
            last_seq = entry.seq
