import asyncio
import logging
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

from .config import settings


logger = logging.getLogger("moveeazy.events")


class EventHub:
    """Live event fan-out over plain WebSockets.

    Every connection receives global events; ``join`` additionally places a
    socket in a named room (``driver_<id>``, ``user_<id>``) for targeted pushes.
    """

    def __init__(self) -> None:
        self._conns: Set[WebSocket] = set()
        self._rooms: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, ws: WebSocket):
        await ws.accept()
        async with self._lock:
            self._conns.add(ws)

    async def join(self, room: str, ws: WebSocket):
        async with self._lock:
            self._rooms.setdefault(room, set()).add(ws)
        logger.info("socket joined room %s", room)

    async def disconnect(self, ws: WebSocket):
        async with self._lock:
            self._drop(ws)

    def _drop(self, ws: WebSocket) -> None:
        self._conns.discard(ws)
        for room in list(self._rooms):
            members = self._rooms[room]
            members.discard(ws)
            if not members:
                self._rooms.pop(room, None)

    @property
    def connection_count(self) -> int:
        return len(self._conns)

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    async def emit(self, event: str, data: Any, room: Optional[str] = None) -> int:
        """Send ``{"event", "data"}`` to a room or to everyone; returns deliveries."""
        async with self._lock:
            targets = list(self._rooms.get(room, set()) if room else self._conns)
        frame = {"event": event, "data": data}
        sent = 0
        to_remove = []
        for ws in targets:
            try:
                await ws.send_json(frame)
                sent += 1
            except Exception:
                to_remove.append(ws)
        if to_remove:
            async with self._lock:
                for ws in to_remove:
                    self._drop(ws)
            logger.info("pruned %d dead sockets", len(to_remove))
        return sent

    async def publish(self, event: str, data: Any, room: Optional[str] = None) -> int:
        """Emit a named event; scoped to ``room`` only when targeted delivery is on."""
        if room and settings.EVENTS_TARGETED:
            return await self.emit(event, data, room=room)
        return await self.emit(event, data)


event_hub = EventHub()
