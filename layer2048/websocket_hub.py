from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class BoardWebSocketHub:
    """In-process fan-out of board updates to renderers watching a game.

    Renderers connect to `/ws/game/{game_id}` and re-fetch (or apply) the snapshot
    carried in each message. Payloads must be JSON-serializable dicts.
    """

    def __init__(self) -> None:
        self._watchers: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, game_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._watchers[game_id].add(websocket)

    async def disconnect(self, game_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            sockets = self._watchers.get(game_id)
            if not sockets:
                return
            sockets.discard(websocket)
            if not sockets:
                self._watchers.pop(game_id, None)

    def watcher_count(self, game_id: str) -> int:
        return len(self._watchers.get(game_id, ()))

    async def broadcast(self, game_id: str, payload: dict[str, object]) -> None:
        async with self._lock:
            sockets = list(self._watchers.get(game_id, ()))

        stale: list[WebSocket] = []
        for ws in sockets:
            try:
                await ws.send_json(payload)
            except Exception:
                logger.debug("Dropping websocket for game %s", game_id, exc_info=True)
                stale.append(ws)

        for ws in stale:
            await self.disconnect(game_id, ws)


hub = BoardWebSocketHub()
