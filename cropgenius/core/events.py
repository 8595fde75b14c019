"""
Realtime event fan-out
Keeps track of each farmer's open WebSocket connections and pushes events to them
"""

import asyncio
import logging
from typing import Dict, List, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class EventManager:
    """
    Routes payloads to WebSocket connections grouped by user id.
    A payload with an "account_id" goes to that user only; without one it goes to everyone.
    """

    def __init__(self):
        self._connections: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self._connections.setdefault(user_id, set()).add(websocket)
        logger.info(f"🔌 WebSocket connected for user {user_id}")

    async def disconnect(self, user_id: str, websocket: WebSocket):
        async with self._lock:
            sockets = self._connections.get(user_id)
            if sockets:
                sockets.discard(websocket)
                if not sockets:
                    del self._connections[user_id]

    def connection_count(self, user_id: Optional[str] = None) -> int:
        if user_id is not None:
            return len(self._connections.get(user_id, ()))
        return sum(len(s) for s in self._connections.values())

    async def broadcast(self, payload: Dict):
        """Send payload to its target user (or all users) and prune dead sockets"""
        target = payload.get("account_id")
        async with self._lock:
            if target:
                recipients = [(target, ws) for ws in self._connections.get(target, ())]
            else:
                recipients = [
                    (uid, ws) for uid, sockets in self._connections.items() for ws in sockets
                ]

        dead: List = []
        for uid, ws in recipients:
            try:
                await ws.send_json(payload)
            except Exception:
                dead.append((uid, ws))

        for uid, ws in dead:
            await self.disconnect(uid, ws)

    async def notify(self, user_id: str, event_type: str, data: Dict):
        """Push a typed domain event (payment_status, tasks_updated...) to one user"""
        await self.broadcast({"type": event_type, "account_id": user_id, "data": data})


event_manager = EventManager()
