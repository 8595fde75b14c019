"""
WebSocket endpoint
Live payment, task and log events for the signed-in farmer
"""

import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from cropgenius.core.auth import resolve_user
from cropgenius.core.events import event_manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: str = Query(None)):
    user = resolve_user(token) if token else None
    if not user:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    user_id = user["id"]
    await event_manager.connect(user_id, websocket)
    try:
        await websocket.send_json({"type": "connected", "account_id": user_id})
        while True:
            message = await websocket.receive_text()
            if message == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    finally:
        await event_manager.disconnect(user_id, websocket)
