"""WebSocket subscription for in-app (browser) alert notifications.

The socket is push-only; the only client message understood is a "ping"
keepalive, answered with "pong".
"""

from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from pricealerts.notifications.browser import NotificationHub

router = APIRouter()


@router.websocket("/ws/notifications/{owner_id}")
async def notifications_endpoint(websocket: WebSocket, owner_id: str) -> None:
    hub: NotificationHub = websocket.app.state.hub
    await hub.connect(owner_id, websocket)
    try:
        while True:
            if (await websocket.receive_text()).strip().lower() == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(owner_id, websocket)
