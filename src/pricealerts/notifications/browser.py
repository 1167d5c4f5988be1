"""In-app browser push: a WebSocket hub keyed by owner.

The API's /ws/notifications/{owner_id} endpoint registers sockets here;
BrowserChannel pushes trigger events as JSON to every socket the owner
has open.
"""

from __future__ import annotations

from typing import Any

from pricealerts.alerts.models import ChannelKind, TriggerEvent
from pricealerts.exceptions import DeliveryError
from pricealerts.logging import get_logger
from pricealerts.notifications.channel import NotificationChannel
from pricealerts.notifications.models import Recipient

logger = get_logger(__name__)


class NotificationHub:
    """Tracks open WebSocket connections per owner and pushes JSON to them."""

    def __init__(self) -> None:
        self._connections: dict[str, list[Any]] = {}

    def connection_count(self, owner_id: str | None = None) -> int:
        if owner_id is not None:
            return len(self._connections.get(owner_id, []))
        return sum(len(sockets) for sockets in self._connections.values())

    async def connect(self, owner_id: str, ws: Any) -> None:
        """Accept a WebSocket connection and register it for the owner."""
        await ws.accept()
        self._connections.setdefault(owner_id, []).append(ws)
        logger.info("notification_ws_connected", owner_id=owner_id, total=self.connection_count())

    def disconnect(self, owner_id: str, ws: Any) -> None:
        sockets = self._connections.get(owner_id, [])
        if ws in sockets:
            sockets.remove(ws)
        if not sockets:
            self._connections.pop(owner_id, None)
        logger.info("notification_ws_disconnected", owner_id=owner_id, total=self.connection_count())

    async def push(self, owner_id: str, payload: dict) -> int:
        """Send a JSON payload to all of the owner's sockets, dropping broken ones.

        Returns the number of sockets that received it.
        """
        delivered = 0
        for ws in list(self._connections.get(owner_id, [])):
            try:
                await ws.send_json(payload)
                delivered += 1
            except Exception:
                self.disconnect(owner_id, ws)
                logger.warning("notification_ws_push_error", owner_id=owner_id)
        return delivered


class BrowserChannel(NotificationChannel):
    """Delivers events to the owner's open browser sessions."""

    kind = ChannelKind.BROWSER

    def __init__(self, hub: NotificationHub) -> None:
        self._hub = hub

    async def send(self, event: TriggerEvent, recipient: Recipient) -> bool:
        delivered = await self._hub.push(
            recipient.owner_id, {"type": "alert_triggered", "event": event.to_payload()}
        )
        if delivered == 0:
            raise DeliveryError("no connected browser sessions")
        return True
