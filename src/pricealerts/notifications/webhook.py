"""Webhook channel: JSON POST of the trigger event to the owner's URL."""

from urllib.parse import urlparse

import httpx

from pricealerts.alerts.models import ChannelKind, TriggerEvent
from pricealerts.exceptions import DeliveryError
from pricealerts.logging import get_logger
from pricealerts.notifications.channel import NotificationChannel
from pricealerts.notifications.models import Recipient

logger = get_logger(__name__)


def is_valid_webhook_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class WebhookChannel(NotificationChannel):
    """POSTs {"type": "alert_triggered", "event": {...}} to recipient.webhook_url."""

    kind = ChannelKind.WEBHOOK

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient()

    async def send(self, event: TriggerEvent, recipient: Recipient) -> bool:
        url = recipient.webhook_url
        if not url:
            raise DeliveryError("no webhook address")
        if not is_valid_webhook_url(url):
            raise DeliveryError(f"invalid webhook url: {url}")

        try:
            response = await self._client.post(
                url,
                json={"type": "alert_triggered", "event": event.to_payload()},
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            raise DeliveryError(f"webhook request error: {e}") from e

        if not response.is_success:
            raise DeliveryError(f"webhook HTTP {response.status_code}")

        logger.debug("webhook_delivered", url=url, alert_id=event.alert_id)
        return True

    async def close(self) -> None:
        await self._client.aclose()
