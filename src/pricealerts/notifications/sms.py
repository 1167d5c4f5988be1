"""SMS channel using the Twilio Messages REST API over httpx."""

import httpx

from pricealerts.alerts.models import ChannelKind, TriggerEvent
from pricealerts.config import NotificationSettings
from pricealerts.exceptions import DeliveryError
from pricealerts.logging import get_logger
from pricealerts.notifications.channel import NotificationChannel, format_event_text
from pricealerts.notifications.models import Recipient

logger = get_logger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class SmsChannel(NotificationChannel):
    """Twilio SMS delivery.

    Args:
        settings: Twilio account SID, auth token and sender number.
        client: Optional httpx client (tests pass one with a MockTransport).
    """

    kind = ChannelKind.SMS

    def __init__(
        self,
        settings: NotificationSettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._account_sid = settings.twilio_account_sid
        self._auth_token = settings.twilio_auth_token.get_secret_value()
        self._from_number = settings.twilio_from_number
        self._client = client or httpx.AsyncClient(base_url=TWILIO_API_BASE)

    async def send(self, event: TriggerEvent, recipient: Recipient) -> bool:
        if not recipient.phone:
            raise DeliveryError("no sms address")
        if not (self._account_sid and self._auth_token and self._from_number):
            raise DeliveryError("twilio credentials not configured")

        try:
            response = await self._client.post(
                f"/Accounts/{self._account_sid}/Messages.json",
                data={
                    "To": recipient.phone,
                    "From": self._from_number,
                    "Body": format_event_text(event)[:1600],
                },
                auth=(self._account_sid, self._auth_token),
            )
        except httpx.HTTPError as e:
            raise DeliveryError(f"twilio request error: {e}") from e

        if response.status_code >= 300:
            raise DeliveryError(f"twilio HTTP {response.status_code}")

        logger.debug("sms_sent", alert_id=event.alert_id)
        return True

    async def close(self) -> None:
        await self._client.aclose()
