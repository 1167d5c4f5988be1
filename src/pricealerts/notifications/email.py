"""Email channel over SMTP.

smtplib is blocking, so each send runs in a worker thread via
asyncio.to_thread. When no SMTP host is configured the channel runs in
development mode: the message is logged instead of sent and counts as
delivered.
"""

import asyncio
import smtplib
from email.message import EmailMessage

from pricealerts.alerts.models import ChannelKind, TriggerEvent
from pricealerts.config import NotificationSettings
from pricealerts.exceptions import DeliveryError
from pricealerts.logging import get_logger
from pricealerts.notifications.channel import NotificationChannel, format_event_text
from pricealerts.notifications.models import Recipient

logger = get_logger(__name__)


def build_message(event: TriggerEvent, sender: str, to: str) -> EmailMessage:
    message = EmailMessage()
    message["Subject"] = f"Price alert: {event.symbol} at {event.price_at_trigger}"
    message["From"] = sender
    message["To"] = to
    message.set_content(
        "\n".join(
            [
                format_event_text(event),
                "",
                f"Symbol:    {event.symbol}",
                f"Price:     {event.price_at_trigger}",
                f"Condition: {event.condition_description}",
                f"Priority:  {event.priority.value}",
            ]
        )
    )
    return message


class EmailChannel(NotificationChannel):
    """SMTP email delivery."""

    kind = ChannelKind.EMAIL

    def __init__(self, settings: NotificationSettings) -> None:
        self._settings = settings

    @property
    def configured(self) -> bool:
        return bool(self._settings.smtp_host)

    async def send(self, event: TriggerEvent, recipient: Recipient) -> bool:
        if not recipient.email:
            raise DeliveryError("no email address")

        message = build_message(event, self._settings.smtp_from, recipient.email)

        if not self.configured:
            logger.info(
                "email_development_mode",
                to=recipient.email,
                subject=message["Subject"],
            )
            return True

        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"smtp error: {e}") from e

        logger.debug("email_sent", to=recipient.email, alert_id=event.alert_id)
        return True

    def _send_sync(self, message: EmailMessage) -> None:
        settings = self._settings
        # Same budget as the dispatcher's per-channel wait_for.
        with smtplib.SMTP(
            settings.smtp_host, settings.smtp_port, timeout=settings.channel_timeout
        ) as smtp:
            if settings.smtp_starttls:
                smtp.starttls()
            if settings.smtp_user:
                smtp.login(settings.smtp_user, settings.smtp_password.get_secret_value())
            smtp.send_message(message)
