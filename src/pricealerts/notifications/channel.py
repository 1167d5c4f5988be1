"""Abstract notification channel interface.

A channel accepts a trigger event and a recipient, attempts delivery and
reports success or failure. Adding a delivery mechanism means adding an
implementer of this class; the dispatcher never changes.
"""

from abc import ABC, abstractmethod

from pricealerts.alerts.models import ChannelKind, TriggerEvent
from pricealerts.notifications.models import Recipient


class NotificationChannel(ABC):
    """Abstract base class for one delivery mechanism."""

    kind: ChannelKind

    @abstractmethod
    async def send(self, event: TriggerEvent, recipient: Recipient) -> bool:
        """Attempt delivery of one event.

        Returns True on success and False on a soft failure. May raise
        DeliveryError (or any exception) on hard failure; the dispatcher
        records both the same way.
        """
        ...

    async def close(self) -> None:
        """Release resources. Channels without resources keep the default."""
        return None


def format_event_text(event: TriggerEvent) -> str:
    """Short plain-text message shared by the email and SMS channels."""
    name = f"{event.alert_name}: " if event.alert_name else ""
    return (
        f"{name}{event.symbol} alert triggered at {event.price_at_trigger} "
        f"(condition {event.condition_description})"
    )
