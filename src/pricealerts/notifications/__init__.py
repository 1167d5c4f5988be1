"""Notification layer -- per-channel delivery of trigger events with failure isolation."""

from pricealerts.notifications.browser import BrowserChannel, NotificationHub
from pricealerts.notifications.channel import NotificationChannel
from pricealerts.notifications.dispatcher import NotificationDispatcher
from pricealerts.notifications.email import EmailChannel
from pricealerts.notifications.models import DispatchOutcome, Recipient
from pricealerts.notifications.sms import SmsChannel
from pricealerts.notifications.webhook import WebhookChannel

__all__ = [
    "BrowserChannel",
    "DispatchOutcome",
    "EmailChannel",
    "NotificationChannel",
    "NotificationDispatcher",
    "NotificationHub",
    "Recipient",
    "SmsChannel",
    "WebhookChannel",
]
