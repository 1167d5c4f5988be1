"""Notification delivery models."""

from dataclasses import dataclass

from pricealerts.alerts.models import ChannelKind


@dataclass(frozen=True)
class Recipient:
    """Contact addresses for an alert owner. Missing addresses disable that channel."""

    owner_id: str
    email: str | None = None
    phone: str | None = None
    webhook_url: str | None = None


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of one delivery attempt on one channel. Observability only."""

    channel: ChannelKind
    success: bool
    attempted_at: float
    error: str | None = None
    latency_ms: float = 0.0
