"""Alert and trigger-event models.

CRITICAL: Thresholds and prices use Decimal. Alert attributes are explicit
typed fields; nothing is serialized into a free-text column.
"""

import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class AlertOperator(str, Enum):
    """Comparison applied between the live price and the threshold."""

    GT = "GT"
    LT = "LT"
    EQ = "EQ"  # approximately equal, within a tolerance band


class AlertStatus(str, Enum):
    """Alert lifecycle state. Only ACTIVE alerts are evaluated."""

    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"
    TRIGGERED = "triggered"


class AlertFrequency(str, Enum):
    """How often an alert may fire."""

    ONCE = "once"
    RECURRING = "recurring"
    DAILY_MAX = "daily_max"


class ChannelKind(str, Enum):
    """Notification channel kinds an alert can fan out to."""

    EMAIL = "email"
    BROWSER = "browser"
    SMS = "sms"
    WEBHOOK = "webhook"


class AlertPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


def new_alert_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Alert:
    """A user's price alert definition plus its trigger bookkeeping.

    The trigger engine only ever changes status, trigger_count,
    last_triggered_at and updated_at, working on a replaced copy rather
    than mutating a record other readers hold. Owner edits never write
    trigger_count or last_triggered_at.
    """

    owner_id: str
    symbol: str
    operator: AlertOperator
    threshold: Decimal
    id: str = field(default_factory=new_alert_id)
    status: AlertStatus = AlertStatus.ACTIVE
    frequency: AlertFrequency = AlertFrequency.ONCE
    cooldown_minutes: int = 10
    max_triggers: int | None = None
    trigger_count: int = 0
    last_triggered_at: float | None = None  # Unix seconds
    notification_channels: frozenset[ChannelKind] = frozenset({ChannelKind.BROWSER})
    name: str = ""
    description: str = ""
    priority: AlertPriority = AlertPriority.MEDIUM
    tags: tuple[str, ...] = ()
    notes: str = ""
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @property
    def display_name(self) -> str:
        return self.name or f"{self.symbol} Alert"

    def describe_condition(self) -> str:
        """Human-readable condition, e.g. ``BTC GT 50000``."""
        return f"{self.symbol} {self.operator.value} {self.threshold}"


@dataclass(frozen=True)
class TriggerEvent:
    """Immutable record of one firing decision."""

    alert_id: str
    owner_id: str
    symbol: str
    price_at_trigger: Decimal
    triggered_at: float
    condition_description: str
    alert_name: str = ""
    priority: AlertPriority = AlertPriority.MEDIUM

    def to_payload(self) -> dict:
        """JSON-safe representation used by the HTTP-based channels and the API."""
        return {
            "alert_id": self.alert_id,
            "owner_id": self.owner_id,
            "symbol": self.symbol,
            "price_at_trigger": str(self.price_at_trigger),
            "triggered_at": self.triggered_at,
            "condition": self.condition_description,
            "alert_name": self.alert_name,
            "priority": self.priority.value,
        }


@dataclass
class EvaluationSummary:
    """Outcome of one evaluate_all() cycle, for observability."""

    checked: int = 0
    triggered: int = 0
    expired: int = 0
    superseded: int = 0  # decisions dropped because the alert changed mid-cycle
    events: list[TriggerEvent] = field(default_factory=list)

    def to_payload(self) -> dict:
        return {
            "checked": self.checked,
            "triggered": self.triggered,
            "expired": self.expired,
            "superseded": self.superseded,
            "events": [event.to_payload() for event in self.events],
        }


@dataclass
class AlertStats:
    """Per-owner alert counters."""

    total_alerts: int
    active_alerts: int
    triggered_today: int
    triggered_this_week: int
    triggered_this_month: int
    success_rate: float
