"""Predefined alert templates for one-click alert creation."""

from dataclasses import dataclass, field

from pricealerts.alerts.models import (
    AlertFrequency,
    AlertOperator,
    AlertPriority,
    ChannelKind,
)


@dataclass(frozen=True)
class AlertTemplate:
    """Default settings applied when creating alerts from a template."""

    id: str
    name: str
    description: str
    operator: AlertOperator
    frequency: AlertFrequency = AlertFrequency.ONCE
    cooldown_minutes: int = 10
    priority: AlertPriority = AlertPriority.MEDIUM
    notification_channels: frozenset[ChannelKind] = field(
        default_factory=lambda: frozenset({ChannelKind.BROWSER})
    )
    is_popular: bool = False


ALERT_TEMPLATES: dict[str, AlertTemplate] = {
    "price_breakout": AlertTemplate(
        id="price_breakout",
        name="Price Breakout",
        description="Alert when price breaks above resistance level",
        operator=AlertOperator.GT,
        cooldown_minutes=60,
        priority=AlertPriority.HIGH,
        notification_channels=frozenset({ChannelKind.BROWSER, ChannelKind.EMAIL}),
        is_popular=True,
    ),
    "price_drop": AlertTemplate(
        id="price_drop",
        name="Price Drop Alert",
        description="Alert when price drops below support level",
        operator=AlertOperator.LT,
        cooldown_minutes=30,
        priority=AlertPriority.HIGH,
        notification_channels=frozenset({ChannelKind.BROWSER, ChannelKind.EMAIL}),
        is_popular=True,
    ),
}
