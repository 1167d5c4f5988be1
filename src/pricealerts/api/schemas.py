"""Request bodies and response serializers for the HTTP API."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from pricealerts.alerts.models import (
    Alert,
    AlertFrequency,
    AlertOperator,
    AlertPriority,
    AlertStats,
    AlertStatus,
    ChannelKind,
)
from pricealerts.alerts.templates import AlertTemplate
from pricealerts.quotes.models import PriceQuote


class AlertCreate(BaseModel):
    owner_id: str = Field(min_length=1)
    symbol: str = Field(min_length=1, max_length=20)
    operator: AlertOperator
    threshold: Decimal = Field(gt=0)
    frequency: AlertFrequency | None = None
    cooldown_minutes: int | None = Field(default=None, ge=0)
    max_triggers: int | None = Field(default=None, ge=1)
    notification_channels: list[ChannelKind] | None = None
    name: str | None = None
    description: str | None = None
    priority: AlertPriority | None = None
    tags: list[str] | None = None
    notes: str | None = None


class AlertUpdate(BaseModel):
    """Partial update; only fields present in the request body are applied."""

    symbol: str | None = Field(default=None, min_length=1, max_length=20)
    operator: AlertOperator | None = None
    threshold: Decimal | None = Field(default=None, gt=0)
    status: AlertStatus | None = None
    frequency: AlertFrequency | None = None
    cooldown_minutes: int | None = Field(default=None, ge=0)
    max_triggers: int | None = Field(default=None, ge=1)
    notification_channels: list[ChannelKind] | None = None
    name: str | None = None
    description: str | None = None
    priority: AlertPriority | None = None
    tags: list[str] | None = None
    notes: str | None = None


class AlertBulk(BaseModel):
    """One action applied to several of an owner's alerts."""

    owner_id: str = Field(min_length=1)
    alert_ids: list[str] = Field(min_length=1)
    action: Literal["update", "delete"]
    changes: AlertUpdate | None = None


class TemplateApply(BaseModel):
    owner_id: str = Field(min_length=1)
    thresholds: dict[str, Decimal] = Field(min_length=1)


class RecipientUpdate(BaseModel):
    email: str | None = None
    phone: str | None = None
    webhook_url: str | None = None


def _iso(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def alert_to_dict(alert: Alert) -> dict:
    return {
        "id": alert.id,
        "owner_id": alert.owner_id,
        "name": alert.display_name,
        "description": alert.description,
        "symbol": alert.symbol,
        "operator": alert.operator.value,
        "threshold": str(alert.threshold),
        "status": alert.status.value,
        "frequency": alert.frequency.value,
        "cooldown_minutes": alert.cooldown_minutes,
        "max_triggers": alert.max_triggers,
        "trigger_count": alert.trigger_count,
        "last_triggered_at": _iso(alert.last_triggered_at),
        "notification_channels": sorted(k.value for k in alert.notification_channels),
        "priority": alert.priority.value,
        "tags": list(alert.tags),
        "notes": alert.notes,
        "created_at": _iso(alert.created_at),
        "updated_at": _iso(alert.updated_at),
    }


def quote_to_dict(quote: PriceQuote) -> dict:
    return {
        "symbol": quote.symbol,
        "price": str(quote.price),
        "as_of": _iso(quote.as_of),
        "source": quote.source,
    }


def template_to_dict(template: AlertTemplate) -> dict:
    return {
        "id": template.id,
        "name": template.name,
        "description": template.description,
        "operator": template.operator.value,
        "frequency": template.frequency.value,
        "cooldown_minutes": template.cooldown_minutes,
        "priority": template.priority.value,
        "notification_channels": sorted(k.value for k in template.notification_channels),
        "is_popular": template.is_popular,
    }


def stats_to_dict(stats: AlertStats) -> dict:
    return {
        "total_alerts": stats.total_alerts,
        "active_alerts": stats.active_alerts,
        "triggered_today": stats.triggered_today,
        "triggered_this_week": stats.triggered_this_week,
        "triggered_this_month": stats.triggered_this_month,
        "success_rate": stats.success_rate,
    }
