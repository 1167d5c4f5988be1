"""Owner-facing alert management: CRUD, pause/resume, templates and stats.

This is the only writer of alert definitions besides the trigger engine.
Owners may change everything except the trigger bookkeeping
(trigger_count, last_triggered_at), which belongs to the engine.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from pricealerts.alerts.models import (
    Alert,
    AlertFrequency,
    AlertOperator,
    AlertPriority,
    AlertStats,
    AlertStatus,
    ChannelKind,
)
from pricealerts.alerts.templates import ALERT_TEMPLATES, AlertTemplate
from pricealerts.config import AlertSettings
from pricealerts.exceptions import (
    AlertNotFoundError,
    InvalidAlertError,
    PriceAlertError,
    TemplateNotFoundError,
)
from pricealerts.logging import get_logger
from pricealerts.notifications.models import Recipient
from pricealerts.notifications.webhook import is_valid_webhook_url

if TYPE_CHECKING:
    from pricealerts.alerts.store import AlertStore

logger = get_logger(__name__)

_DAY_SECONDS = 86_400

# Fields an owner may change through update_alert.
_UPDATABLE_FIELDS = frozenset(
    {
        "symbol",
        "operator",
        "threshold",
        "status",
        "frequency",
        "cooldown_minutes",
        "max_triggers",
        "notification_channels",
        "name",
        "description",
        "priority",
        "tags",
        "notes",
    }
)

# Statuses an owner may set directly. TRIGGERED is reserved for the engine.
_OWNER_STATUSES = frozenset(
    {AlertStatus.ACTIVE, AlertStatus.PAUSED, AlertStatus.EXPIRED}
)


def _coerce(field_name: str, value: Any) -> Any:
    """Convert API/primitive values into the typed Alert field values."""
    try:
        if field_name == "symbol":
            return str(value).strip().upper()
        if field_name == "operator":
            return AlertOperator(value)
        if field_name == "status":
            return AlertStatus(value)
        if field_name == "frequency":
            return AlertFrequency(value)
        if field_name == "priority":
            return AlertPriority(value)
        if field_name == "threshold":
            return Decimal(str(value))
        if field_name == "notification_channels":
            return frozenset(ChannelKind(kind) for kind in value)
        if field_name == "tags":
            return tuple(str(tag).strip() for tag in value if str(tag).strip())
    except (ValueError, TypeError, InvalidOperation) as e:
        raise InvalidAlertError(f"invalid {field_name}: {value!r}") from e
    return value


def validate_alert(alert: Alert) -> None:
    """Raise InvalidAlertError if the alert violates field constraints."""
    if not alert.owner_id:
        raise InvalidAlertError("owner_id is required")
    if not alert.symbol or not alert.symbol.isalnum():
        raise InvalidAlertError(f"invalid symbol: {alert.symbol!r}")
    if not alert.threshold.is_finite() or alert.threshold <= 0:
        raise InvalidAlertError("threshold must be a positive number")
    if alert.cooldown_minutes < 0:
        raise InvalidAlertError("cooldown_minutes must be >= 0")
    if alert.max_triggers is not None and alert.max_triggers < 1:
        raise InvalidAlertError("max_triggers must be >= 1 when set")
    if not alert.notification_channels:
        raise InvalidAlertError("at least one notification channel is required")


class AlertService:
    """Alert management operations used by the HTTP API.

    Args:
        store: Alert persistence.
        settings: Supplies the default cooldown.
        clock: Returns Unix seconds (injectable for tests).
    """

    def __init__(
        self,
        store: AlertStore,
        settings: AlertSettings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock

    # ──────────────────────────────────────────────
    # CRUD
    # ──────────────────────────────────────────────

    async def create_alert(
        self,
        owner_id: str,
        symbol: str,
        operator: AlertOperator | str,
        threshold: Decimal | str | int | float,
        **options: Any,
    ) -> Alert:
        """Create an ACTIVE alert with defaults applied for omitted options."""
        alert = self._build_alert(owner_id, symbol, operator, threshold, **options)
        await self._insert(alert)
        return alert

    def _build_alert(
        self,
        owner_id: str,
        symbol: str,
        operator: AlertOperator | str,
        threshold: Decimal | str | int | float,
        **options: Any,
    ) -> Alert:
        unknown = set(options) - _UPDATABLE_FIELDS
        if unknown:
            raise InvalidAlertError(f"unknown fields: {', '.join(sorted(unknown))}")
        options.pop("status", None)

        now = self._clock()
        fields: dict[str, Any] = {
            "cooldown_minutes": self._settings.default_cooldown_minutes,
        }
        for name, value in options.items():
            if value is not None:
                fields[name] = _coerce(name, value)

        alert = Alert(
            owner_id=owner_id,
            symbol=_coerce("symbol", symbol),
            operator=_coerce("operator", operator),
            threshold=_coerce("threshold", threshold),
            status=AlertStatus.ACTIVE,
            created_at=now,
            updated_at=now,
            **fields,
        )
        validate_alert(alert)
        return alert

    async def _insert(self, alert: Alert) -> None:
        await self._store.create_alert(alert)
        logger.info(
            "alert_created",
            alert_id=alert.id,
            owner_id=alert.owner_id,
            condition=alert.describe_condition(),
        )

    async def get_alert(self, owner_id: str, alert_id: str) -> Alert:
        alert = await self._store.get_alert(alert_id)
        if alert is None or alert.owner_id != owner_id:
            raise AlertNotFoundError(alert_id)
        return alert

    async def list_alerts(
        self,
        owner_id: str,
        status: AlertStatus | str | None = None,
        symbol: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Alert]:
        status_filter = _coerce("status", status) if status is not None else None
        return await self._store.list_alerts(
            owner_id, status=status_filter, symbol=symbol, limit=limit, offset=offset
        )

    async def update_alert(
        self, owner_id: str, alert_id: str, changes: dict[str, Any]
    ) -> Alert:
        """Apply owner changes to an alert.

        Only the changed owner fields are written, so trigger bookkeeping
        recorded by the engine in the meantime is preserved.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise InvalidAlertError(f"cannot update: {', '.join(sorted(unknown))}")

        current = await self.get_alert(owner_id, alert_id)
        typed = {name: _coerce(name, value) for name, value in changes.items()}
        if "status" in typed and typed["status"] not in _OWNER_STATUSES:
            raise InvalidAlertError(f"status cannot be set to {typed['status'].value}")

        now = self._clock()
        validate_alert(replace(current, **typed, updated_at=now))
        if not await self._store.update_alert(alert_id, {**typed, "updated_at": now}):
            raise AlertNotFoundError(alert_id)
        logger.info("alert_updated", alert_id=alert_id, fields=sorted(typed))
        return await self.get_alert(owner_id, alert_id)

    async def delete_alert(self, owner_id: str, alert_id: str) -> None:
        await self.get_alert(owner_id, alert_id)
        await self._store.delete_alert(alert_id)
        logger.info("alert_deleted", alert_id=alert_id, owner_id=owner_id)

    async def pause_alert(self, owner_id: str, alert_id: str) -> Alert:
        return await self.update_alert(owner_id, alert_id, {"status": AlertStatus.PAUSED})

    async def resume_alert(self, owner_id: str, alert_id: str) -> Alert:
        return await self.update_alert(owner_id, alert_id, {"status": AlertStatus.ACTIVE})

    # ──────────────────────────────────────────────
    # Bulk operations
    # ──────────────────────────────────────────────

    async def bulk_update(
        self, owner_id: str, alert_ids: Iterable[str], changes: dict[str, Any]
    ) -> list[Alert]:
        """Update several alerts; failures are logged and skipped."""
        updated: list[Alert] = []
        for alert_id in alert_ids:
            try:
                updated.append(await self.update_alert(owner_id, alert_id, changes))
            except PriceAlertError as e:
                logger.warning("bulk_update_failed", alert_id=alert_id, error=str(e))
        return updated

    async def bulk_delete(
        self, owner_id: str, alert_ids: Iterable[str]
    ) -> dict[str, int]:
        success = 0
        failed = 0
        for alert_id in alert_ids:
            try:
                await self.delete_alert(owner_id, alert_id)
                success += 1
            except PriceAlertError as e:
                logger.warning("bulk_delete_failed", alert_id=alert_id, error=str(e))
                failed += 1
        return {"success": success, "failed": failed}

    # ──────────────────────────────────────────────
    # Templates and stats
    # ──────────────────────────────────────────────

    @staticmethod
    def list_templates() -> list[AlertTemplate]:
        return list(ALERT_TEMPLATES.values())

    async def create_from_template(
        self,
        owner_id: str,
        template_id: str,
        thresholds: dict[str, Decimal | str | int | float],
    ) -> list[Alert]:
        """Create one alert per symbol using a template's defaults.

        Every symbol and threshold is validated before the first insert, so
        an invalid entry leaves nothing behind.
        """
        template = ALERT_TEMPLATES.get(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)

        alerts = [
            self._build_alert(
                owner_id,
                symbol,
                template.operator,
                threshold,
                name=f"{template.name} - {str(symbol).strip().upper()}",
                description=template.description,
                frequency=template.frequency,
                cooldown_minutes=template.cooldown_minutes,
                priority=template.priority,
                notification_channels=template.notification_channels,
            )
            for symbol, threshold in thresholds.items()
        ]
        for alert in alerts:
            await self._insert(alert)
        return alerts

    async def get_stats(self, owner_id: str) -> AlertStats:
        now = self._clock()
        total = await self._store.count_alerts(owner_id)
        active = await self._store.count_alerts(owner_id, AlertStatus.ACTIVE)
        today = await self._store.count_triggered_since(owner_id, now - _DAY_SECONDS)
        week = await self._store.count_triggered_since(owner_id, now - 7 * _DAY_SECONDS)
        month = await self._store.count_triggered_since(owner_id, now - 30 * _DAY_SECONDS)
        return AlertStats(
            total_alerts=total,
            active_alerts=active,
            triggered_today=today,
            triggered_this_week=week,
            triggered_this_month=month,
            success_rate=round(month / active * 100, 2) if active else 0.0,
        )

    # ──────────────────────────────────────────────
    # Recipients
    # ──────────────────────────────────────────────

    async def set_recipient(
        self,
        owner_id: str,
        email: str | None = None,
        phone: str | None = None,
        webhook_url: str | None = None,
    ) -> Recipient:
        """Register the contact addresses used when the owner's alerts fire."""
        if not owner_id:
            raise InvalidAlertError("owner_id is required")
        if email is not None and "@" not in email:
            raise InvalidAlertError(f"invalid email: {email!r}")
        if webhook_url is not None and not is_valid_webhook_url(webhook_url):
            raise InvalidAlertError(f"invalid webhook_url: {webhook_url!r}")

        recipient = Recipient(
            owner_id=owner_id, email=email, phone=phone, webhook_url=webhook_url
        )
        await self._store.save_recipient(recipient)
        logger.info(
            "recipient_updated",
            owner_id=owner_id,
            channels=[
                name
                for name, value in (("email", email), ("sms", phone), ("webhook", webhook_url))
                if value
            ],
        )
        return recipient

    async def get_recipient(self, owner_id: str) -> Recipient:
        return await self._store.get_recipient(owner_id) or Recipient(owner_id=owner_id)
