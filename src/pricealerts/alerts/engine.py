"""Alert trigger engine -- evaluates active alerts against current quotes.

Each evaluate_all() cycle:
  1. LOAD: read all ACTIVE alerts from the store (failure here is fatal)
  2. QUOTE: one batched QuoteCache call for the distinct symbol set
  3. DECIDE: per alert, run the firing checks in order
       status -> quote present -> condition -> cooldown -> max triggers
  4. COMMIT: write each decision's trigger fields, only if the stored row
     is still the one loaded in step 1; otherwise the decision is dropped
  5. NOTIFY: fan events out through the dispatcher; delivery failures are
     recorded and never roll back step 4

Cycles are single-flight: a second caller waits for the running cycle to
finish and then runs its own, because cooldown and max-trigger checks
depend on state written by the previous cycle.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import TYPE_CHECKING

from pricealerts.alerts.models import (
    Alert,
    AlertFrequency,
    AlertOperator,
    AlertStatus,
    EvaluationSummary,
    TriggerEvent,
)
from pricealerts.config import AlertSettings
from pricealerts.exceptions import AlertStoreError
from pricealerts.logging import bind_cycle, get_logger, unbind_cycle
from pricealerts.notifications.models import DispatchOutcome, Recipient

if TYPE_CHECKING:
    from pricealerts.alerts.store import AlertStore
    from pricealerts.notifications.dispatcher import NotificationDispatcher
    from pricealerts.quotes.cache import QuoteCache
    from pricealerts.quotes.models import PriceQuote

logger = get_logger(__name__)


def condition_holds(
    operator: AlertOperator,
    price: Decimal,
    threshold: Decimal,
    tolerance: Decimal = Decimal("0.001"),
) -> bool:
    """Test a price against a threshold.

    EQ uses a relative band: |price - threshold| < |threshold| * tolerance.
    """
    if operator is AlertOperator.GT:
        return price > threshold
    if operator is AlertOperator.LT:
        return price < threshold
    if operator is AlertOperator.EQ:
        return abs(price - threshold) < abs(threshold) * tolerance
    return False


@dataclass(frozen=True)
class Decision:
    """What one evaluation decided for one alert."""

    alert: Alert  # record with the new trigger fields
    event: TriggerEvent | None  # None when the alert was only retired


class TriggerEngine:
    """Evaluates alert definitions and applies trigger policy.

    Args:
        store: Alert persistence collaborator.
        quote_cache: Shared quote cache.
        dispatcher: Notification fan-out.
        settings: Tolerance and frequency policy.
        clock: Returns Unix seconds (injectable for tests).
    """

    def __init__(
        self,
        store: AlertStore,
        quote_cache: QuoteCache,
        dispatcher: NotificationDispatcher,
        settings: AlertSettings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._quote_cache = quote_cache
        self._dispatcher = dispatcher
        self._settings = settings
        self._clock = clock
        self._cycle_lock = asyncio.Lock()
        self._last_summary: EvaluationSummary | None = None

    @property
    def last_summary(self) -> EvaluationSummary | None:
        return self._last_summary

    # ──────────────────────────────────────────────
    # Cycle
    # ──────────────────────────────────────────────

    async def evaluate_all(self) -> EvaluationSummary:
        """Run one evaluation cycle over every active alert.

        Raises:
            AlertStoreError: Alert records could not be read or written.
        """
        async with self._cycle_lock:
            bind_cycle(uuid.uuid4().hex[:12])
            try:
                summary = await self._run_cycle()
            finally:
                unbind_cycle()
        self._last_summary = summary
        return summary

    async def _run_cycle(self) -> EvaluationSummary:
        start = time.monotonic()
        try:
            alerts = await self._store.list_active_alerts()
        except AlertStoreError:
            raise
        except Exception as e:
            raise AlertStoreError(f"list_active_alerts failed: {e}") from e

        summary = EvaluationSummary(checked=len(alerts))
        if not alerts:
            logger.debug("evaluation_cycle_no_alerts")
            return summary

        symbols = {alert.symbol.upper() for alert in alerts}
        quotes = await self._quote_cache.get_quotes(symbols)
        now = self._clock()

        fired: list[tuple[Alert, TriggerEvent]] = []
        for alert in alerts:
            decision = self.decide(alert, quotes.get(alert.symbol.upper()), now)
            if decision is None:
                continue

            if not await self._commit(decision.alert, alert):
                summary.superseded += 1
                logger.info(
                    "alert_changed_during_cycle",
                    alert_id=alert.id,
                    owner_id=alert.owner_id,
                )
                continue

            if decision.event is None:
                summary.expired += 1
                logger.info(
                    "alert_expired",
                    alert_id=alert.id,
                    trigger_count=alert.trigger_count,
                    max_triggers=alert.max_triggers,
                )
                continue

            summary.triggered += 1
            summary.events.append(decision.event)
            if decision.alert.status is AlertStatus.EXPIRED:
                summary.expired += 1
            fired.append((decision.alert, decision.event))
            logger.info(
                "alert_triggered",
                alert_id=alert.id,
                symbol=alert.symbol,
                price=str(decision.event.price_at_trigger),
                condition=decision.event.condition_description,
                status=decision.alert.status.value,
                trigger_count=decision.alert.trigger_count,
            )

        if fired:
            await asyncio.gather(*(self._notify(alert, event) for alert, event in fired))

        logger.info(
            "evaluation_cycle_complete",
            checked=summary.checked,
            symbols=len(symbols),
            quoted=len(quotes),
            triggered=summary.triggered,
            expired=summary.expired,
            superseded=summary.superseded,
            duration_ms=round((time.monotonic() - start) * 1000, 1),
        )
        return summary

    # ──────────────────────────────────────────────
    # Per-alert decision (pure)
    # ──────────────────────────────────────────────

    def effective_cooldown_seconds(self, alert: Alert) -> float:
        minutes = alert.cooldown_minutes
        if alert.frequency is AlertFrequency.DAILY_MAX:
            minutes = max(minutes, self._settings.daily_window_minutes)
        return minutes * 60.0

    def decide(
        self, alert: Alert, quote: PriceQuote | None, now: float
    ) -> Decision | None:
        """Apply the firing checks to one alert. Returns None to leave it unchanged."""
        if alert.status is not AlertStatus.ACTIVE:
            return None

        if quote is None:
            return None

        if not condition_holds(
            alert.operator, quote.price, alert.threshold, self._settings.approx_tolerance
        ):
            return None

        if alert.last_triggered_at is not None:
            if now < alert.last_triggered_at + self.effective_cooldown_seconds(alert):
                return None

        if alert.max_triggers is not None and alert.trigger_count >= alert.max_triggers:
            return Decision(
                alert=replace(alert, status=AlertStatus.EXPIRED, updated_at=now),
                event=None,
            )

        trigger_count = alert.trigger_count + 1
        if alert.frequency is AlertFrequency.ONCE:
            status = AlertStatus.TRIGGERED
        elif alert.max_triggers is not None and trigger_count >= alert.max_triggers:
            status = AlertStatus.EXPIRED
        else:
            status = AlertStatus.ACTIVE

        updated = replace(
            alert,
            trigger_count=trigger_count,
            last_triggered_at=now,
            status=status,
            updated_at=now,
        )
        event = TriggerEvent(
            alert_id=alert.id,
            owner_id=alert.owner_id,
            symbol=alert.symbol,
            price_at_trigger=quote.price,
            triggered_at=now,
            condition_description=alert.describe_condition(),
            alert_name=alert.display_name,
            priority=alert.priority,
        )
        return Decision(alert=updated, event=event)

    # ──────────────────────────────────────────────
    # Side effects
    # ──────────────────────────────────────────────

    async def _commit(self, alert: Alert, loaded: Alert) -> bool:
        try:
            return await self._store.save_alert(alert, loaded)
        except AlertStoreError:
            raise
        except Exception as e:
            raise AlertStoreError(f"save_alert failed for {alert.id}: {e}") from e

    async def _notify(self, alert: Alert, event: TriggerEvent) -> list[DispatchOutcome]:
        """Deliver one event. Never raises; the alert state is already committed."""
        try:
            recipient = await self._store.get_recipient(alert.owner_id)
        except Exception as e:
            logger.warning(
                "recipient_lookup_failed",
                alert_id=alert.id,
                owner_id=alert.owner_id,
                error=str(e),
            )
            recipient = None

        if recipient is None:
            recipient = Recipient(owner_id=alert.owner_id)

        return await self._dispatcher.dispatch(
            event, alert.notification_channels, recipient
        )
