"""Tests for AlertService using the SQLite store on an in-memory database."""

from dataclasses import replace
from decimal import Decimal

import pytest
import pytest_asyncio

from pricealerts.alerts.database import AlertDatabase
from pricealerts.alerts.models import (
    AlertFrequency,
    AlertOperator,
    AlertPriority,
    AlertStatus,
    ChannelKind,
)
from pricealerts.alerts.service import AlertService
from pricealerts.alerts.store import SqliteAlertStore
from pricealerts.exceptions import (
    AlertNotFoundError,
    InvalidAlertError,
    TemplateNotFoundError,
)


@pytest_asyncio.fixture
async def store():
    database = AlertDatabase(":memory:")
    await database.connect()
    yield SqliteAlertStore(database)
    await database.close()


@pytest.fixture
def service(store, alert_settings, clock) -> AlertService:
    return AlertService(store, alert_settings, clock=clock)


class TestCreate:
    @pytest.mark.asyncio
    async def test_defaults_applied(self, service, alert_settings):
        alert = await service.create_alert("user-1", " btc ", "GT", "50000")

        assert alert.symbol == "BTC"
        assert alert.operator is AlertOperator.GT
        assert alert.threshold == Decimal("50000")
        assert alert.status is AlertStatus.ACTIVE
        assert alert.frequency is AlertFrequency.ONCE
        assert alert.cooldown_minutes == alert_settings.default_cooldown_minutes
        assert alert.notification_channels == frozenset({ChannelKind.BROWSER})
        assert alert.trigger_count == 0

    @pytest.mark.asyncio
    async def test_options_are_coerced(self, service):
        alert = await service.create_alert(
            "user-1",
            "ETH",
            AlertOperator.LT,
            Decimal("3000"),
            frequency="recurring",
            cooldown_minutes=0,
            max_triggers=3,
            notification_channels=["email", "sms"],
            priority="high",
            tags=["eth", " "],
        )
        assert alert.frequency is AlertFrequency.RECURRING
        assert alert.notification_channels == frozenset({ChannelKind.EMAIL, ChannelKind.SMS})
        assert alert.priority is AlertPriority.HIGH
        assert alert.tags == ("eth",)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "threshold, options",
        [
            ("0", {}),
            ("-5", {}),
            ("NaN", {}),
            ("abc", {}),
            ("100", {"cooldown_minutes": -1}),
            ("100", {"max_triggers": 0}),
            ("100", {"notification_channels": []}),
            ("100", {"notification_channels": ["pigeon"]}),
            ("100", {"trigger_count": 4}),
        ],
    )
    async def test_invalid_input_rejected(self, service, threshold, options):
        with pytest.raises(InvalidAlertError):
            await service.create_alert("user-1", "BTC", "GT", threshold, **options)

    @pytest.mark.asyncio
    async def test_invalid_symbol_rejected(self, service):
        with pytest.raises(InvalidAlertError):
            await service.create_alert("user-1", "BTC/USDT", "GT", "1")


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_fields_and_timestamp(self, service, clock):
        alert = await service.create_alert("user-1", "BTC", "GT", "50000")
        clock.advance(60)

        updated = await service.update_alert(
            "user-1", alert.id, {"threshold": "52000", "name": "Breakout"}
        )

        assert updated.threshold == Decimal("52000")
        assert updated.name == "Breakout"
        assert updated.updated_at == clock()
        assert (await service.get_alert("user-1", alert.id)).threshold == Decimal("52000")

    @pytest.mark.asyncio
    async def test_trigger_bookkeeping_not_updatable(self, service):
        alert = await service.create_alert("user-1", "BTC", "GT", "50000")
        with pytest.raises(InvalidAlertError):
            await service.update_alert("user-1", alert.id, {"trigger_count": 0})

    @pytest.mark.asyncio
    async def test_owner_cannot_set_triggered(self, service):
        alert = await service.create_alert("user-1", "BTC", "GT", "50000")
        with pytest.raises(InvalidAlertError):
            await service.update_alert("user-1", alert.id, {"status": "triggered"})

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, service):
        alert = await service.create_alert("user-1", "BTC", "GT", "50000")
        assert (await service.pause_alert("user-1", alert.id)).status is AlertStatus.PAUSED
        assert (await service.resume_alert("user-1", alert.id)).status is AlertStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_foreign_alert_is_not_found(self, service):
        alert = await service.create_alert("user-1", "BTC", "GT", "50000")
        with pytest.raises(AlertNotFoundError):
            await service.get_alert("user-2", alert.id)
        with pytest.raises(AlertNotFoundError):
            await service.delete_alert("user-2", alert.id)


    @pytest.mark.asyncio
    async def test_update_keeps_firing_recorded_after_read(self, service, store, clock):
        alert = await service.create_alert(
            "user-1", "BTC", "GT", "50000", frequency="recurring"
        )
        write_owner_fields = store.update_alert

        async def fire_then_write(alert_id, changes):
            await store.save_alert(
                replace(alert, trigger_count=1, last_triggered_at=clock(), updated_at=clock()),
                alert,
            )
            return await write_owner_fields(alert_id, changes)

        store.update_alert = fire_then_write
        clock.advance(30)

        updated = await service.update_alert("user-1", alert.id, {"name": "renamed"})

        assert updated.name == "renamed"
        assert updated.trigger_count == 1
        assert updated.last_triggered_at == clock()

    @pytest.mark.asyncio
    async def test_update_of_alert_deleted_after_read(self, service, store):
        alert = await service.create_alert("user-1", "BTC", "GT", "50000")
        write_owner_fields = store.update_alert

        async def delete_then_write(alert_id, changes):
            await store.delete_alert(alert_id)
            return await write_owner_fields(alert_id, changes)

        store.update_alert = delete_then_write

        with pytest.raises(AlertNotFoundError):
            await service.update_alert("user-1", alert.id, {"name": "renamed"})
        assert await store.get_alert(alert.id) is None


class TestBulk:
    @pytest.mark.asyncio
    async def test_bulk_delete_counts_failures(self, service):
        first = await service.create_alert("user-1", "BTC", "GT", "1")
        second = await service.create_alert("user-1", "ETH", "GT", "1")

        result = await service.bulk_delete("user-1", [first.id, second.id, "missing"])

        assert result == {"success": 2, "failed": 1}
        assert await service.list_alerts("user-1") == []

    @pytest.mark.asyncio
    async def test_bulk_update_skips_failures(self, service):
        first = await service.create_alert("user-1", "BTC", "GT", "1")

        updated = await service.bulk_update(
            "user-1", [first.id, "missing"], {"status": "paused"}
        )

        assert [a.id for a in updated] == [first.id]
        assert updated[0].status is AlertStatus.PAUSED


class TestTemplatesAndStats:
    def test_templates_listed(self, service):
        ids = {t.id for t in service.list_templates()}
        assert ids == {"price_breakout", "price_drop"}

    @pytest.mark.asyncio
    async def test_create_from_template(self, service):
        alerts = await service.create_from_template(
            "user-1", "price_drop", {"btc": "45000", "ETH": Decimal("2500")}
        )

        assert {a.symbol for a in alerts} == {"BTC", "ETH"}
        for alert in alerts:
            assert alert.operator is AlertOperator.LT
            assert alert.cooldown_minutes == 30
            assert alert.priority is AlertPriority.HIGH
            assert alert.notification_channels == frozenset(
                {ChannelKind.BROWSER, ChannelKind.EMAIL}
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "thresholds",
        [
            {"BTC": "45000", "BTC/USDT": "1"},
            {"BTC": "45000", "ETH": "-5"},
        ],
    )
    async def test_invalid_entry_creates_nothing(self, service, thresholds):
        with pytest.raises(InvalidAlertError):
            await service.create_from_template("user-1", "price_drop", thresholds)
        assert await service.list_alerts("user-1") == []

    @pytest.mark.asyncio
    async def test_unknown_template(self, service):
        with pytest.raises(TemplateNotFoundError):
            await service.create_from_template("user-1", "moonshot", {"BTC": "1"})

    @pytest.mark.asyncio
    async def test_stats(self, service, store, clock):
        fired = await service.create_alert("user-1", "BTC", "GT", "1")
        await service.create_alert("user-1", "ETH", "GT", "1")
        paused = await service.create_alert("user-1", "SOL", "GT", "1")
        await service.pause_alert("user-1", paused.id)

        await store.save_alert(
            replace(fired, trigger_count=1, last_triggered_at=clock() - 3600), fired
        )

        stats = await service.get_stats("user-1")

        assert stats.total_alerts == 3
        assert stats.active_alerts == 2
        assert stats.triggered_today == 1
        assert stats.triggered_this_month == 1
        assert stats.success_rate == 50.0

    @pytest.mark.asyncio
    async def test_stats_without_active_alerts(self, service):
        stats = await service.get_stats("nobody")
        assert stats.success_rate == 0.0


class TestRecipients:
    @pytest.mark.asyncio
    async def test_set_and_get_recipient(self, service):
        await service.set_recipient("user-1", email="u@example.com", webhook_url="https://h.test/a")
        recipient = await service.get_recipient("user-1")
        assert recipient.email == "u@example.com"
        assert recipient.phone is None

    @pytest.mark.asyncio
    async def test_invalid_webhook_rejected(self, service):
        with pytest.raises(InvalidAlertError):
            await service.set_recipient("user-1", webhook_url="ftp://nope")

    @pytest.mark.asyncio
    async def test_unknown_owner_gets_bare_recipient(self, service):
        recipient = await service.get_recipient("nobody")
        assert recipient.owner_id == "nobody"
        assert recipient.email is None
