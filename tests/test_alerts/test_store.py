"""Tests for AlertDatabase and SqliteAlertStore against a real SQLite file."""

from dataclasses import replace
from decimal import Decimal

import pytest
import pytest_asyncio

from conftest import make_alert
from pricealerts.alerts.database import AlertDatabase
from pricealerts.alerts.models import (
    AlertFrequency,
    AlertOperator,
    AlertPriority,
    AlertStatus,
    ChannelKind,
)
from pricealerts.alerts.store import SqliteAlertStore
from pricealerts.exceptions import AlertStoreError
from pricealerts.notifications.models import Recipient


@pytest_asyncio.fixture
async def database(tmp_path):
    db = AlertDatabase(str(tmp_path / "nested" / "alerts.db"))
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
def store(database) -> SqliteAlertStore:
    return SqliteAlertStore(database)


class TestAlertDatabase:
    @pytest.mark.asyncio
    async def test_connect_creates_directory_and_schema(self, database, tmp_path):
        assert (tmp_path / "nested" / "alerts.db").exists()
        cursor = await database.db.execute("SELECT version FROM schema_version")
        assert (await cursor.fetchone())[0] >= 1

    @pytest.mark.asyncio
    async def test_db_access_before_connect_raises(self):
        with pytest.raises(RuntimeError):
            _ = AlertDatabase(":memory:").db

    @pytest.mark.asyncio
    async def test_reopen_keeps_single_version_row(self, database, tmp_path):
        await database.close()
        async with AlertDatabase(str(tmp_path / "nested" / "alerts.db")) as reopened:
            cursor = await reopened.db.execute("SELECT COUNT(*) FROM schema_version")
            assert (await cursor.fetchone())[0] == 1

    @pytest.mark.asyncio
    async def test_newer_schema_refused(self, database, tmp_path):
        await database.db.execute("INSERT INTO schema_version (version) VALUES (99)")
        await database.db.commit()
        await database.close()

        newer = AlertDatabase(str(tmp_path / "nested" / "alerts.db"))
        with pytest.raises(RuntimeError, match="newer"):
            await newer.connect()
        assert not newer.is_connected


class TestSqliteAlertStore:
    @pytest.mark.asyncio
    async def test_round_trip_preserves_typed_fields(self, store):
        alert = make_alert(
            "BTC",
            AlertOperator.EQ,
            "50000.123456789",
            frequency=AlertFrequency.DAILY_MAX,
            max_triggers=5,
            notification_channels=frozenset({ChannelKind.EMAIL, ChannelKind.WEBHOOK}),
            priority=AlertPriority.URGENT,
            tags=("btc", "breakout"),
            name="BTC pin",
        )
        await store.create_alert(alert)

        loaded = await store.get_alert(alert.id)

        assert loaded == alert
        assert loaded.threshold == Decimal("50000.123456789")

    @pytest.mark.asyncio
    async def test_create_rejects_duplicate_id(self, store):
        alert = make_alert()
        await store.create_alert(alert)
        with pytest.raises(AlertStoreError):
            await store.create_alert(alert)

    @pytest.mark.asyncio
    async def test_save_alert_writes_trigger_fields(self, store):
        alert = make_alert(name="keep me")
        await store.create_alert(alert)
        fired = replace(
            alert,
            status=AlertStatus.TRIGGERED,
            trigger_count=1,
            last_triggered_at=1_700_000_000.0,
            updated_at=1_700_000_000.0,
        )

        assert await store.save_alert(fired, alert) is True

        loaded = await store.get_alert(alert.id)
        assert loaded.status is AlertStatus.TRIGGERED
        assert loaded.trigger_count == 1
        assert loaded.last_triggered_at == 1_700_000_000.0
        assert loaded.name == "keep me"

    @pytest.mark.asyncio
    async def test_save_alert_does_not_recreate_deleted_alert(self, store):
        alert = make_alert()
        await store.create_alert(alert)
        await store.delete_alert(alert.id)

        fired = replace(alert, trigger_count=1, last_triggered_at=1.0)
        assert await store.save_alert(fired, alert) is False
        assert await store.get_alert(alert.id) is None

    @pytest.mark.asyncio
    async def test_save_alert_skips_row_edited_since_load(self, store):
        alert = make_alert(threshold="50000")
        await store.create_alert(alert)
        await store.update_alert(alert.id, {"threshold": Decimal("60000")})

        fired = replace(alert, trigger_count=1, last_triggered_at=1.0)
        assert await store.save_alert(fired, alert) is False

        loaded = await store.get_alert(alert.id)
        assert loaded.threshold == Decimal("60000")
        assert loaded.trigger_count == 0

    @pytest.mark.asyncio
    async def test_update_alert_leaves_trigger_bookkeeping(self, store):
        alert = make_alert()
        await store.create_alert(alert)
        await store.save_alert(
            replace(alert, trigger_count=2, last_triggered_at=5.0, updated_at=5.0), alert
        )

        changed = await store.update_alert(
            alert.id,
            {
                "status": AlertStatus.PAUSED,
                "notification_channels": frozenset({ChannelKind.SMS}),
                "tags": ("swing",),
                "updated_at": 6.0,
            },
        )

        assert changed is True
        loaded = await store.get_alert(alert.id)
        assert loaded.status is AlertStatus.PAUSED
        assert loaded.notification_channels == frozenset({ChannelKind.SMS})
        assert loaded.tags == ("swing",)
        assert loaded.trigger_count == 2
        assert loaded.last_triggered_at == 5.0

    @pytest.mark.asyncio
    async def test_update_alert_refuses_engine_columns(self, store):
        alert = make_alert()
        await store.create_alert(alert)
        with pytest.raises(AlertStoreError, match="trigger_count"):
            await store.update_alert(alert.id, {"trigger_count": 0})

    @pytest.mark.asyncio
    async def test_update_missing_alert_returns_false(self, store):
        assert await store.update_alert("nope", {"name": "x"}) is False

    @pytest.mark.asyncio
    async def test_list_active_only_returns_active(self, store):
        active = make_alert("BTC", created_at=1.0)
        paused = make_alert("ETH", status=AlertStatus.PAUSED, created_at=2.0)
        expired = make_alert("SOL", status=AlertStatus.EXPIRED, created_at=3.0)
        for alert in (active, paused, expired):
            await store.create_alert(alert)

        assert [a.id for a in await store.list_active_alerts()] == [active.id]

    @pytest.mark.asyncio
    async def test_list_alerts_filters_and_orders_newest_first(self, store):
        older = make_alert("BTC", created_at=1.0)
        newer = make_alert("BTC", created_at=2.0)
        other_symbol = make_alert("ETH", created_at=3.0)
        other_owner = make_alert("BTC", owner_id="user-2", created_at=4.0)
        for alert in (older, newer, other_symbol, other_owner):
            await store.create_alert(alert)

        listed = await store.list_alerts("user-1", symbol="btc")
        assert [a.id for a in listed] == [newer.id, older.id]

        page = await store.list_alerts("user-1", limit=1, offset=1)
        assert [a.id for a in page] == [newer.id]

    @pytest.mark.asyncio
    async def test_delete_reports_existence(self, store):
        alert = make_alert()
        await store.create_alert(alert)
        assert await store.delete_alert(alert.id) is True
        assert await store.delete_alert(alert.id) is False
        assert await store.get_alert(alert.id) is None

    @pytest.mark.asyncio
    async def test_counts(self, store):
        await store.create_alert(make_alert("BTC", last_triggered_at=100.0))
        await store.create_alert(make_alert("ETH", status=AlertStatus.PAUSED, last_triggered_at=10.0))
        await store.create_alert(make_alert("SOL"))

        assert await store.count_alerts("user-1") == 3
        assert await store.count_alerts("user-1", AlertStatus.ACTIVE) == 2
        assert await store.count_triggered_since("user-1", 50.0) == 1
        assert await store.count_alerts("nobody") == 0

    @pytest.mark.asyncio
    async def test_recipient_round_trip(self, store):
        assert await store.get_recipient("user-1") is None
        recipient = Recipient(owner_id="user-1", email="u@example.com", webhook_url="https://h.test/x")
        await store.save_recipient(recipient)
        assert await store.get_recipient("user-1") == recipient

    @pytest.mark.asyncio
    async def test_closed_database_raises_store_error(self, store, database):
        await database.close()
        with pytest.raises(AlertStoreError):
            await store.list_active_alerts()
