"""Alert store interface and its SQLite implementation.

The trigger engine needs only list_active_alerts/save_alert/get_recipient;
the rest serves the owner-facing AlertService and API. Every write is a
single-row statement followed by a commit, so readers see either the old
or the new record, never a mix.

The engine and the owner each write only their own columns. The engine's
save_alert is conditional on the row still matching what it loaded, so an
owner edit or delete made while a cycle waits on quotes always wins.

CRITICAL: Thresholds are stored as TEXT in SQLite and restored as Decimal.
"""

import sqlite3
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any

from pricealerts.alerts.database import AlertDatabase
from pricealerts.alerts.models import (
    Alert,
    AlertFrequency,
    AlertOperator,
    AlertPriority,
    AlertStatus,
    ChannelKind,
)
from pricealerts.exceptions import AlertStoreError
from pricealerts.logging import get_logger
from pricealerts.notifications.models import Recipient

logger = get_logger(__name__)


class AlertStore(ABC):
    """Key-value-by-id persistence contract for alerts and owner contacts."""

    @abstractmethod
    async def list_active_alerts(self) -> list[Alert]:
        """Return every alert whose status is ACTIVE."""
        ...

    @abstractmethod
    async def create_alert(self, alert: Alert) -> None:
        """Insert a new alert; fails if the id already exists."""
        ...

    @abstractmethod
    async def save_alert(self, alert: Alert, loaded: Alert) -> bool:
        """Persist the trigger engine's changes to an alert it loaded earlier.

        Writes only status, trigger_count, last_triggered_at and updated_at,
        and only while the stored row still has the status, trigger_count,
        operator, threshold and updated_at of ``loaded``. Returns False,
        writing nothing, when the row was changed or deleted in between.
        """
        ...

    @abstractmethod
    async def update_alert(self, alert_id: str, changes: dict[str, Any]) -> bool:
        """Write owner-editable fields of one alert.

        Trigger bookkeeping is never touched. Returns False if the alert
        no longer exists.
        """
        ...

    @abstractmethod
    async def get_alert(self, alert_id: str) -> Alert | None:
        ...

    @abstractmethod
    async def list_alerts(
        self,
        owner_id: str,
        status: AlertStatus | None = None,
        symbol: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Alert]:
        """Return an owner's alerts, newest first."""
        ...

    @abstractmethod
    async def delete_alert(self, alert_id: str) -> bool:
        """Delete an alert. Returns False if it did not exist."""
        ...

    @abstractmethod
    async def count_alerts(
        self, owner_id: str, status: AlertStatus | None = None
    ) -> int:
        ...

    @abstractmethod
    async def count_triggered_since(self, owner_id: str, since: float) -> int:
        """Count an owner's alerts whose last firing is at or after ``since``."""
        ...

    @abstractmethod
    async def get_recipient(self, owner_id: str) -> Recipient | None:
        ...

    @abstractmethod
    async def save_recipient(self, recipient: Recipient) -> None:
        ...


# ──────────────────────────────────────────────
# Row mapping
# ──────────────────────────────────────────────


def _join(values) -> str:  # type: ignore[no-untyped-def]
    return ",".join(sorted(str(getattr(v, "value", v)) for v in values))


def _split(raw: str | None) -> list[str]:
    return [part for part in (raw or "").split(",") if part]


def _alert_to_row(alert: Alert) -> tuple:
    return (
        alert.id,
        alert.owner_id,
        alert.symbol,
        alert.operator.value,
        str(alert.threshold),
        alert.status.value,
        alert.frequency.value,
        alert.cooldown_minutes,
        alert.max_triggers,
        alert.trigger_count,
        alert.last_triggered_at,
        _join(alert.notification_channels),
        alert.name,
        alert.description,
        alert.priority.value,
        ",".join(alert.tags),
        alert.notes,
        alert.created_at,
        alert.updated_at,
    )


def _row_to_alert(row: sqlite3.Row) -> Alert:
    return Alert(
        id=row["id"],
        owner_id=row["owner_id"],
        symbol=row["symbol"],
        operator=AlertOperator(row["operator"]),
        threshold=Decimal(row["threshold"]),
        status=AlertStatus(row["status"]),
        frequency=AlertFrequency(row["frequency"]),
        cooldown_minutes=row["cooldown_minutes"],
        max_triggers=row["max_triggers"],
        trigger_count=row["trigger_count"],
        last_triggered_at=row["last_triggered_at"],
        notification_channels=frozenset(
            ChannelKind(kind) for kind in _split(row["notification_channels"])
        ),
        name=row["name"],
        description=row["description"],
        priority=AlertPriority(row["priority"]),
        tags=tuple(_split(row["tags"])),
        notes=row["notes"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


_ALERT_COLUMNS = (
    "id, owner_id, symbol, operator, threshold, status, frequency, "
    "cooldown_minutes, max_triggers, trigger_count, last_triggered_at, "
    "notification_channels, name, description, priority, tags, notes, "
    "created_at, updated_at"
)

# Columns an owner edit may write; trigger_count and last_triggered_at
# belong to the engine.
_OWNER_COLUMNS = frozenset(
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
        "updated_at",
    }
)


def _encode(column: str, value: Any) -> Any:
    if column == "threshold":
        return str(value)
    if column == "notification_channels":
        return _join(value)
    if column == "tags":
        return ",".join(value)
    return getattr(value, "value", value)


class SqliteAlertStore(AlertStore):
    """aiosqlite-backed alert store.

    All SQL access goes through self._database.db. Any sqlite or
    connection failure is re-raised as AlertStoreError.
    """

    def __init__(self, database: AlertDatabase) -> None:
        self._database = database

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except (sqlite3.Error, RuntimeError, ValueError) as e:
            logger.error("alert_store_failure", operation=operation, error=str(e))
            raise AlertStoreError(f"{operation} failed: {e}") from e

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def create_alert(self, alert: Alert) -> None:
        async with self._guard("create_alert"):
            await self._database.db.execute(
                f"INSERT INTO alerts ({_ALERT_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                _alert_to_row(alert),
            )
            await self._database.db.commit()

    async def save_alert(self, alert: Alert, loaded: Alert) -> bool:
        async with self._guard("save_alert"):
            cursor = await self._database.db.execute(
                "UPDATE alerts SET status = ?, trigger_count = ?, "
                "last_triggered_at = ?, updated_at = ? "
                "WHERE id = ? AND status = ? AND trigger_count = ? "
                "AND operator = ? AND threshold = ? AND updated_at = ?",
                (
                    alert.status.value,
                    alert.trigger_count,
                    alert.last_triggered_at,
                    alert.updated_at,
                    loaded.id,
                    loaded.status.value,
                    loaded.trigger_count,
                    loaded.operator.value,
                    str(loaded.threshold),
                    loaded.updated_at,
                ),
            )
            await self._database.db.commit()
            return cursor.rowcount > 0

    async def update_alert(self, alert_id: str, changes: dict[str, Any]) -> bool:
        columns = sorted(changes)
        illegal = set(columns) - _OWNER_COLUMNS
        if illegal:
            raise AlertStoreError(f"update_alert cannot write {', '.join(sorted(illegal))}")
        if not columns:
            return await self.get_alert(alert_id) is not None

        assignments = ", ".join(f"{column} = ?" for column in columns)
        params = [_encode(column, changes[column]) for column in columns]
        async with self._guard("update_alert"):
            cursor = await self._database.db.execute(
                f"UPDATE alerts SET {assignments} WHERE id = ?", (*params, alert_id)
            )
            await self._database.db.commit()
            return cursor.rowcount > 0

    async def delete_alert(self, alert_id: str) -> bool:
        async with self._guard("delete_alert"):
            cursor = await self._database.db.execute(
                "DELETE FROM alerts WHERE id = ?", (alert_id,)
            )
            await self._database.db.commit()
            return cursor.rowcount > 0

    async def save_recipient(self, recipient: Recipient) -> None:
        async with self._guard("save_recipient"):
            await self._database.db.execute(
                "INSERT OR REPLACE INTO recipients "
                "(owner_id, email, phone, webhook_url) VALUES (?, ?, ?, ?)",
                (
                    recipient.owner_id,
                    recipient.email,
                    recipient.phone,
                    recipient.webhook_url,
                ),
            )
            await self._database.db.commit()

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def list_active_alerts(self) -> list[Alert]:
        async with self._guard("list_active_alerts"):
            cursor = await self._database.db.execute(
                f"SELECT {_ALERT_COLUMNS} FROM alerts WHERE status = ? "
                "ORDER BY created_at, id",
                (AlertStatus.ACTIVE.value,),
            )
            rows = await cursor.fetchall()
            return [_row_to_alert(row) for row in rows]

    async def get_alert(self, alert_id: str) -> Alert | None:
        async with self._guard("get_alert"):
            cursor = await self._database.db.execute(
                f"SELECT {_ALERT_COLUMNS} FROM alerts WHERE id = ?", (alert_id,)
            )
            row = await cursor.fetchone()
            return _row_to_alert(row) if row is not None else None

    async def list_alerts(
        self,
        owner_id: str,
        status: AlertStatus | None = None,
        symbol: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Alert]:
        clauses = ["owner_id = ?"]
        params: list = [owner_id]
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if symbol:
            clauses.append("symbol = ?")
            params.append(symbol.upper())
        params.extend([limit, offset])

        async with self._guard("list_alerts"):
            cursor = await self._database.db.execute(
                f"SELECT {_ALERT_COLUMNS} FROM alerts "
                f"WHERE {' AND '.join(clauses)} "
                "ORDER BY created_at DESC, id LIMIT ? OFFSET ?",
                params,
            )
            rows = await cursor.fetchall()
            return [_row_to_alert(row) for row in rows]

    async def count_alerts(
        self, owner_id: str, status: AlertStatus | None = None
    ) -> int:
        sql = "SELECT COUNT(*) FROM alerts WHERE owner_id = ?"
        params: list = [owner_id]
        if status is not None:
            sql += " AND status = ?"
            params.append(status.value)
        async with self._guard("count_alerts"):
            cursor = await self._database.db.execute(sql, params)
            row = await cursor.fetchone()
            return int(row[0]) if row else 0

    async def count_triggered_since(self, owner_id: str, since: float) -> int:
        async with self._guard("count_triggered_since"):
            cursor = await self._database.db.execute(
                "SELECT COUNT(*) FROM alerts "
                "WHERE owner_id = ? AND last_triggered_at >= ?",
                (owner_id, since),
            )
            row = await cursor.fetchone()
            return int(row[0]) if row else 0

    async def get_recipient(self, owner_id: str) -> Recipient | None:
        async with self._guard("get_recipient"):
            cursor = await self._database.db.execute(
                "SELECT owner_id, email, phone, webhook_url FROM recipients "
                "WHERE owner_id = ?",
                (owner_id,),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return Recipient(
                owner_id=row["owner_id"],
                email=row["email"],
                phone=row["phone"],
                webhook_url=row["webhook_url"],
            )
