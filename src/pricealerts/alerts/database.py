"""SQLite file holding alerts and notification recipients.

WAL journaling lets API reads proceed while the trigger engine writes.
"""

import os
from typing import Self

import aiosqlite

from pricealerts.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS alerts (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    symbol TEXT NOT NULL,
    operator TEXT NOT NULL,
    threshold TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    frequency TEXT NOT NULL DEFAULT 'once',
    cooldown_minutes INTEGER NOT NULL DEFAULT 10,
    max_triggers INTEGER,
    trigger_count INTEGER NOT NULL DEFAULT 0,
    last_triggered_at REAL,
    notification_channels TEXT NOT NULL DEFAULT 'browser',
    name TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    priority TEXT NOT NULL DEFAULT 'medium',
    tags TEXT NOT NULL DEFAULT '',
    notes TEXT NOT NULL DEFAULT '',
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS recipients (
    owner_id TEXT PRIMARY KEY,
    email TEXT,
    phone TEXT,
    webhook_url TEXT
);
"""

_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
)

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_alerts_status
    ON alerts(status);

CREATE INDEX IF NOT EXISTS idx_alerts_owner_created
    ON alerts(owner_id, created_at);
"""


class AlertDatabase:
    """Owns the single aiosqlite connection shared by the alert store.

    The file (and its parent directory) is created on first connect;
    ``":memory:"`` is accepted for tests. A file written by a newer schema
    is refused rather than silently read.

    Usage:
        async with AlertDatabase("data/alerts.db") as database:
            store = SqliteAlertStore(database)
    """

    def __init__(self, db_path: str = "data/alerts.db") -> None:
        self._path = db_path
        self._conn: aiosqlite.Connection | None = None

    @property
    def path(self) -> str:
        return self._path

    @property
    def db(self) -> aiosqlite.Connection:
        """The open connection; RuntimeError until connect() has run."""
        if self._conn is None:
            raise RuntimeError(f"alert database {self._path} is not open")
        return self._conn

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        """Open the file, apply pragmas and bring the schema up to date."""
        if self._conn is not None:
            return
        if self._path != ":memory:":
            parent = os.path.dirname(self._path)
            if parent:
                os.makedirs(parent, exist_ok=True)

        conn = await aiosqlite.connect(self._path)
        conn.row_factory = aiosqlite.Row
        try:
            for pragma in _PRAGMAS:
                await conn.execute(pragma)
            await conn.executescript(_CREATE_TABLES_SQL + _CREATE_INDEXES_SQL)
            version = await self._stamp_version(conn)
        except BaseException:
            await conn.close()
            raise
        self._conn = conn
        logger.info("alert_db_connected", db_path=self._path, schema_version=version)

    async def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        await conn.close()
        logger.info("alert_db_closed", db_path=self._path)

    @staticmethod
    async def _stamp_version(conn: aiosqlite.Connection) -> int:
        """Record SCHEMA_VERSION on a fresh file, or check an existing stamp."""
        async with conn.execute("SELECT MAX(version) FROM schema_version") as cursor:
            (stored,) = await cursor.fetchone()
        if stored is None:
            await conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
            )
            await conn.commit()
            return SCHEMA_VERSION
        if stored > SCHEMA_VERSION:
            raise RuntimeError(
                f"alert database schema v{stored} is newer than supported v{SCHEMA_VERSION}"
            )
        await conn.commit()
        return stored

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
