"""Shared test fixtures for the price alert service."""

from decimal import Decimal

import pytest

from pricealerts.alerts.models import Alert, AlertOperator
from pricealerts.config import AlertSettings, AppSettings, NotificationSettings, QuoteSettings
from pricealerts.quotes.models import PriceQuote


class FakeClock:
    """Manually advanced wall clock (Unix seconds)."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def quote_settings() -> QuoteSettings:
    """Quote settings with pacing disabled so tests only see backoff sleeps."""
    return QuoteSettings(
        ttl_seconds=300.0,
        stale_seconds=600.0,
        min_call_interval=0.0,
        rate_limit_retries=3,
        retry_base_delay=5.0,
        primary_timeout=1.0,
        secondary_timeout=1.0,
    )


@pytest.fixture
def alert_settings() -> AlertSettings:
    return AlertSettings(db_path=":memory:")


@pytest.fixture
def notification_settings() -> NotificationSettings:
    return NotificationSettings(channel_timeout=0.5)


@pytest.fixture
def mock_settings(quote_settings, alert_settings, notification_settings) -> AppSettings:
    """Return AppSettings with test defaults (in-memory db, no SMTP/Twilio)."""
    return AppSettings(
        log_level="DEBUG",
        quotes=quote_settings,
        alerts=alert_settings,
        notifications=notification_settings,
    )


def make_quote(symbol: str, price: str, source: str = "primary", as_of: float = 0.0) -> PriceQuote:
    return PriceQuote(symbol=symbol, price=Decimal(price), as_of=as_of, source=source)


def make_alert(
    symbol: str = "BTC",
    operator: AlertOperator = AlertOperator.GT,
    threshold: str = "50000",
    **overrides,
) -> Alert:
    fields = {"owner_id": "user-1", "created_at": 1_600_000_000.0, "updated_at": 1_600_000_000.0}
    fields.update(overrides)
    return Alert(symbol=symbol, operator=operator, threshold=Decimal(threshold), **fields)
