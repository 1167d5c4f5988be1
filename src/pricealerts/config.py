"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class QuoteSettings(BaseSettings):
    """Quote cache and upstream source parameters."""

    model_config = SettingsConfigDict(env_prefix="QUOTES_")

    quote_currency: str = "USDT"
    exchange_id: str = "binance"
    ttl_seconds: float = 300.0  # fresh window
    stale_seconds: float = 600.0  # degraded window, measured from fetch time
    min_call_interval: float = 2.0  # seconds between primary calls
    rate_limit_retries: int = 3
    retry_base_delay: float = 5.0
    primary_timeout: float = 10.0
    secondary_timeout: float = 15.0

    @model_validator(mode="after")
    def _stale_covers_ttl(self) -> "QuoteSettings":
        if self.stale_seconds < self.ttl_seconds:
            raise ValueError("stale_seconds must be >= ttl_seconds")
        return self


class CoinGeckoSettings(BaseSettings):
    """CoinGecko fallback source settings."""

    model_config = SettingsConfigDict(env_prefix="COINGECKO_")

    base_url: str = "https://api.coingecko.com/api/v3"
    api_key: SecretStr = SecretStr("")


class AlertSettings(BaseSettings):
    """Alert persistence and trigger policy.

    The approximate-equality tolerance and default cooldown are tunable
    defaults, not invariants. All fields configurable via ALERTS_ prefix.
    """

    model_config = SettingsConfigDict(env_prefix="ALERTS_")

    db_path: str = "data/alerts.db"
    evaluation_interval: float = 60.0  # seconds between evaluation cycles
    approx_tolerance: Decimal = Decimal("0.001")  # 0.1% band for EQ
    default_cooldown_minutes: int = 10
    daily_window_minutes: int = 1440  # minimum spacing for daily_max alerts


class NotificationSettings(BaseSettings):
    """Notification channel credentials and delivery timeout."""

    model_config = SettingsConfigDict(env_prefix="NOTIFY_")

    channel_timeout: float = 10.0

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: SecretStr = SecretStr("")
    smtp_from: str = "alerts@localhost"
    smtp_starttls: bool = True

    twilio_account_sid: str = ""
    twilio_auth_token: SecretStr = SecretStr("")
    twilio_from_number: str = ""


class ApiSettings(BaseSettings):
    """HTTP API server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8080


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    quotes: QuoteSettings = QuoteSettings()
    coingecko: CoinGeckoSettings = CoinGeckoSettings()
    alerts: AlertSettings = AlertSettings()
    notifications: NotificationSettings = NotificationSettings()
    api: ApiSettings = ApiSettings()
