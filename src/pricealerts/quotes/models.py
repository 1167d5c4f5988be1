"""Quote and cache-entry models.

CRITICAL: All prices use Decimal. Never use float for prices or thresholds.
"""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class PriceQuote:
    """A single price observation for a symbol, as produced by a source."""

    symbol: str
    price: Decimal
    as_of: float  # Unix seconds reported by the source
    source: str


@dataclass(frozen=True)
class CacheEntry:
    """A cached quote with its fresh and stale horizons.

    Entries are replaced whole, never mutated: ttl_expires_at is always
    fetched_at + ttl and stale_expires_at is fetched_at + stale window.
    """

    quote: PriceQuote
    fetched_at: float
    ttl_expires_at: float
    stale_expires_at: float

    @classmethod
    def create(
        cls, quote: PriceQuote, fetched_at: float, ttl: float, stale: float
    ) -> "CacheEntry":
        return cls(
            quote=quote,
            fetched_at=fetched_at,
            ttl_expires_at=fetched_at + ttl,
            stale_expires_at=fetched_at + stale,
        )

    def is_fresh(self, now: float) -> bool:
        return now < self.ttl_expires_at

    def is_servable(self, now: float) -> bool:
        """Whether the entry may still be returned as a degraded answer."""
        return now < self.stale_expires_at
