"""Quote cache with two-tier TTL and primary/secondary source fallback.

Serves fresh cached quotes directly and refreshes the rest with a single
batched call per source:

  1. Fresh entries (now < ttl_expires_at) are served from memory.
  2. Everything else goes to the primary source in one batch, paced by a
     minimum inter-call interval. Rate-limit responses are retried with
     exponential backoff up to a fixed budget; any other failure or a
     timeout moves straight on.
  3. Whatever the primary did not resolve goes to the secondary source in
     one batch.
  4. Symbols neither source resolved are served from an expired entry if
     it is still inside its stale window, otherwise omitted.

Upstream errors never leave this module. A missing symbol in the result
map is the only signal callers get.
"""

import asyncio
import time
from collections.abc import Callable, Iterable

from pricealerts.config import QuoteSettings
from pricealerts.exceptions import RateLimitedError
from pricealerts.logging import get_logger
from pricealerts.quotes.models import CacheEntry, PriceQuote
from pricealerts.quotes.source import QuoteSource

logger = get_logger(__name__)


def normalize_symbol(symbol: str) -> str:
    return symbol.strip().upper()


class QuoteCache:
    """In-memory quote cache shared by the trigger engine and API callers.

    The refresh path is single-flight: concurrent callers that need a
    refresh queue on one asyncio.Lock and re-check freshness once they get
    it, so a burst of callers produces at most one primary/secondary call
    pair. Entries are immutable and replaced by a single dict assignment,
    so readers never observe a half-written entry.

    Args:
        primary: Preferred source, subject to pacing and rate-limit backoff.
        secondary: Fallback source, called at most once per refresh.
        settings: TTL, stale window, pacing, retry and timeout parameters.
        clock: Wall-clock function returning Unix seconds (injectable for tests).
    """

    def __init__(
        self,
        primary: QuoteSource,
        secondary: QuoteSource,
        settings: QuoteSettings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._primary = primary
        self._secondary = secondary
        self._settings = settings
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._refresh_lock = asyncio.Lock()
        self._last_primary_call: float | None = None
        self._stats = {
            "hits": 0,
            "refreshes": 0,
            "primary_failures": 0,
            "secondary_failures": 0,
            "rate_limited": 0,
            "stale_served": 0,
            "misses": 0,
            "evictions": 0,
        }

    # ──────────────────────────────────────────────
    # Public methods
    # ──────────────────────────────────────────────

    async def get_quotes(self, symbols: Iterable[str]) -> dict[str, PriceQuote]:
        """Return the best available quote for each symbol.

        Never raises for an individual symbol: unresolvable symbols are
        simply absent from the returned map.
        """
        requested = {normalize_symbol(s) for s in symbols if s and s.strip()}
        if not requested:
            return {}

        result: dict[str, PriceQuote] = {}
        needs_refresh = self._collect_fresh(requested, self._clock(), result)

        if needs_refresh:
            async with self._refresh_lock:
                # Another caller may have refreshed while we waited.
                needs_refresh = self._collect_fresh(
                    needs_refresh, self._clock(), result
                )
                if needs_refresh:
                    result.update(await self._refresh(needs_refresh))

        return result

    async def get_quote(self, symbol: str) -> PriceQuote | None:
        """Convenience wrapper returning one quote or None."""
        quotes = await self.get_quotes([symbol])
        return quotes.get(normalize_symbol(symbol))

    def get_entry(self, symbol: str) -> CacheEntry | None:
        """Return the raw cache entry for a symbol, if any."""
        return self._entries.get(normalize_symbol(symbol))

    def evict_expired(self, now: float | None = None) -> int:
        """Drop entries whose stale window has passed. Returns the count removed."""
        now = self._clock() if now is None else now
        expired = [
            symbol
            for symbol, entry in self._entries.items()
            if not entry.is_servable(now)
        ]
        for symbol in expired:
            del self._entries[symbol]
        if expired:
            self._stats["evictions"] += len(expired)
            logger.debug("quote_cache_evicted", count=len(expired))
        return len(expired)

    def invalidate(self, symbol: str) -> None:
        """Forget the cached entry for a symbol."""
        self._entries.pop(normalize_symbol(symbol), None)

    @property
    def stats(self) -> dict[str, int]:
        return dict(self._stats)

    def __len__(self) -> int:
        return len(self._entries)

    async def close(self) -> None:
        """Close both upstream sources."""
        for source in (self._primary, self._secondary):
            try:
                await source.close()
            except Exception as e:
                logger.warning("quote_source_close_failed", source=source.name, error=str(e))

    # ──────────────────────────────────────────────
    # Refresh path
    # ──────────────────────────────────────────────

    def _collect_fresh(
        self, symbols: set[str], now: float, result: dict[str, PriceQuote]
    ) -> set[str]:
        """Copy fresh entries into result; return the symbols that need refresh."""
        stale: set[str] = set()
        for symbol in symbols:
            entry = self._entries.get(symbol)
            if entry is not None and entry.is_fresh(now):
                result[symbol] = entry.quote
                self._stats["hits"] += 1
            else:
                stale.add(symbol)
        return stale

    async def _refresh(self, symbols: set[str]) -> dict[str, PriceQuote]:
        """Resolve symbols through primary, secondary, then stale entries."""
        self._stats["refreshes"] += 1
        self.evict_expired()

        fetched = await self._fetch_primary(symbols)

        missing = symbols - fetched.keys()
        if missing:
            fetched.update(await self._fetch_secondary(missing))

        fetched_at = self._clock()
        for symbol, quote in fetched.items():
            self._entries[symbol] = CacheEntry.create(
                quote,
                fetched_at=fetched_at,
                ttl=self._settings.ttl_seconds,
                stale=self._settings.stale_seconds,
            )

        result = {symbol: fetched[symbol] for symbol in symbols if symbol in fetched}

        now = self._clock()
        for symbol in symbols - fetched.keys():
            entry = self._entries.get(symbol)
            if entry is not None and entry.is_servable(now):
                result[symbol] = entry.quote
                self._stats["stale_served"] += 1
                logger.warning(
                    "stale_quote_served",
                    symbol=symbol,
                    age_seconds=round(now - entry.fetched_at, 1),
                    source=entry.quote.source,
                )
            else:
                self._stats["misses"] += 1
                logger.info("quote_unresolved", symbol=symbol)

        return result

    async def _pace(self) -> None:
        """Wait until min_call_interval has elapsed since the last primary call."""
        if self._last_primary_call is not None:
            elapsed = self._clock() - self._last_primary_call
            wait = self._settings.min_call_interval - elapsed
            if wait > 0:
                logger.debug("primary_call_paced", wait_seconds=round(wait, 3))
                await asyncio.sleep(wait)
        self._last_primary_call = self._clock()

    async def _fetch_primary(self, symbols: set[str]) -> dict[str, PriceQuote]:
        """Call the primary source with pacing and bounded rate-limit backoff.

        Returns an empty dict when the primary is unavailable, timed out, or
        still rate limited after the retry budget.
        """
        retries = self._settings.rate_limit_retries
        base_delay = self._settings.retry_base_delay

        for attempt in range(retries + 1):
            await self._pace()
            try:
                return dict(
                    await asyncio.wait_for(
                        self._primary.fetch_batch(set(symbols)),
                        timeout=self._settings.primary_timeout,
                    )
                )
            except RateLimitedError:
                self._stats["rate_limited"] += 1
                if attempt >= retries:
                    logger.warning(
                        "primary_rate_limit_budget_exhausted",
                        source=self._primary.name,
                        attempts=attempt + 1,
                    )
                    break
                delay = base_delay * (2**attempt)
                logger.warning(
                    "quote_rate_limited",
                    source=self._primary.name,
                    attempt=attempt + 1,
                    max_retries=retries,
                    delay=delay,
                )
                await asyncio.sleep(delay)
            except Exception as e:
                logger.warning(
                    "primary_source_failed",
                    source=self._primary.name,
                    error=str(e) or type(e).__name__,
                    symbols=len(symbols),
                )
                break

        self._stats["primary_failures"] += 1
        return {}

    async def _fetch_secondary(self, symbols: set[str]) -> dict[str, PriceQuote]:
        """Call the secondary source once; any failure yields an empty dict."""
        try:
            return dict(
                await asyncio.wait_for(
                    self._secondary.fetch_batch(set(symbols)),
                    timeout=self._settings.secondary_timeout,
                )
            )
        except Exception as e:
            self._stats["secondary_failures"] += 1
            logger.warning(
                "secondary_source_failed",
                source=self._secondary.name,
                error=str(e) or type(e).__name__,
                symbols=len(symbols),
            )
            return {}
