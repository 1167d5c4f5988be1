"""Primary quote source: exchange tickers via ccxt async.

Wraps a ccxt.async_support exchange, maps bare symbols (``BTC``) to spot
pairs against the configured quote currency (``BTC/USDT``) and issues one
``fetch_tickers`` call per batch.
"""

import time
from decimal import Decimal, InvalidOperation

import ccxt.async_support as ccxt_async

from pricealerts.config import QuoteSettings
from pricealerts.exceptions import QuoteSourceError, RateLimitedError
from pricealerts.logging import get_logger
from pricealerts.quotes.models import PriceQuote
from pricealerts.quotes.source import QuoteSource

logger = get_logger(__name__)


def _to_decimal(value: object) -> Decimal | None:
    if value is None:
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


class ExchangeQuoteSource(QuoteSource):
    """Exchange ticker source using ccxt.

    Args:
        settings: Quote settings (exchange id and quote currency).
        exchange: Optional pre-built ccxt exchange, used by tests.
    """

    def __init__(
        self,
        settings: QuoteSettings,
        exchange: ccxt_async.Exchange | None = None,
    ) -> None:
        self._quote_currency = settings.quote_currency.upper()
        if exchange is None:
            exchange_cls = getattr(ccxt_async, settings.exchange_id)
            exchange = exchange_cls({"enableRateLimit": False})
        self._exchange = exchange
        self.name = f"exchange:{settings.exchange_id}"
        self._markets: dict | None = None

    def _pair(self, symbol: str) -> str:
        return f"{symbol}/{self._quote_currency}"

    async def _load_markets(self) -> dict:
        if self._markets is None:
            self._markets = await self._exchange.load_markets()
        return self._markets

    async def fetch_batch(self, symbols: set[str]) -> dict[str, PriceQuote]:
        """Fetch last-trade prices for all known symbols in one request."""
        try:
            markets = await self._load_markets()
            pairs = {
                self._pair(symbol): symbol
                for symbol in symbols
                if self._pair(symbol) in markets
            }
            if not pairs:
                return {}
            tickers = await self._exchange.fetch_tickers(sorted(pairs))
        except (ccxt_async.RateLimitExceeded, ccxt_async.DDoSProtection) as e:
            raise RateLimitedError(self.name, str(e)) from e
        except ccxt_async.BaseError as e:
            raise QuoteSourceError(self.name, str(e)) from e

        now = time.time()
        quotes: dict[str, PriceQuote] = {}
        for pair, ticker in tickers.items():
            symbol = pairs.get(pair)
            if symbol is None:
                continue
            price = _to_decimal(ticker.get("last"))
            if price is None:
                price = _to_decimal(ticker.get("close"))
            if price is None or price <= 0:
                logger.debug("exchange_ticker_without_price", symbol=symbol)
                continue
            timestamp_ms = ticker.get("timestamp")
            as_of = timestamp_ms / 1000 if timestamp_ms else now
            quotes[symbol] = PriceQuote(
                symbol=symbol, price=price, as_of=as_of, source=self.name
            )

        logger.debug(
            "exchange_batch_fetched",
            requested=len(symbols),
            resolved=len(quotes),
        )
        return quotes

    async def close(self) -> None:
        """Clean up ccxt async resources. Must be called to avoid session leaks."""
        await self._exchange.close()
