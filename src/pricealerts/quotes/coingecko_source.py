"""Secondary quote source: CoinGecko simple-price API via httpx.

One GET per batch against /simple/price. Symbols are mapped to CoinGecko
coin ids through a static table; unknown symbols are tried as their
lowercase name.
"""

import time
from decimal import Decimal, InvalidOperation

import httpx

from pricealerts.config import CoinGeckoSettings
from pricealerts.exceptions import QuoteSourceError, RateLimitedError
from pricealerts.logging import get_logger
from pricealerts.quotes.models import PriceQuote
from pricealerts.quotes.source import QuoteSource

logger = get_logger(__name__)

SYMBOL_TO_COINGECKO: dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "BNB": "binancecoin",
    "USDT": "tether",
    "ADA": "cardano",
    "SOL": "solana",
    "XRP": "ripple",
    "DOGE": "dogecoin",
    "DOT": "polkadot",
    "AVAX": "avalanche-2",
    "LINK": "chainlink",
    "UNI": "uniswap",
    "LTC": "litecoin",
    "MATIC": "matic-network",
    "ATOM": "cosmos",
}


def coingecko_id(symbol: str) -> str:
    return SYMBOL_TO_COINGECKO.get(symbol, symbol.lower())


class CoinGeckoQuoteSource(QuoteSource):
    """CoinGecko USD price source.

    Args:
        settings: Base URL and optional demo API key.
        client: Optional shared httpx client (tests pass one with a MockTransport).
    """

    name = "coingecko"

    def __init__(
        self,
        settings: CoinGeckoSettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Accept": "application/json", "User-Agent": "PriceAlertCore/1.0"}
        api_key = settings.api_key.get_secret_value()
        if api_key:
            headers["x-cg-demo-api-key"] = api_key
        self._client = client or httpx.AsyncClient(base_url=settings.base_url)
        self._headers = headers

    async def fetch_batch(self, symbols: set[str]) -> dict[str, PriceQuote]:
        if not symbols:
            return {}

        id_to_symbol = {coingecko_id(symbol): symbol for symbol in symbols}
        params = {
            "ids": ",".join(sorted(id_to_symbol)),
            "vs_currencies": "usd",
            "include_last_updated_at": "true",
        }

        try:
            response = await self._client.get(
                "/simple/price", params=params, headers=self._headers
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429:
                raise RateLimitedError(self.name, "HTTP 429") from e
            raise QuoteSourceError(
                self.name, f"HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise QuoteSourceError(self.name, f"request error: {e}") from e
        except ValueError as e:
            raise QuoteSourceError(self.name, "malformed JSON payload") from e

        if not isinstance(payload, dict):
            raise QuoteSourceError(self.name, "unexpected payload shape")

        now = time.time()
        quotes: dict[str, PriceQuote] = {}
        for coin_id, data in payload.items():
            symbol = id_to_symbol.get(coin_id)
            if symbol is None or not isinstance(data, dict):
                continue
            raw_price = data.get("usd")
            if raw_price is None:
                continue
            try:
                price = Decimal(str(raw_price))
            except InvalidOperation:
                logger.warning("coingecko_invalid_price", symbol=symbol, raw=raw_price)
                continue
            if price <= 0:
                continue
            quotes[symbol] = PriceQuote(
                symbol=symbol,
                price=price,
                as_of=float(data.get("last_updated_at") or now),
                source=self.name,
            )

        logger.debug(
            "coingecko_batch_fetched",
            requested=len(symbols),
            resolved=len(quotes),
        )
        return quotes

    async def close(self) -> None:
        await self._client.aclose()
