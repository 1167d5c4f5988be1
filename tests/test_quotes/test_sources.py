"""Tests for the ccxt exchange source and the CoinGecko source.

The ccxt exchange is an AsyncMock; CoinGecko runs against an
httpx.MockTransport, so no test touches the network.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import ccxt.async_support as ccxt_async
import httpx
import pytest

from pricealerts.config import CoinGeckoSettings, QuoteSettings
from pricealerts.exceptions import QuoteSourceError, RateLimitedError
from pricealerts.quotes.coingecko_source import CoinGeckoQuoteSource, coingecko_id
from pricealerts.quotes.exchange_source import ExchangeQuoteSource


# ---------------------------------------------------------------------------
# Sample ticker data (mimics ccxt fetch_tickers response for spot pairs)
# ---------------------------------------------------------------------------

MOCK_MARKETS = {"BTC/USDT": {}, "ETH/USDT": {}, "DOGE/USDT": {}}

MOCK_TICKERS = {
    "BTC/USDT": {"symbol": "BTC/USDT", "last": 50000.5, "timestamp": 1_700_000_000_000},
    "ETH/USDT": {"symbol": "ETH/USDT", "last": None, "close": 3000.0, "timestamp": None},
    "DOGE/USDT": {"symbol": "DOGE/USDT", "last": 0, "timestamp": 1_700_000_000_000},
}


@pytest.fixture
def mock_exchange() -> AsyncMock:
    exchange = AsyncMock()
    exchange.load_markets = AsyncMock(return_value=MOCK_MARKETS)
    exchange.fetch_tickers = AsyncMock(return_value=MOCK_TICKERS)
    return exchange


@pytest.fixture
def exchange_source(mock_exchange) -> ExchangeQuoteSource:
    return ExchangeQuoteSource(QuoteSettings(), exchange=mock_exchange)


# ---------------------------------------------------------------------------
# ExchangeQuoteSource
# ---------------------------------------------------------------------------


class TestExchangeQuoteSource:
    @pytest.mark.asyncio
    async def test_one_batched_call_for_known_pairs(self, exchange_source, mock_exchange):
        quotes = await exchange_source.fetch_batch({"BTC", "ETH", "DOGE", "NOPE"})

        mock_exchange.fetch_tickers.assert_awaited_once_with(
            ["BTC/USDT", "DOGE/USDT", "ETH/USDT"]
        )
        assert quotes["BTC"].price == Decimal("50000.5")
        assert quotes["BTC"].as_of == 1_700_000_000.0
        assert quotes["BTC"].source == "exchange:binance"

    @pytest.mark.asyncio
    async def test_close_used_when_last_missing(self, exchange_source):
        quotes = await exchange_source.fetch_batch({"ETH"})
        assert quotes["ETH"].price == Decimal("3000.0")

    @pytest.mark.asyncio
    async def test_non_positive_price_dropped(self, exchange_source):
        quotes = await exchange_source.fetch_batch({"DOGE"})
        assert "DOGE" not in quotes

    @pytest.mark.asyncio
    async def test_unknown_symbols_skip_the_call(self, exchange_source, mock_exchange):
        assert await exchange_source.fetch_batch({"NOPE"}) == {}
        mock_exchange.fetch_tickers.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_markets_loaded_once(self, exchange_source, mock_exchange):
        await exchange_source.fetch_batch({"BTC"})
        await exchange_source.fetch_batch({"ETH"})
        assert mock_exchange.load_markets.await_count == 1

    @pytest.mark.asyncio
    async def test_rate_limit_mapped(self, exchange_source, mock_exchange):
        mock_exchange.fetch_tickers.side_effect = ccxt_async.RateLimitExceeded("slow down")
        with pytest.raises(RateLimitedError) as exc_info:
            await exchange_source.fetch_batch({"BTC"})
        assert exc_info.value.source == "exchange:binance"

    @pytest.mark.asyncio
    async def test_network_error_mapped(self, exchange_source, mock_exchange):
        mock_exchange.fetch_tickers.side_effect = ccxt_async.NetworkError("reset")
        with pytest.raises(QuoteSourceError) as exc_info:
            await exchange_source.fetch_batch({"BTC"})
        assert not isinstance(exc_info.value, RateLimitedError)

    @pytest.mark.asyncio
    async def test_close_closes_exchange(self, exchange_source, mock_exchange):
        await exchange_source.close()
        mock_exchange.close.assert_awaited_once()


# ---------------------------------------------------------------------------
# CoinGeckoQuoteSource
# ---------------------------------------------------------------------------


def _coingecko(handler, api_key: str = "") -> CoinGeckoQuoteSource:
    settings = CoinGeckoSettings(base_url="https://coingecko.test/api/v3", api_key=api_key)
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url=settings.base_url
    )
    return CoinGeckoQuoteSource(settings, client=client)


class TestCoinGeckoQuoteSource:
    def test_symbol_mapping(self):
        assert coingecko_id("BTC") == "bitcoin"
        assert coingecko_id("AVAX") == "avalanche-2"
        assert coingecko_id("PEPE") == "pepe"

    @pytest.mark.asyncio
    async def test_single_request_for_batch(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "bitcoin": {"usd": 50123.45, "last_updated_at": 1_700_000_100},
                    "ethereum": {"usd": 3001},
                },
            )

        source = _coingecko(handler, api_key="demo-key")
        quotes = await source.fetch_batch({"BTC", "ETH"})
        await source.close()

        assert len(requests) == 1
        assert requests[0].url.path == "/api/v3/simple/price"
        assert requests[0].url.params["ids"] == "bitcoin,ethereum"
        assert requests[0].url.params["vs_currencies"] == "usd"
        assert requests[0].headers["x-cg-demo-api-key"] == "demo-key"
        assert quotes["BTC"].price == Decimal("50123.45")
        assert quotes["BTC"].as_of == 1_700_000_100.0
        assert quotes["ETH"].source == "coingecko"

    @pytest.mark.asyncio
    async def test_missing_coin_omitted(self):
        source = _coingecko(lambda request: httpx.Response(200, json={"bitcoin": {"usd": 1}}))
        quotes = await source.fetch_batch({"BTC", "XYZ"})
        assert set(quotes) == {"BTC"}

    @pytest.mark.asyncio
    async def test_429_is_rate_limited(self):
        source = _coingecko(lambda request: httpx.Response(429, json={"error": "throttled"}))
        with pytest.raises(RateLimitedError):
            await source.fetch_batch({"BTC"})

    @pytest.mark.asyncio
    async def test_server_error_is_source_error(self):
        source = _coingecko(lambda request: httpx.Response(503))
        with pytest.raises(QuoteSourceError) as exc_info:
            await source.fetch_batch({"BTC"})
        assert not isinstance(exc_info.value, RateLimitedError)

    @pytest.mark.asyncio
    async def test_transport_error_is_source_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        source = _coingecko(handler)
        with pytest.raises(QuoteSourceError):
            await source.fetch_batch({"BTC"})

    @pytest.mark.asyncio
    async def test_malformed_json_is_source_error(self):
        source = _coingecko(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(QuoteSourceError):
            await source.fetch_batch({"BTC"})

    @pytest.mark.asyncio
    async def test_empty_batch_makes_no_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError(f"unexpected request to {request.url}")

        source = _coingecko(handler)
        assert await source.fetch_batch(set()) == {}
