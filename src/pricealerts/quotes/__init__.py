"""Quote acquisition layer -- cached prices with primary/secondary source fallback."""

from pricealerts.quotes.cache import QuoteCache
from pricealerts.quotes.coingecko_source import CoinGeckoQuoteSource
from pricealerts.quotes.exchange_source import ExchangeQuoteSource
from pricealerts.quotes.models import CacheEntry, PriceQuote
from pricealerts.quotes.source import QuoteSource

__all__ = [
    "CacheEntry",
    "CoinGeckoQuoteSource",
    "ExchangeQuoteSource",
    "PriceQuote",
    "QuoteCache",
    "QuoteSource",
]
