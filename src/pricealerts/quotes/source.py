"""Abstract quote source interface.

Defines the contract for every upstream price provider. The quote cache
depends only on this interface and selects sources by priority order
(primary first, then secondary), keeping provider details isolated in
the concrete implementations.
"""

from abc import ABC, abstractmethod

from pricealerts.quotes.models import PriceQuote


class QuoteSource(ABC):
    """Abstract base class for batched price providers."""

    name: str = "unknown"

    @abstractmethod
    async def fetch_batch(self, symbols: set[str]) -> dict[str, PriceQuote]:
        """Fetch quotes for all symbols in a single upstream request.

        Symbols the provider does not know are omitted from the result.

        Raises:
            RateLimitedError: The provider answered with a rate-limit response.
            QuoteSourceError: Any other upstream failure.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release network resources held by the source."""
        ...
