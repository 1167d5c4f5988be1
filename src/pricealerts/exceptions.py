"""Custom exceptions for the price alert core.

Quote-source, persistence and delivery exceptions live here
to avoid circular imports between subpackages.
"""


class PriceAlertError(Exception):
    """Base exception for all price alert errors."""


class QuoteSourceError(PriceAlertError):
    """Raised when an upstream quote source fails (network, 5xx, bad payload)."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class RateLimitedError(QuoteSourceError):
    """Raised when an upstream quote source answers with a rate-limit response."""


class AlertStoreError(PriceAlertError):
    """Raised when alert records cannot be read or written."""


class AlertNotFoundError(PriceAlertError):
    """Raised when an alert does not exist or belongs to another owner."""


class InvalidAlertError(PriceAlertError):
    """Raised when alert fields fail validation."""


class TemplateNotFoundError(PriceAlertError):
    """Raised when an alert template id is unknown."""


class DeliveryError(PriceAlertError):
    """Raised by a notification channel when delivery fails."""
