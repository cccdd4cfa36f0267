# price_engine/errors.py

"""Exception hierarchy for the price intelligence engine.

Insufficient history is deliberately absent: analysis functions
return ``None`` for "no answer yet" instead of raising.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from price_engine.models.validation import ValidationResult


class PriceEngineError(Exception):
    """Base class for every error raised by price_engine."""


class QuoteRejectedError(PriceEngineError):
    """A quote failed hard validation and was not persisted."""

    def __init__(
        self, product_id: str, platform_id: str, result: "ValidationResult",
    ) -> None:
        codes = ", ".join(e.code for e in result.errors)
        super().__init__(
            f"Quote for {product_id}@{platform_id} rejected: {codes}"
        )
        self.product_id = product_id
        self.platform_id = platform_id
        self.result = result


class CacheUnavailableError(PriceEngineError):
    """The cache store could not be reached."""


class StoreUnavailableError(PriceEngineError):
    """The price-history store failed to read or write."""


class UpstreamUnavailableError(PriceEngineError):
    """A marketplace collaborator failed to answer."""

    def __init__(self, platform_id: str, reason: str) -> None:
        super().__init__(f"{platform_id}: {reason}")
        self.platform_id = platform_id
        self.reason = reason
