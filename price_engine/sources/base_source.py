# price_engine/sources/base_source.py

"""Abstract base class for marketplace quote sources."""

import logging
from abc import ABC, abstractmethod

from price_engine.models.price_entry import RawQuote


class MarketplaceSource(ABC):
    """One marketplace collaborator that can report a product's price.

    Implementations may be slow or unreliable.  Callers treat any
    exception as "no quote available" for this platform only.
    """

    def __init__(self, platform_id: str) -> None:
        self.platform_id = platform_id
        self.logger = logging.getLogger(
            f"price_engine.sources.{platform_id}"
        )

    @abstractmethod
    async def fetch_latest_quote(self, product_id: str) -> RawQuote | None:
        """Return the current quote, or ``None`` when not listed."""
        ...
