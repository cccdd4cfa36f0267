# price_engine/sources/fixture_source.py

"""Canned quote source for demos and tests.

Only used when fixture mode is requested explicitly; the engine never
falls back to fixture data when a real source fails.
"""

import json
from pathlib import Path
from typing import Any

from price_engine.models.price_entry import QuoteSource, RawQuote
from price_engine.sources.base_source import MarketplaceSource


class FixtureQuoteSource(MarketplaceSource):
    """Serve quotes from a ``{product_id: quote_dict}`` mapping."""

    def __init__(
        self, platform_id: str, quotes: dict[str, dict[str, Any]],
    ) -> None:
        super().__init__(platform_id)
        self._quotes = dict(quotes)

    @classmethod
    def from_file(cls, path: Path) -> list["FixtureQuoteSource"]:
        """Load ``{platform_id: {product_id: quote}}`` from a JSON file."""
        with open(path, encoding="utf-8") as f:
            data: dict[str, dict[str, dict[str, Any]]] = json.load(f)
        return [cls(platform, quotes) for platform, quotes in data.items()]

    async def fetch_latest_quote(self, product_id: str) -> RawQuote | None:
        raw = self._quotes.get(product_id)
        if raw is None:
            return None
        return RawQuote.from_dict({
            "product_id": product_id,
            "platform_id": self.platform_id,
            "source": QuoteSource.MANUAL.value,
            **raw,
        })
