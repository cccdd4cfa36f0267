# price_engine/storage/price_cache.py

"""Typed, fail-open cache-aside layer for price analysis artifacts.

Any store failure is logged and treated as a miss (reads) or a no-op
(writes), so callers always fall through to direct computation.

Concurrent misses on the same key may both recompute and both write;
the last write wins.  Recomputation is idempotent, so no per-key lock
is taken.
"""

import asyncio
import logging
import urllib.parse
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from price_engine.config.settings import Settings
from price_engine.models.analysis import (
    HistoricalLow,
    PriceStatistics,
    PriceTrend,
)
from price_engine.models.offer import ProductOffer
from price_engine.models.price_entry import PriceEntry
from price_engine.storage.cache_store import CacheStore

logger = logging.getLogger("price_engine.cache")

T = TypeVar("T")

ALL_PLATFORMS = "all"


def _escape(product_id: str) -> str:
    """Percent-encode an id so its own ``:`` cannot end a key segment."""
    return urllib.parse.quote(product_id, safe="")


def _decode_history(raw: Any) -> list[PriceEntry]:
    return [PriceEntry.from_dict(d) for d in raw]


def _decode_comparison(
    raw: Any,
) -> tuple[frozenset[str], list[ProductOffer]]:
    return (
        frozenset(raw["platforms"]),
        [ProductOffer.from_dict(d) for d in raw["offers"]],
    )


class CacheKeys:
    """Key builders; every per-product family ends with ``:`` before the
    variable part so that prefix invalidation cannot bleed into another
    product whose id shares a prefix."""

    @staticmethod
    def price_history(product_id: str, platform: str = ALL_PLATFORMS) -> str:
        return f"price:history:{_escape(product_id)}:{platform}"

    @staticmethod
    def current_price(product_id: str, platform: str = ALL_PLATFORMS) -> str:
        return f"price:current:{_escape(product_id)}:{platform}"

    @staticmethod
    def statistics(product_id: str, platform: str, period_days: int) -> str:
        return f"price:stats:{_escape(product_id)}:{platform}:{period_days}d"

    @staticmethod
    def trend(product_id: str, platform: str, period_days: int) -> str:
        return f"price:trend:{_escape(product_id)}:{platform}:{period_days}d"

    @staticmethod
    def historical_low(product_id: str, platform: str, days: int) -> str:
        return f"price:low:{_escape(product_id)}:{platform}:{days}d"

    @staticmethod
    def comparison(product_id: str) -> str:
        return f"product:offers:{_escape(product_id)}"

    @staticmethod
    def product_prefixes(product_id: str) -> list[str]:
        return [
            f"price:{family}:{_escape(product_id)}:"
            for family in ("history", "current", "stats", "trend", "low")
        ]


class PriceCache:
    """Cache-aside front for history, statistics, trends and comparisons."""

    def __init__(
        self,
        store: CacheStore,
        *,
        history_ttl: float = Settings.PRICE_HISTORY_TTL,
        current_ttl: float = Settings.CURRENT_PRICE_TTL,
        statistics_ttl: float = Settings.STATISTICS_TTL,
        trend_ttl: float = Settings.TREND_TTL,
        low_ttl: float = Settings.HISTORICAL_LOW_TTL,
        offers_ttl: float = Settings.OFFERS_TTL,
    ) -> None:
        self.store = store
        self.history_ttl = history_ttl
        self.current_ttl = current_ttl
        self.statistics_ttl = statistics_ttl
        self.trend_ttl = trend_ttl
        self.low_ttl = low_ttl
        self.offers_ttl = offers_ttl
        self.hits = 0
        self.misses = 0
        self.failures = 0

    # ── Raw fail-open primitives ─────────────────────────

    async def _get(self, key: str) -> Any | None:
        try:
            value = await self.store.get(key)
        except Exception as exc:
            self.failures += 1
            logger.warning(
                "Cache read failed for %s, computing uncached: %s",
                key,
                exc,
            )
            return None
        if value is None:
            self.misses += 1
            logger.debug("Cache miss: %s", key)
        else:
            self.hits += 1
            logger.debug("Cache hit: %s", key)
        return value

    async def _set(self, key: str, value: Any, ttl: float) -> bool:
        try:
            await self.store.set(key, value, ttl)
        except Exception as exc:
            self.failures += 1
            logger.warning("Cache write failed for %s: %s", key, exc)
            return False
        return True

    async def _get_decoded(
        self, key: str, decode: Callable[[Any], T],
    ) -> T | None:
        """Read and decode *key*; an undecodable value counts as a miss."""
        raw = await self._get(key)
        if raw is None:
            return None
        try:
            return decode(raw)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(
                "Discarding undecodable cache value at %s: %s", key, exc,
            )
            return None

    # ── Price history ────────────────────────────────────

    async def get_price_history(
        self, product_id: str, platform: str = ALL_PLATFORMS,
    ) -> list[PriceEntry] | None:
        return await self._get_decoded(
            CacheKeys.price_history(product_id, platform), _decode_history,
        )

    async def set_price_history(
        self,
        product_id: str,
        entries: Sequence[PriceEntry],
        platform: str = ALL_PLATFORMS,
    ) -> bool:
        return await self._set(
            CacheKeys.price_history(product_id, platform),
            [e.to_dict() for e in entries],
            self.history_ttl,
        )

    async def batch_cache_price_history(
        self,
        items: Sequence[tuple[str, str, Sequence[PriceEntry]]],
    ) -> int:
        """Cache many ``(product_id, platform, entries)`` tuples concurrently.

        Returns the number stored; failures are logged, not raised.
        """
        outcomes = await asyncio.gather(
            *(
                self.set_price_history(pid, entries, platform)
                for pid, platform, entries in items
            ),
            return_exceptions=True,
        )
        stored = sum(1 for o in outcomes if o is True)
        if stored < len(items):
            logger.warning(
                "Batch history cache stored %d of %d items",
                stored,
                len(items),
            )
        else:
            logger.debug("Batch cached history for %d items", stored)
        return stored

    # ── Current price ────────────────────────────────────

    async def get_current_price(
        self, product_id: str, platform: str = ALL_PLATFORMS,
    ) -> PriceEntry | None:
        return await self._get_decoded(
            CacheKeys.current_price(product_id, platform),
            PriceEntry.from_dict,
        )

    async def set_current_price(
        self, entry: PriceEntry, platform: str | None = None,
    ) -> bool:
        return await self._set(
            CacheKeys.current_price(
                entry.product_id, platform or entry.platform_id,
            ),
            entry.to_dict(),
            self.current_ttl,
        )

    # ── Derived analyses ─────────────────────────────────

    async def get_statistics(
        self, product_id: str, platform: str, period_days: int,
    ) -> PriceStatistics | None:
        return await self._get_decoded(
            CacheKeys.statistics(product_id, platform, period_days),
            PriceStatistics.from_dict,
        )

    async def set_statistics(
        self, stats: PriceStatistics, platform: str, period_days: int,
    ) -> bool:
        return await self._set(
            CacheKeys.statistics(stats.product_id, platform, period_days),
            stats.to_dict(),
            self.statistics_ttl,
        )

    async def get_trend(
        self, product_id: str, platform: str, period_days: int,
    ) -> PriceTrend | None:
        return await self._get_decoded(
            CacheKeys.trend(product_id, platform, period_days),
            PriceTrend.from_dict,
        )

    async def set_trend(
        self, trend: PriceTrend, platform: str, period_days: int,
    ) -> bool:
        return await self._set(
            CacheKeys.trend(trend.product_id, platform, period_days),
            trend.to_dict(),
            self.trend_ttl,
        )

    async def get_historical_low(
        self, product_id: str, platform: str, days: int,
    ) -> HistoricalLow | None:
        return await self._get_decoded(
            CacheKeys.historical_low(product_id, platform, days),
            HistoricalLow.from_dict,
        )

    async def set_historical_low(
        self, low: HistoricalLow, platform: str, days: int,
    ) -> bool:
        return await self._set(
            CacheKeys.historical_low(low.product_id, platform, days),
            low.to_dict(),
            self.low_ttl,
        )

    # ── Cross-platform comparison ────────────────────────

    async def get_comparison(
        self, product_id: str,
    ) -> tuple[frozenset[str], list[ProductOffer]] | None:
        """Return ``(platforms queried, offers)`` for a product."""
        return await self._get_decoded(
            CacheKeys.comparison(product_id), _decode_comparison,
        )

    async def set_comparison(
        self,
        product_id: str,
        platforms: Sequence[str],
        offers: Sequence[ProductOffer],
    ) -> bool:
        return await self._set(
            CacheKeys.comparison(product_id),
            {
                "platforms": sorted(platforms),
                "offers": [o.to_dict() for o in offers],
            },
            self.offers_ttl,
        )

    # ── Invalidation ─────────────────────────────────────

    async def delete(self, key: str) -> bool:
        """Drop one exact key; ``False`` if absent or the store failed."""
        try:
            return await self.store.delete(key) > 0
        except Exception as exc:
            self.failures += 1
            logger.warning("Cache delete failed for %s: %s", key, exc)
            return False

    async def invalidate_product(self, product_id: str) -> int:
        """Drop every cached artifact of *product_id* on all platforms."""
        removed = 0
        try:
            for prefix in CacheKeys.product_prefixes(product_id):
                removed += await self.store.delete_prefix(prefix)
            removed += await self.store.delete(
                CacheKeys.comparison(product_id)
            )
        except Exception as exc:
            self.failures += 1
            logger.error(
                "Failed to invalidate cache for product %s: %s",
                product_id,
                exc,
            )
            return removed
        logger.info(
            "Invalidated %d cache entries for product %s",
            removed,
            product_id,
        )
        return removed

    async def clear_all(self) -> int:
        """Purge the whole store (use with care)."""
        try:
            count = await self.store.clear()
        except Exception as exc:
            self.failures += 1
            logger.error("Failed to clear price cache: %s", exc)
            return 0
        logger.warning("Cleared all price cache (%d entries)", count)
        return count

    def stats(self) -> dict[str, float]:
        lookups = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "failures": self.failures,
            "hit_rate": self.hits / lookups if lookups else 0.0,
        }
