# price_engine/services/price_service.py

"""Quote ingestion and cache-aside price analysis reads."""

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta

from price_engine.analysis import trend_engine
from price_engine.config.settings import Settings
from price_engine.errors import QuoteRejectedError
from price_engine.filters.anomaly_detector import AnomalyDetector
from price_engine.filters.price_validator import PriceValidator
from price_engine.models.analysis import (
    AnomalyResult,
    DropEvent,
    HistoricalLow,
    PriceRange,
    PriceStatistics,
    PriceTrend,
)
from price_engine.models.price_entry import PriceEntry, RawQuote, utc_now
from price_engine.models.validation import ValidationResult
from price_engine.services.concurrency import gather_in_chunks
from price_engine.storage.price_cache import ALL_PLATFORMS, PriceCache
from price_engine.storage.price_history_db import PriceHistoryDB

logger = logging.getLogger("price_engine.price_service")


@dataclass(frozen=True)
class IngestResult:
    """A persisted entry with the checks it went through."""

    entry: PriceEntry
    validation: ValidationResult
    anomaly: AnomalyResult | None = None


@dataclass
class BatchIngestSummary:
    """Outcome of :meth:`PriceService.ingest_batch`."""

    accepted: list[IngestResult] = field(
        default_factory=lambda: list[IngestResult]()
    )
    rejected: list[QuoteRejectedError] = field(
        default_factory=lambda: list[QuoteRejectedError]()
    )
    failed: list[str] = field(default_factory=lambda: list[str]())
    anomalies: int = 0


@dataclass
class PlatformTrends:
    """Per-platform trends for one product.

    ``partial`` is set when the timeout elapsed before every platform
    was analysed; a platform with too little history maps to ``None``.
    """

    product_id: str
    trends: dict[str, PriceTrend | None] = field(
        default_factory=lambda: dict[str, PriceTrend | None]()
    )
    partial: bool = False
    errors: list[str] = field(default_factory=lambda: list[str]())


class PriceService:
    """Validate and store quotes; serve memoised analyses over history.

    The history store is synchronous SQLite and is always called via
    :func:`asyncio.to_thread`.  Store failures propagate to the caller;
    cache failures never do.
    """

    def __init__(
        self,
        history: PriceHistoryDB,
        cache: PriceCache,
        validator: PriceValidator | None = None,
        anomaly_detector: AnomalyDetector | None = None,
        *,
        max_history_days: int = Settings.MAX_HISTORY_DAYS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.history = history
        self.cache = cache
        self.validator = validator or PriceValidator()
        self.anomaly_detector = anomaly_detector
        self.max_history_days = max_history_days
        self._clock = clock

    # ── Ingestion ────────────────────────────────────────

    async def ingest_quote(self, quote: RawQuote) -> IngestResult:
        """Validate, anomaly-check, persist and invalidate caches.

        Raises:
            QuoteRejectedError: the quote failed hard validation.
            StoreUnavailableError: the history store could not be used.
        """
        context = self.validator.stale_window
        if self.anomaly_detector is not None:
            context = max(context, self.anomaly_detector.window)
        recent = await asyncio.to_thread(
            self.history.recent_prices,
            quote.product_id,
            quote.platform_id,
            context,
        )

        validation = self.validator.validate(
            quote, recent[-self.validator.stale_window:],
        )
        if not validation.is_valid:
            raise QuoteRejectedError(
                quote.product_id, quote.platform_id, validation,
            )

        anomaly = None
        if self.anomaly_detector is not None:
            self.anomaly_detector.update_history(quote.product_id, recent)
            anomaly = self.anomaly_detector.detect_anomaly(
                quote.product_id, validation.normalized_price,
            )

        metadata = {
            **quote.metadata,
            "confidence": round(validation.confidence, 2),
        }
        if validation.warnings:
            metadata["warnings"] = [w.code for w in validation.warnings]
        if anomaly is not None and anomaly.is_anomaly:
            metadata["anomaly"] = (
                anomaly.anomaly_type.value if anomaly.anomaly_type else None
            )
        entry = PriceEntry.from_quote(
            replace(quote, metadata=metadata),
            price=validation.normalized_price,
        )

        await asyncio.to_thread(self.history.append, entry)
        await self.cache.invalidate_product(entry.product_id)
        await self.cache.set_current_price(entry)

        logger.info(
            "Ingested %s@%s at %s %s (confidence %.2f)",
            entry.product_id,
            entry.platform_id,
            entry.price,
            entry.currency,
            validation.confidence,
        )
        return IngestResult(entry=entry, validation=validation, anomaly=anomaly)

    async def ingest_batch(
        self, quotes: Sequence[RawQuote],
    ) -> BatchIngestSummary:
        """Ingest quotes in order; rejections and failures are collected."""
        summary = BatchIngestSummary()
        for quote in quotes:
            try:
                result = await self.ingest_quote(quote)
            except QuoteRejectedError as exc:
                summary.rejected.append(exc)
                continue
            except Exception as exc:
                logger.error(
                    "Could not ingest %s@%s: %s",
                    quote.product_id,
                    quote.platform_id,
                    exc,
                    exc_info=True,
                )
                summary.failed.append(
                    f"{quote.product_id}@{quote.platform_id}: {exc}"
                )
                continue
            summary.accepted.append(result)
            if result.anomaly is not None and result.anomaly.is_anomaly:
                summary.anomalies += 1
        logger.info(
            "Batch ingest: %d accepted, %d rejected, %d failed, %d anomalies",
            len(summary.accepted),
            len(summary.rejected),
            len(summary.failed),
            summary.anomalies,
        )
        return summary

    # ── History ──────────────────────────────────────────

    async def get_price_history(
        self,
        product_id: str,
        platform: str | None = None,
        days: int | None = None,
    ) -> list[PriceEntry]:
        """Entries of the last *days* (default: full retained history).

        The full ``max_history_days`` series is what gets cached; shorter
        windows are sliced from it.
        """
        now = self._clock()
        days = self.max_history_days if days is None else days
        if days > self.max_history_days:
            return await asyncio.to_thread(
                self.history.query,
                product_id,
                platform,
                now - timedelta(days=days),
            )

        label = platform or ALL_PLATFORMS
        entries = await self.cache.get_price_history(product_id, label)
        if entries is None:
            entries = await asyncio.to_thread(
                self.history.query,
                product_id,
                platform,
                now - timedelta(days=self.max_history_days),
            )
            if entries:
                await self.cache.set_price_history(product_id, entries, label)

        cutoff = now - timedelta(days=days)
        return [e for e in entries if e.timestamp >= cutoff]

    async def get_current_entry(
        self, product_id: str, platform: str | None = None,
    ) -> PriceEntry | None:
        """Latest entry for a product (on one platform if given)."""
        label = platform or ALL_PLATFORMS
        cached = await self.cache.get_current_price(product_id, label)
        if cached is not None:
            return cached
        entry = await asyncio.to_thread(
            self.history.latest, product_id, platform,
        )
        if entry is not None:
            await self.cache.set_current_price(entry, label)
        return entry

    # ── Derived analyses ─────────────────────────────────

    async def get_trend(
        self,
        product_id: str,
        platform: str | None = None,
        period_days: int = Settings.DEFAULT_TREND_DAYS,
    ) -> PriceTrend | None:
        label = platform or ALL_PLATFORMS
        cached = await self.cache.get_trend(product_id, label, period_days)
        if cached is not None:
            return cached
        entries = await self.get_price_history(
            product_id, platform, period_days,
        )
        trend = trend_engine.calculate_trend(
            entries, period_days, now=self._clock(),
        )
        if trend is not None:
            await self.cache.set_trend(trend, label, period_days)
        return trend

    async def get_statistics(
        self,
        product_id: str,
        platform: str | None = None,
        period_days: int = Settings.DEFAULT_TREND_DAYS,
    ) -> PriceStatistics | None:
        label = platform or ALL_PLATFORMS
        cached = await self.cache.get_statistics(
            product_id, label, period_days,
        )
        if cached is not None:
            return cached
        entries = await self.get_price_history(
            product_id, platform, period_days,
        )
        stats = trend_engine.calculate_statistics(entries, now=self._clock())
        if stats is not None:
            await self.cache.set_statistics(stats, label, period_days)
        return stats

    async def get_historical_low(
        self,
        product_id: str,
        platform: str | None = None,
        days: int = Settings.DEFAULT_LOOKBACK_DAYS,
    ) -> HistoricalLow | None:
        label = platform or ALL_PLATFORMS
        cached = await self.cache.get_historical_low(product_id, label, days)
        if cached is not None:
            return cached
        entries = await self.get_price_history(product_id, platform)
        low = trend_engine.find_historical_low(
            entries, days, now=self._clock(),
        )
        if low is not None:
            await self.cache.set_historical_low(low, label, days)
        return low

    async def get_price_drops(
        self,
        product_id: str,
        platform: str | None = None,
        threshold_percentage: float = Settings.DEFAULT_DROP_THRESHOLD_PCT,
        days: int | None = None,
    ) -> list[DropEvent]:
        entries = await self.get_price_history(product_id, platform, days)
        return trend_engine.detect_price_drops(entries, threshold_percentage)

    async def get_price_range(
        self,
        product_id: str,
        days: int = Settings.DEFAULT_TREND_DAYS,
    ) -> PriceRange | None:
        entries = await self.get_price_history(product_id, days=days)
        return trend_engine.price_range(entries)

    async def get_platform_trends(
        self,
        product_id: str,
        platforms: Sequence[str],
        period_days: int = Settings.DEFAULT_TREND_DAYS,
        timeout: float | None = None,
    ) -> PlatformTrends:
        """Trend per platform, fanned out with an optional deadline."""

        async def one(platform: str) -> PriceTrend | None:
            return await self.get_trend(product_id, platform, period_days)

        outcome = await gather_in_chunks(
            list(platforms), one, timeout=timeout,
        )
        result = PlatformTrends(
            product_id=product_id, partial=outcome.partial,
        )
        for platform in platforms:
            if platform in outcome.results:
                result.trends[platform] = outcome.results[platform]
        for platform, exc in outcome.errors.items():
            logger.error(
                "Trend for %s@%s failed: %s",
                product_id,
                platform,
                exc,
                exc_info=exc,
            )
            result.errors.append(f"{platform}: {exc}")
        for platform in outcome.timed_out:
            result.errors.append(f"{platform}: timed out")
        return result
