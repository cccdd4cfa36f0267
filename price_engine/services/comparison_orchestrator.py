# price_engine/services/comparison_orchestrator.py

"""Cross-platform offer fan-out, comparison and best-platform scoring."""

import logging
import statistics
from collections.abc import Sequence
from dataclasses import dataclass, field

from price_engine.config.settings import Settings
from price_engine.errors import PriceEngineError, QuoteRejectedError
from price_engine.filters.price_validator import PriceValidator
from price_engine.models.offer import (
    BestPlatform,
    BestPlatformCriteria,
    ComparisonRow,
    PriceComparison,
    ProductOffer,
)
from price_engine.models.price_entry import PriceEntry
from price_engine.services.concurrency import gather_in_chunks
from price_engine.services.price_service import PriceService
from price_engine.sources.base_source import MarketplaceSource
from price_engine.storage.price_cache import PriceCache

logger = logging.getLogger("price_engine.orchestrator")

ANY_CONDITION = "any"


@dataclass
class OfferSnapshot:
    """Latest offers for a product across the requested platforms."""

    offers: list[ProductOffer] = field(
        default_factory=lambda: list[ProductOffer]()
    )
    partial: bool = False
    cache_hit: bool = False
    errors: list[str] = field(default_factory=lambda: list[str]())


def score_offer(
    offer: ProductOffer, criteria: BestPlatformCriteria,
) -> float:
    """Deterministic score of *offer* under *criteria*; higher is better.

    lowest_price: ``100000 / (price + shipping)``.
    fastest_shipping: 100 when shipping is free, else ``50 - days``
    (7 days assumed when unknown).
    best_rating: ``seller_rating * 20`` when a 0-5 rating is known,
    else 80 for an official seller and 50 otherwise.
    """
    if criteria is BestPlatformCriteria.LOWEST_PRICE:
        return 100_000 / offer.total_price(include_shipping=True)
    if criteria is BestPlatformCriteria.FASTEST_SHIPPING:
        if offer.free_shipping:
            return 100.0
        return 50.0 - (offer.estimated_shipping_days or 7)
    if offer.seller_rating is not None:
        return offer.seller_rating * 20
    return 80.0 if offer.is_official_seller else 50.0


class ComparisonOrchestrator:
    """Fan out to marketplace sources and compare their offers.

    Sources are queried in chunks of at most ``chunk_size``; a failing
    source only removes its own platform from the result.
    """

    def __init__(
        self,
        sources: Sequence[MarketplaceSource],
        cache: PriceCache,
        validator: PriceValidator | None = None,
        price_service: PriceService | None = None,
        *,
        chunk_size: int = Settings.MAX_CONCURRENT_FETCHES,
        timeout: float | None = Settings.COMPARISON_TIMEOUT,
    ) -> None:
        self.sources = {s.platform_id: s for s in sources}
        self.cache = cache
        self.validator = validator or PriceValidator()
        self.price_service = price_service
        self.chunk_size = chunk_size
        self.timeout = timeout

    # ── Fetching ─────────────────────────────────────────

    async def _fetch_offer(
        self, product_id: str, platform: str,
    ) -> ProductOffer | None:
        """One platform's current offer, or ``None`` if unlisted/invalid."""
        quote = await self.sources[platform].fetch_latest_quote(product_id)
        if quote is None:
            return None

        if self.price_service is not None:
            try:
                ingested = await self.price_service.ingest_quote(quote)
            except QuoteRejectedError as exc:
                logger.info("Dropping offer: %s", exc)
                return None
            except PriceEngineError as exc:
                logger.error(
                    "Could not record %s@%s, offer kept unrecorded: %s",
                    product_id,
                    platform,
                    exc,
                )
            else:
                return ProductOffer.from_entry(ingested.entry)

        validation = self.validator.validate(quote)
        if not validation.is_valid:
            logger.info(
                "Dropping invalid %s offer for %s: %s",
                platform,
                product_id,
                ", ".join(e.code for e in validation.errors),
            )
            return None
        entry = PriceEntry.from_quote(
            quote, price=validation.normalized_price,
        )
        return ProductOffer.from_entry(entry)

    async def get_current_offers(
        self,
        product_id: str,
        platforms: Sequence[str] | None = None,
        timeout: float | None = None,
    ) -> OfferSnapshot:
        """Cache-aside offers for *platforms* (default: every source).

        The cached offer set is reused only when the platforms it was
        built from cover every requested platform.
        """
        requested = list(dict.fromkeys(platforms or self.sources))
        snapshot = OfferSnapshot()

        unknown = [p for p in requested if p not in self.sources]
        for platform in unknown:
            snapshot.errors.append(f"{platform}: unknown platform")
        known = [p for p in requested if p in self.sources]

        cached = await self.cache.get_comparison(product_id)
        if cached is not None and set(known) <= cached[0]:
            wanted = set(known)
            snapshot.offers = [o for o in cached[1] if o.platform in wanted]
            snapshot.cache_hit = True
            return snapshot

        async def fetch(platform: str) -> ProductOffer | None:
            return await self._fetch_offer(product_id, platform)

        outcome = await gather_in_chunks(
            known,
            fetch,
            chunk_size=self.chunk_size,
            timeout=self.timeout if timeout is None else timeout,
        )

        for platform in known:
            offer = outcome.results.get(platform)
            if offer is not None:
                snapshot.offers.append(offer)
        for platform, exc in outcome.errors.items():
            logger.error(
                "Platform %s failed for %s: %s",
                platform,
                product_id,
                exc,
                exc_info=exc,
            )
            snapshot.errors.append(f"{platform}: {exc}")
        for platform in outcome.timed_out:
            snapshot.errors.append(f"{platform}: timed out")
        snapshot.partial = outcome.partial

        answered = list(outcome.results)
        if answered:
            await self.cache.set_comparison(
                product_id, answered, snapshot.offers,
            )
        return snapshot

    # ── Comparison ───────────────────────────────────────

    async def compare_prices(
        self,
        product_id: str,
        platforms: Sequence[str] | None = None,
        condition: str = ANY_CONDITION,
        include_shipping: bool = True,
        currency: str = "JPY",
        timeout: float | None = None,
    ) -> PriceComparison:
        """Rank purchasable offers by total price.

        Offers are kept when in stock (or limited stock), in *currency*
        and, unless *condition* is ``"any"``, in that item condition.
        An empty filtered set yields a zeroed comparison.
        """
        snapshot = await self.get_current_offers(
            product_id, platforms, timeout,
        )
        filtered = [
            o for o in snapshot.offers
            if o.in_stock
            and o.currency == currency
            and (condition == ANY_CONDITION or o.condition.value == condition)
        ]

        result = PriceComparison(
            product_id=product_id,
            partial=snapshot.partial,
            cache_hit=snapshot.cache_hit,
            errors=snapshot.errors,
        )
        if not filtered:
            logger.info("No comparable offers for %s", product_id)
            return result

        prices = [o.price for o in filtered]
        highest = max(prices)
        ranked = sorted(
            filtered, key=lambda o: o.total_price(include_shipping),
        )

        result.offers = filtered
        result.lowest_price = min(prices)
        result.highest_price = highest
        result.average_price = statistics.fmean(prices)
        result.best_value = ranked[0]
        result.comparison = [
            ComparisonRow(
                platform=o.platform,
                price=o.price,
                total_price=o.total_price(include_shipping),
                savings=max(0.0, highest - o.price),
                ranking=rank,
            )
            for rank, o in enumerate(ranked, 1)
        ]
        return result

    async def get_best_platform(
        self,
        product_id: str,
        criteria: BestPlatformCriteria = BestPlatformCriteria.LOWEST_PRICE,
        platforms: Sequence[str] | None = None,
    ) -> BestPlatform | None:
        """Highest-scoring current offer; the first one wins ties."""
        snapshot = await self.get_current_offers(product_id, platforms)
        if not snapshot.offers:
            return None

        best = snapshot.offers[0]
        best_score = score_offer(best, criteria)
        for offer in snapshot.offers[1:]:
            score = score_offer(offer, criteria)
            if score > best_score:
                best, best_score = offer, score

        return BestPlatform(
            platform=best.platform, offer=best, score=best_score,
        )
