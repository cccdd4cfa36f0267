# price_engine/analysis/trend_engine.py

"""Trend, statistics, historical-low and drop detection over price series.

Every function here is pure: it only reads the entries passed in and
never touches a store or the cache.  Input order does not matter;
functions that need time order sort a copy by timestamp.
"""

import math
import statistics
from collections.abc import Sequence
from datetime import datetime, timedelta

from price_engine.config.settings import Settings
from price_engine.models.analysis import (
    DropEvent,
    HistoricalLow,
    PriceRange,
    PriceStatistics,
    PriceTrend,
    TrendDirection,
)
from price_engine.models.price_entry import PriceEntry, utc_now

_SECONDS_PER_DAY = 86_400


def _by_time(entries: Sequence[PriceEntry]) -> list[PriceEntry]:
    return sorted(entries, key=lambda e: e.timestamp)


def _platform_label(entries: Sequence[PriceEntry]) -> str:
    platforms = {e.platform_id for e in entries}
    return platforms.pop() if len(platforms) == 1 else "all"


def calculate_trend(
    entries: Sequence[PriceEntry],
    period_days: int = Settings.DEFAULT_TREND_DAYS,
    now: datetime | None = None,
    stable_band_pct: float = Settings.STABLE_BAND_PCT,
) -> PriceTrend | None:
    """Trend from the oldest to the newest entry; ``None`` below 2 points."""
    if len(entries) < 2:
        return None

    ordered = _by_time(entries)
    prices = [e.price for e in ordered]
    current = prices[-1]
    oldest = prices[0]

    change = current - oldest
    change_pct = change / oldest * 100

    if abs(change_pct) < stable_band_pct:
        direction = TrendDirection.STABLE
    elif change_pct > 0:
        direction = TrendDirection.UP
    else:
        direction = TrendDirection.DOWN

    return PriceTrend(
        product_id=ordered[0].product_id,
        platform=_platform_label(ordered),
        current_price=current,
        average_price=statistics.fmean(prices),
        lowest_price=min(prices),
        highest_price=max(prices),
        price_change=change,
        price_change_percentage=change_pct,
        trend_direction=direction,
        data_points=len(ordered),
        period_days=period_days,
        last_updated=now or utc_now(),
    )


def calculate_statistics(
    entries: Sequence[PriceEntry],
    now: datetime | None = None,
    volatility_days: int = Settings.VOLATILITY_WINDOW_DAYS,
) -> PriceStatistics | None:
    """Descriptive statistics; ``None`` for an empty series.

    Standard deviation uses the population formula (divide by N).
    """
    if not entries:
        return None

    now = now or utc_now()
    prices = [e.price for e in entries]
    low, high = min(prices), max(prices)

    cutoff = now - timedelta(days=volatility_days)
    recent = [e.price for e in entries if e.timestamp >= cutoff]
    volatility = statistics.pstdev(recent) if len(recent) >= 2 else None

    purchasable = sum(1 for e in entries if e.in_stock)

    return PriceStatistics(
        product_id=entries[0].product_id,
        platform=_platform_label(entries),
        total_data_points=len(prices),
        average_price=statistics.fmean(prices),
        median_price=statistics.median(prices),
        standard_deviation=statistics.pstdev(prices),
        min_price=low,
        max_price=high,
        spread=high - low,
        recent_volatility=volatility,
        availability_rate=purchasable / len(prices),
        last_updated=now,
    )


def find_historical_low(
    entries: Sequence[PriceEntry],
    days: int = Settings.DEFAULT_LOOKBACK_DAYS,
    now: datetime | None = None,
) -> HistoricalLow | None:
    """Lowest price within the last *days*; ``None`` if the window is empty.

    The typical range is [Q1, Q3] of the windowed prices using
    ``floor(n * 0.25)`` / ``floor(n * 0.75)`` indices.
    """
    if not entries:
        return None

    now = now or utc_now()
    cutoff = now - timedelta(days=days)
    window = [e for e in entries if e.timestamp >= cutoff]
    if not window:
        return None

    lowest = min(window, key=lambda e: e.price)
    current_price = _by_time(entries)[-1].price

    sorted_prices = sorted(e.price for e in window)
    n = len(sorted_prices)
    q1_index = math.floor(n * 0.25)
    q3_index = math.floor(n * 0.75)
    typical_min = sorted_prices[q1_index] if q1_index < n else lowest.price
    typical_max = sorted_prices[q3_index] if q3_index < n else lowest.price

    elapsed = (now - lowest.timestamp).total_seconds()

    return HistoricalLow(
        product_id=lowest.product_id,
        platform=_platform_label(window),
        lowest_price=lowest.price,
        price_date=lowest.timestamp,
        days_since_low=max(0, math.floor(elapsed / _SECONDS_PER_DAY)),
        current_price=current_price,
        is_current_low=current_price <= lowest.price,
        average_price=statistics.fmean(sorted_prices),
        typical_min=typical_min,
        typical_max=typical_max,
    )


def detect_price_drops(
    entries: Sequence[PriceEntry],
    threshold_percentage: float = Settings.DEFAULT_DROP_THRESHOLD_PCT,
) -> list[DropEvent]:
    """Drops of each entry's price against the *previous* entry's list price.

    The baseline is the prior entry's ``original_price``, not the
    current entry's own.
    """
    drops: list[DropEvent] = []
    ordered = _by_time(entries)

    for previous, current in zip(ordered, ordered[1:]):
        baseline = previous.original_price
        if baseline is None or baseline <= current.price:
            continue
        drop_pct = (baseline - current.price) / baseline * 100
        if drop_pct >= threshold_percentage:
            drops.append(DropEvent(
                entry=current,
                drop_percentage=drop_pct,
                previous_price=baseline,
            ))

    return drops


def get_price_changes(
    entries: Sequence[PriceEntry],
    start: datetime,
    end: datetime,
) -> list[PriceEntry]:
    """Entries with ``start <= timestamp <= end``, oldest first."""
    return _by_time([e for e in entries if start <= e.timestamp <= end])


def price_range(entries: Sequence[PriceEntry]) -> PriceRange | None:
    """Lowest / highest / average across all entries and platforms."""
    if not entries:
        return None
    prices = [e.price for e in entries]
    platforms = tuple(dict.fromkeys(e.platform_id for e in entries))
    return PriceRange(
        lowest=min(prices),
        highest=max(prices),
        average=statistics.fmean(prices),
        platforms=platforms,
    )


def moving_average(prices: Sequence[float], window: int) -> list[float]:
    """Simple moving average, one value per complete window."""
    if window <= 0:
        raise ValueError("window must be positive")
    return [
        statistics.fmean(prices[i - window:i])
        for i in range(window, len(prices) + 1)
    ]


def exponential_moving_average(
    prices: Sequence[float], alpha: float,
) -> list[float]:
    """Exponentially decayed average; recent prices weigh ``alpha``."""
    if not 0 < alpha <= 1:
        raise ValueError("alpha must be in (0, 1]")
    smoothed: list[float] = []
    for price in prices:
        if not smoothed:
            smoothed.append(price)
        else:
            smoothed.append(alpha * price + (1 - alpha) * smoothed[-1])
    return smoothed


def calculate_savings(original_price: float, current_price: float) -> float:
    return max(0.0, original_price - current_price)


def calculate_savings_percentage(
    original_price: float, current_price: float,
) -> int:
    if original_price <= current_price:
        return 0
    return round((original_price - current_price) / original_price * 100)
