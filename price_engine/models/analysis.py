# price_engine/models/analysis.py

"""Derived analysis results computed from a price time series.

All of these are recomputed on demand and live only in the cache,
so each carries a ``to_dict``/``from_dict`` pair for the JSON store.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from price_engine.models.price_entry import PriceEntry, parse_timestamp


class TrendDirection(str, Enum):
    """Direction of price movement over a window."""

    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class AnomalyType(str, Enum):
    """Kind of anomalous price relative to recent history."""

    SPIKE = "spike"
    DROP = "drop"
    UNUSUAL = "unusual"


@dataclass(frozen=True)
class PriceTrend:
    """Trend of one product on one platform (or ``all``) over a window."""

    product_id: str
    platform: str
    current_price: float
    average_price: float
    lowest_price: float
    highest_price: float
    price_change: float
    price_change_percentage: float
    trend_direction: TrendDirection
    data_points: int
    period_days: int
    last_updated: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "platform": self.platform,
            "current_price": self.current_price,
            "average_price": self.average_price,
            "lowest_price": self.lowest_price,
            "highest_price": self.highest_price,
            "price_change": self.price_change,
            "price_change_percentage": self.price_change_percentage,
            "trend_direction": self.trend_direction.value,
            "data_points": self.data_points,
            "period_days": self.period_days,
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PriceTrend":
        return cls(
            product_id=data["product_id"],
            platform=data["platform"],
            current_price=data["current_price"],
            average_price=data["average_price"],
            lowest_price=data["lowest_price"],
            highest_price=data["highest_price"],
            price_change=data["price_change"],
            price_change_percentage=data["price_change_percentage"],
            trend_direction=TrendDirection(data["trend_direction"]),
            data_points=data["data_points"],
            period_days=data["period_days"],
            last_updated=parse_timestamp(data["last_updated"]),
        )


@dataclass(frozen=True)
class HistoricalLow:
    """Lowest observed price inside a lookback window."""

    product_id: str
    platform: str
    lowest_price: float
    price_date: datetime
    days_since_low: int
    current_price: float
    is_current_low: bool
    average_price: float
    typical_min: float
    typical_max: float

    @property
    def typical_price_range(self) -> tuple[float, float]:
        return (self.typical_min, self.typical_max)

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "platform": self.platform,
            "lowest_price": self.lowest_price,
            "price_date": self.price_date.isoformat(),
            "days_since_low": self.days_since_low,
            "current_price": self.current_price,
            "is_current_low": self.is_current_low,
            "average_price": self.average_price,
            "typical_min": self.typical_min,
            "typical_max": self.typical_max,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoricalLow":
        return cls(
            product_id=data["product_id"],
            platform=data["platform"],
            lowest_price=data["lowest_price"],
            price_date=parse_timestamp(data["price_date"]),
            days_since_low=data["days_since_low"],
            current_price=data["current_price"],
            is_current_low=data["is_current_low"],
            average_price=data["average_price"],
            typical_min=data["typical_min"],
            typical_max=data["typical_max"],
        )


@dataclass(frozen=True)
class PriceStatistics:
    """Descriptive statistics over a set of entries.

    ``recent_volatility`` is ``None`` when fewer than two entries fall
    inside the volatility window.
    """

    product_id: str
    platform: str
    total_data_points: int
    average_price: float
    median_price: float
    standard_deviation: float
    min_price: float
    max_price: float
    spread: float
    recent_volatility: float | None
    availability_rate: float
    last_updated: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "platform": self.platform,
            "total_data_points": self.total_data_points,
            "average_price": self.average_price,
            "median_price": self.median_price,
            "standard_deviation": self.standard_deviation,
            "min_price": self.min_price,
            "max_price": self.max_price,
            "spread": self.spread,
            "recent_volatility": self.recent_volatility,
            "availability_rate": self.availability_rate,
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PriceStatistics":
        return cls(
            product_id=data["product_id"],
            platform=data["platform"],
            total_data_points=data["total_data_points"],
            average_price=data["average_price"],
            median_price=data["median_price"],
            standard_deviation=data["standard_deviation"],
            min_price=data["min_price"],
            max_price=data["max_price"],
            spread=data["spread"],
            recent_volatility=data.get("recent_volatility"),
            availability_rate=data["availability_rate"],
            last_updated=parse_timestamp(data["last_updated"]),
        )


@dataclass(frozen=True)
class DropEvent:
    """A significant drop against the prior entry's list price."""

    entry: PriceEntry
    drop_percentage: float
    previous_price: float


@dataclass(frozen=True)
class PriceRange:
    """Lowest / highest / average price across platforms."""

    lowest: float
    highest: float
    average: float
    platforms: tuple[str, ...]


@dataclass(frozen=True)
class AnomalyResult:
    """Result of testing a new price against recent history."""

    is_anomaly: bool
    anomaly_type: AnomalyType | None
    significance: float
    explanation: str
    z_score: float = 0.0
    history_count: int = 0
