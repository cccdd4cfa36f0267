# price_engine/models/offer.py

"""Per-platform offer snapshots and cross-platform comparison results."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from price_engine.models.price_entry import (
    Availability,
    Condition,
    PriceEntry,
    parse_timestamp,
)


class BestPlatformCriteria(str, Enum):
    """Scoring criterion for picking a single best platform."""

    LOWEST_PRICE = "lowest_price"
    FASTEST_SHIPPING = "fastest_shipping"
    BEST_RATING = "best_rating"


@dataclass(frozen=True)
class ProductOffer:
    """Latest offer for a product on one platform."""

    product_id: str
    platform: str
    price: float
    currency: str
    availability: Availability
    condition: Condition
    seller: str
    url: str
    first_seen_at: datetime
    last_updated_at: datetime
    original_price: float | None = None
    shipping_cost: float = 0.0
    estimated_shipping_days: int | None = None
    seller_rating: float | None = None
    is_official_seller: bool = False

    @property
    def in_stock(self) -> bool:
        return self.availability.purchasable

    @property
    def free_shipping(self) -> bool:
        return self.shipping_cost == 0

    @property
    def discount_percentage(self) -> int | None:
        if self.original_price is None or self.original_price <= self.price:
            return None
        return round(
            (self.original_price - self.price) / self.original_price * 100
        )

    def total_price(self, include_shipping: bool = True) -> float:
        if include_shipping:
            return self.price + self.shipping_cost
        return self.price

    @classmethod
    def from_entry(cls, entry: PriceEntry) -> "ProductOffer":
        """Project the latest entry for a platform into an offer."""
        meta = entry.metadata
        days = meta.get("delivery_days")
        rating = meta.get("seller_rating")
        return cls(
            product_id=entry.product_id,
            platform=entry.platform_id,
            price=entry.price,
            currency=entry.currency,
            availability=entry.availability,
            condition=entry.condition,
            seller=entry.seller,
            url=entry.product_url,
            first_seen_at=entry.timestamp,
            last_updated_at=entry.timestamp,
            original_price=entry.original_price,
            shipping_cost=entry.shipping_cost,
            estimated_shipping_days=int(days) if days is not None else None,
            seller_rating=float(rating) if rating is not None else None,
            is_official_seller=bool(meta.get("is_official", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "platform": self.platform,
            "price": self.price,
            "currency": self.currency,
            "availability": self.availability.value,
            "condition": self.condition.value,
            "seller": self.seller,
            "url": self.url,
            "first_seen_at": self.first_seen_at.isoformat(),
            "last_updated_at": self.last_updated_at.isoformat(),
            "original_price": self.original_price,
            "shipping_cost": self.shipping_cost,
            "estimated_shipping_days": self.estimated_shipping_days,
            "seller_rating": self.seller_rating,
            "is_official_seller": self.is_official_seller,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductOffer":
        return cls(
            product_id=data["product_id"],
            platform=data["platform"],
            price=data["price"],
            currency=data["currency"],
            availability=Availability(data["availability"]),
            condition=Condition(data["condition"]),
            seller=data["seller"],
            url=data["url"],
            first_seen_at=parse_timestamp(data["first_seen_at"]),
            last_updated_at=parse_timestamp(data["last_updated_at"]),
            original_price=data.get("original_price"),
            shipping_cost=data.get("shipping_cost", 0.0),
            estimated_shipping_days=data.get("estimated_shipping_days"),
            seller_rating=data.get("seller_rating"),
            is_official_seller=data.get("is_official_seller", False),
        )


@dataclass(frozen=True)
class ComparisonRow:
    """One ranked line of a cross-platform comparison."""

    platform: str
    price: float
    total_price: float
    savings: float
    ranking: int


@dataclass
class PriceComparison:
    """Cross-platform comparison for a single product.

    ``partial`` is set when the request timed out before every
    platform answered; ``errors`` lists per-platform failures.
    """

    product_id: str
    offers: list[ProductOffer] = field(
        default_factory=lambda: list[ProductOffer]()
    )
    lowest_price: float = 0.0
    highest_price: float = 0.0
    average_price: float = 0.0
    best_value: ProductOffer | None = None
    comparison: list[ComparisonRow] = field(
        default_factory=lambda: list[ComparisonRow]()
    )
    partial: bool = False
    cache_hit: bool = False
    errors: list[str] = field(default_factory=lambda: list[str]())


@dataclass(frozen=True)
class BestPlatform:
    """Winner of :meth:`ComparisonOrchestrator.get_best_platform`."""

    platform: str
    offer: ProductOffer
    score: float
