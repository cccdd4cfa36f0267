# price_engine/models/price_entry.py

"""Raw quotes and the immutable price entries built from them."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Availability(str, Enum):
    """Stock state reported by a marketplace."""

    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"
    LIMITED_STOCK = "limited_stock"
    DISCONTINUED = "discontinued"

    @property
    def purchasable(self) -> bool:
        return self in (Availability.IN_STOCK, Availability.LIMITED_STOCK)


class Condition(str, Enum):
    """Item condition of a listing."""

    NEW = "new"
    USED = "used"
    REFURBISHED = "refurbished"


class QuoteSource(str, Enum):
    """How a quote was obtained; drives validation confidence."""

    API = "api"
    SCRAPE = "scrape"
    MANUAL = "manual"


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into aware UTC."""
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


@dataclass
class RawQuote:
    """An unvalidated observation as handed over by a marketplace."""

    product_id: str
    platform_id: str
    price: float
    currency: str = "JPY"
    original_price: float | None = None
    discount_percentage: float | None = None
    availability: Availability = Availability.IN_STOCK
    condition: Condition = Condition.NEW
    seller: str = ""
    shipping_cost: float = 0.0
    product_url: str = ""
    timestamp: datetime | None = None
    source: QuoteSource = QuoteSource.API
    metadata: dict[str, Any] = field(
        default_factory=lambda: dict[str, Any]()
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RawQuote":
        """Build a quote from a JSON-like mapping (snake_case keys)."""
        raw_ts = data.get("timestamp")
        return cls(
            product_id=str(data["product_id"]),
            platform_id=str(data["platform_id"]),
            price=float(data["price"]),
            currency=str(data.get("currency", "JPY")),
            original_price=_optional_float(data.get("original_price")),
            discount_percentage=_optional_float(
                data.get("discount_percentage")
            ),
            availability=Availability(
                data.get("availability", "in_stock")
            ),
            condition=Condition(data.get("condition", "new")),
            seller=str(data.get("seller") or ""),
            shipping_cost=float(data.get("shipping_cost") or 0.0),
            product_url=str(data.get("product_url") or ""),
            timestamp=parse_timestamp(raw_ts) if raw_ts else None,
            source=QuoteSource(data.get("source", "api")),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class PriceEntry:
    """A single validated price observation. Never mutated."""

    product_id: str
    platform_id: str
    price: float
    timestamp: datetime
    currency: str = "JPY"
    original_price: float | None = None
    availability: Availability = Availability.IN_STOCK
    condition: Condition = Condition.NEW
    seller: str = ""
    shipping_cost: float = 0.0
    product_url: str = ""
    metadata: dict[str, Any] = field(
        default_factory=lambda: dict[str, Any]()
    )
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if self.price <= 0:
            raise ValueError(f"price must be positive, got {self.price}")
        if self.shipping_cost < 0:
            raise ValueError("shipping_cost must be >= 0")

    @property
    def in_stock(self) -> bool:
        return self.availability.purchasable

    @classmethod
    def from_quote(
        cls, quote: RawQuote, price: float | None = None,
    ) -> "PriceEntry":
        """Freeze a quote into an entry, optionally with a normalised price."""
        return cls(
            product_id=quote.product_id,
            platform_id=quote.platform_id,
            price=quote.price if price is None else price,
            timestamp=quote.timestamp or utc_now(),
            currency=quote.currency,
            original_price=quote.original_price,
            availability=quote.availability,
            condition=quote.condition,
            seller=quote.seller,
            shipping_cost=quote.shipping_cost,
            product_url=quote.product_url,
            metadata=dict(quote.metadata),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "platform_id": self.platform_id,
            "price": self.price,
            "timestamp": self.timestamp.isoformat(),
            "currency": self.currency,
            "original_price": self.original_price,
            "availability": self.availability.value,
            "condition": self.condition.value,
            "seller": self.seller,
            "shipping_cost": self.shipping_cost,
            "product_url": self.product_url,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PriceEntry":
        return cls(
            id=str(data["id"]),
            product_id=str(data["product_id"]),
            platform_id=str(data["platform_id"]),
            price=float(data["price"]),
            timestamp=parse_timestamp(data["timestamp"]),
            currency=str(data.get("currency", "JPY")),
            original_price=_optional_float(data.get("original_price")),
            availability=Availability(data.get("availability", "in_stock")),
            condition=Condition(data.get("condition", "new")),
            seller=str(data.get("seller") or ""),
            shipping_cost=float(data.get("shipping_cost") or 0.0),
            product_url=str(data.get("product_url") or ""),
            metadata=dict(data.get("metadata") or {}),
        )
