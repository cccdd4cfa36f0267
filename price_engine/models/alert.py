# price_engine/models/alert.py

"""User-owned price alert conditions and evaluation outcomes."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from price_engine.models.price_entry import parse_timestamp, utc_now


class AlertKind(str, Enum):
    """What a price alert watches for."""

    BELOW_TARGET = "below_target"
    HISTORICAL_LOW = "historical_low"
    PERCENTAGE_DROP = "percentage_drop"


@dataclass(frozen=True)
class PriceAlertCondition:
    """A long-lived alert. Deactivated, never deleted."""

    id: str
    user_id: str
    product_id: str
    kind: AlertKind
    platform: str | None = None
    target_price: float | None = None
    percentage: float | None = None
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    triggered_at: datetime | None = None
    last_triggered_price: float | None = None
    total_triggers: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PriceAlertCondition":
        created = data.get("created_at")
        triggered = data.get("triggered_at")
        return cls(
            id=str(data["id"]),
            user_id=str(data["user_id"]),
            product_id=str(data["product_id"]),
            kind=AlertKind(data["kind"]),
            platform=data.get("platform"),
            target_price=data.get("target_price"),
            percentage=data.get("percentage"),
            is_active=bool(data.get("is_active", True)),
            created_at=parse_timestamp(created) if created else utc_now(),
            triggered_at=parse_timestamp(triggered) if triggered else None,
            last_triggered_price=data.get("last_triggered_price"),
            total_triggers=int(data.get("total_triggers", 0)),
        )


@dataclass(frozen=True)
class AlertCheckResult:
    """Whether one condition fired, and why."""

    condition: PriceAlertCondition
    triggered: bool
    current_price: float | None = None
    message: str = ""


@dataclass(frozen=True)
class AlertEvent:
    """Payload handed to the notification dispatcher."""

    condition: PriceAlertCondition
    price: float
    message: str
    fired_at: datetime = field(default_factory=utc_now)
