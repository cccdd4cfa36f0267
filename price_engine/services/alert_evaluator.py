# price_engine/services/alert_evaluator.py

"""Price alert evaluation against the latest stored prices."""

import logging
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime
from typing import Protocol

from price_engine.config.settings import Settings
from price_engine.models.alert import (
    AlertCheckResult,
    AlertEvent,
    AlertKind,
    PriceAlertCondition,
)
from price_engine.models.analysis import HistoricalLow
from price_engine.models.price_entry import PriceEntry, utc_now
from price_engine.services.concurrency import gather_in_chunks
from price_engine.services.price_service import PriceService

logger = logging.getLogger("price_engine.alerts")


class NotificationDispatcher(Protocol):
    """Delivers fired alerts; delivery is entirely its concern."""

    async def dispatch(self, event: AlertEvent) -> None: ...


def format_price(price: float, currency: str = "JPY") -> str:
    if currency == "JPY":
        return f"¥{price:,.0f}"
    return f"{currency} {price:,.2f}"


def check_alert_condition(
    latest_entry: PriceEntry,
    condition: PriceAlertCondition,
    historical_low: HistoricalLow | None = None,
) -> bool:
    """Return True when *condition* fires for *latest_entry*.

    below_target needs a target price, historical_low needs a
    supplied low, and percentage_drop needs both a percentage and a
    list price on the entry; otherwise the condition does not fire.
    """
    price = latest_entry.price
    if condition.kind is AlertKind.BELOW_TARGET:
        return (
            condition.target_price is not None
            and price <= condition.target_price
        )
    if condition.kind is AlertKind.HISTORICAL_LOW:
        return (
            historical_low is not None
            and price <= historical_low.lowest_price
        )
    if condition.kind is AlertKind.PERCENTAGE_DROP:
        original = latest_entry.original_price
        if condition.percentage is None or not original:
            return False
        return (original - price) / original * 100 >= condition.percentage
    return False


def alert_message(
    latest_entry: PriceEntry,
    condition: PriceAlertCondition,
    historical_low: HistoricalLow | None = None,
) -> str:
    """Human-readable reason for a fired condition."""
    currency = latest_entry.currency
    current = format_price(latest_entry.price, currency)
    if condition.kind is AlertKind.BELOW_TARGET and condition.target_price:
        target = format_price(condition.target_price, currency)
        return f"Price dropped to {current}, below your target of {target}"
    if condition.kind is AlertKind.HISTORICAL_LOW and historical_low:
        low = format_price(historical_low.lowest_price, currency)
        return f"Price ({current}) is at or near historical low ({low})"
    if condition.kind is AlertKind.PERCENTAGE_DROP and latest_entry.original_price:
        original = latest_entry.original_price
        drop = (original - latest_entry.price) / original * 100
        return f"Price dropped by {drop:.1f}% to {current}"
    return f"Price alert for {condition.product_id} at {current}"


def mark_triggered(
    condition: PriceAlertCondition,
    price: float,
    at: datetime | None = None,
) -> PriceAlertCondition:
    """Copy of *condition* with its trigger bookkeeping updated."""
    return replace(
        condition,
        triggered_at=at or utc_now(),
        last_triggered_price=price,
        total_triggers=condition.total_triggers + 1,
    )


class AlertEvaluator:
    """Check many alert conditions against the price service."""

    def __init__(
        self,
        price_service: PriceService,
        *,
        lookback_days: int = Settings.DEFAULT_LOOKBACK_DAYS,
        chunk_size: int = Settings.MAX_CONCURRENT_FETCHES,
    ) -> None:
        self.price_service = price_service
        self.lookback_days = lookback_days
        self.chunk_size = chunk_size

    async def _evaluate(
        self, condition: PriceAlertCondition,
    ) -> AlertCheckResult:
        latest = await self.price_service.get_current_entry(
            condition.product_id, condition.platform,
        )
        if latest is None:
            return AlertCheckResult(
                condition=condition,
                triggered=False,
                message="No price data available",
            )

        low = None
        if condition.kind is AlertKind.HISTORICAL_LOW:
            low = await self.price_service.get_historical_low(
                condition.product_id, condition.platform, self.lookback_days,
            )

        triggered = check_alert_condition(latest, condition, low)
        return AlertCheckResult(
            condition=condition,
            triggered=triggered,
            current_price=latest.price,
            message=alert_message(latest, condition, low) if triggered else "",
        )

    async def check_price_alerts(
        self, conditions: Sequence[PriceAlertCondition],
    ) -> list[AlertCheckResult]:
        """Evaluate every active condition; inactive ones are skipped.

        A condition whose evaluation fails is reported as not triggered
        with the error in its message; the others are unaffected.
        """
        active = [c for c in conditions if c.is_active]
        outcome = await gather_in_chunks(
            active, self._evaluate, chunk_size=self.chunk_size,
        )

        results: list[AlertCheckResult] = []
        for condition in active:
            if condition in outcome.results:
                results.append(outcome.results[condition])
                continue
            exc = outcome.errors.get(condition)
            logger.error(
                "Alert %s evaluation failed: %s",
                condition.id,
                exc,
                exc_info=exc,
            )
            results.append(AlertCheckResult(
                condition=condition,
                triggered=False,
                message=f"Evaluation failed: {exc}",
            ))

        fired = sum(1 for r in results if r.triggered)
        logger.info(
            "Checked %d alerts (%d inactive skipped), %d triggered",
            len(active),
            len(conditions) - len(active),
            fired,
        )
        return results


async def dispatch_triggered(
    results: Sequence[AlertCheckResult],
    dispatcher: NotificationDispatcher,
) -> list[PriceAlertCondition]:
    """Send an event per fired result; returns the updated conditions.

    A failed delivery is logged and leaves that condition unmarked.
    """
    updated: list[PriceAlertCondition] = []
    for result in results:
        if not result.triggered or result.current_price is None:
            continue
        event = AlertEvent(
            condition=result.condition,
            price=result.current_price,
            message=result.message,
        )
        try:
            await dispatcher.dispatch(event)
        except Exception as exc:
            logger.error(
                "Dispatch failed for alert %s: %s",
                result.condition.id,
                exc,
                exc_info=True,
            )
            continue
        updated.append(
            mark_triggered(result.condition, event.price, event.fired_at)
        )
    return updated
