# tests/test_alert_evaluator.py

"""Tests for alert predicates, batch evaluation and dispatch."""

import unittest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from price_engine.models.alert import (
    AlertCheckResult,
    AlertEvent,
    AlertKind,
    PriceAlertCondition,
)
from price_engine.models.analysis import HistoricalLow
from price_engine.models.price_entry import PriceEntry
from price_engine.services.alert_evaluator import (
    AlertEvaluator,
    check_alert_condition,
    dispatch_triggered,
    format_price,
    mark_triggered,
)

NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)


def _entry(price: float, original: float | None = None) -> PriceEntry:
    return PriceEntry(
        product_id="P1",
        platform_id="rakuten",
        price=price,
        timestamp=NOW,
        original_price=original,
    )


def _condition(
    kind: AlertKind,
    alert_id: str = "A1",
    product_id: str = "P1",
    **kwargs: object,
) -> PriceAlertCondition:
    return PriceAlertCondition(
        id=alert_id,
        user_id="U1",
        product_id=product_id,
        kind=kind,
        created_at=NOW,
        **kwargs,  # type: ignore[arg-type]
    )


def _low(price: float) -> HistoricalLow:
    return HistoricalLow(
        product_id="P1",
        platform="all",
        lowest_price=price,
        price_date=NOW,
        days_since_low=0,
        current_price=price,
        is_current_low=True,
        average_price=price,
        typical_min=price,
        typical_max=price,
    )


class TestCheckAlertCondition(unittest.TestCase):
    """The pure firing predicate."""

    def test_below_target_fires_at_or_below(self) -> None:
        """Price equal to the target fires."""
        cond = _condition(AlertKind.BELOW_TARGET, target_price=1000)
        self.assertTrue(check_alert_condition(_entry(1000), cond))
        self.assertFalse(check_alert_condition(_entry(1001), cond))

    def test_below_target_without_target(self) -> None:
        """No target price never fires."""
        cond = _condition(AlertKind.BELOW_TARGET)
        self.assertFalse(check_alert_condition(_entry(1), cond))

    def test_historical_low(self) -> None:
        """Fires at or under the supplied low; never without one."""
        cond = _condition(AlertKind.HISTORICAL_LOW)
        self.assertTrue(check_alert_condition(_entry(5000), cond, _low(5000)))
        self.assertFalse(check_alert_condition(_entry(5001), cond, _low(5000)))
        self.assertFalse(check_alert_condition(_entry(1), cond))

    def test_percentage_drop_fires(self) -> None:
        """9500 against a 12000 list price is a 20.83% drop."""
        cond = _condition(AlertKind.PERCENTAGE_DROP, percentage=20)
        self.assertTrue(check_alert_condition(_entry(9500, 12000), cond))

    def test_percentage_drop_below_threshold(self) -> None:
        """A 16.67% drop does not meet 20%."""
        cond = _condition(AlertKind.PERCENTAGE_DROP, percentage=20)
        self.assertFalse(check_alert_condition(_entry(10000, 12000), cond))

    def test_percentage_drop_needs_list_price(self) -> None:
        """Without an original price there is nothing to compare."""
        cond = _condition(AlertKind.PERCENTAGE_DROP, percentage=20)
        self.assertFalse(check_alert_condition(_entry(9500), cond))


class TestHelpers(unittest.TestCase):
    """Formatting and trigger bookkeeping."""

    def test_format_price(self) -> None:
        """Yen has no decimals, other currencies two."""
        self.assertEqual(format_price(12000), "¥12,000")
        self.assertEqual(format_price(19.5, "USD"), "USD 19.50")

    def test_mark_triggered_returns_updated_copy(self) -> None:
        """The original condition is untouched."""
        cond = _condition(AlertKind.BELOW_TARGET, target_price=1000)
        fired = mark_triggered(cond, 950, NOW)
        self.assertEqual(fired.total_triggers, 1)
        self.assertEqual(fired.last_triggered_price, 950)
        self.assertEqual(fired.triggered_at, NOW)
        self.assertEqual(cond.total_triggers, 0)
        self.assertIsNone(cond.triggered_at)


class TestAlertEvaluator(unittest.IsolatedAsyncioTestCase):
    """Batch evaluation against a stubbed price service."""

    def setUp(self) -> None:
        self.service = MagicMock()
        self.prices = {"P1": _entry(9500, 12000), "P2": _entry(3000)}

        async def current(product_id: str, platform: str | None = None):
            if product_id == "boom":
                raise RuntimeError("store exploded")
            return self.prices.get(product_id)

        self.service.get_current_entry = AsyncMock(side_effect=current)
        self.service.get_historical_low = AsyncMock(return_value=_low(2500))
        self.evaluator = AlertEvaluator(self.service)

    async def test_inactive_conditions_skipped(self) -> None:
        """Only active conditions are evaluated."""
        results = await self.evaluator.check_price_alerts([
            _condition(AlertKind.BELOW_TARGET, "A1", target_price=10000),
            _condition(
                AlertKind.BELOW_TARGET, "A2", target_price=10000,
                is_active=False,
            ),
        ])
        self.assertEqual([r.condition.id for r in results], ["A1"])
        self.assertTrue(results[0].triggered)
        self.assertEqual(
            results[0].message,
            "Price dropped to ¥9,500, below your target of ¥10,000",
        )

    async def test_percentage_drop_message(self) -> None:
        """Fired drop alerts explain the size of the drop."""
        results = await self.evaluator.check_price_alerts([
            _condition(AlertKind.PERCENTAGE_DROP, percentage=20),
        ])
        self.assertTrue(results[0].triggered)
        self.assertEqual(
            results[0].message, "Price dropped by 20.8% to ¥9,500",
        )
        self.assertEqual(results[0].current_price, 9500)

    async def test_historical_low_uses_service_low(self) -> None:
        """historical_low alerts fetch the lookback low."""
        results = await self.evaluator.check_price_alerts([
            _condition(AlertKind.HISTORICAL_LOW, product_id="P2"),
        ])
        self.assertFalse(results[0].triggered)
        self.service.get_historical_low.assert_awaited_once_with("P2", None, 90)

    async def test_missing_price_data(self) -> None:
        """No entry means not triggered, with a reason."""
        results = await self.evaluator.check_price_alerts([
            _condition(AlertKind.BELOW_TARGET, product_id="none", target_price=1),
        ])
        self.assertFalse(results[0].triggered)
        self.assertEqual(results[0].message, "No price data available")

    async def test_evaluation_errors_isolated(self) -> None:
        """A failing condition does not hide the others."""
        results = await self.evaluator.check_price_alerts([
            _condition(AlertKind.BELOW_TARGET, "A1", "boom", target_price=1),
            _condition(AlertKind.BELOW_TARGET, "A2", "P1", target_price=10000),
        ])
        self.assertEqual(len(results), 2)
        self.assertFalse(results[0].triggered)
        self.assertIn("store exploded", results[0].message)
        self.assertTrue(results[1].triggered)


class TestDispatchTriggered(unittest.IsolatedAsyncioTestCase):
    """dispatch_triggered() hands events to the dispatcher."""

    async def test_only_fired_results_dispatched(self) -> None:
        """Failed deliveries are logged and left unmarked."""
        good = _condition(AlertKind.BELOW_TARGET, "good", target_price=1000)
        bad = _condition(AlertKind.BELOW_TARGET, "bad", target_price=1000)
        quiet = _condition(AlertKind.BELOW_TARGET, "quiet", target_price=1)
        sent: list[AlertEvent] = []

        class Dispatcher:
            async def dispatch(self, event: AlertEvent) -> None:
                if event.condition.id == "bad":
                    raise ConnectionError("smtp down")
                sent.append(event)

        updated = await dispatch_triggered(
            [
                AlertCheckResult(good, True, 900, "fired"),
                AlertCheckResult(bad, True, 900, "fired"),
                AlertCheckResult(quiet, False, 900, ""),
            ],
            Dispatcher(),
        )
        self.assertEqual([e.condition.id for e in sent], ["good"])
        self.assertEqual(sent[0].price, 900)
        self.assertEqual([c.id for c in updated], ["good"])
        self.assertEqual(updated[0].total_triggers, 1)


if __name__ == "__main__":
    unittest.main()
