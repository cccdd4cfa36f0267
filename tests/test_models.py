# tests/test_models.py

"""Tests for the price, offer and alert data models."""

import unittest
from datetime import datetime, timedelta, timezone

from price_engine.models.alert import AlertKind, PriceAlertCondition
from price_engine.models.offer import ProductOffer
from price_engine.models.price_entry import (
    Availability,
    Condition,
    PriceEntry,
    QuoteSource,
    RawQuote,
    parse_timestamp,
)

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestParseTimestamp(unittest.TestCase):
    """parse_timestamp() always yields aware UTC."""

    def test_z_suffix(self) -> None:
        self.assertEqual(parse_timestamp("2026-06-01T12:00:00Z"), NOW)

    def test_offset_converted_to_utc(self) -> None:
        self.assertEqual(parse_timestamp("2026-06-01T21:00:00+09:00"), NOW)

    def test_naive_assumed_utc(self) -> None:
        self.assertEqual(parse_timestamp(datetime(2026, 6, 1, 12)), NOW)


class TestRawQuote(unittest.TestCase):
    """RawQuote.from_dict() defaults."""

    def test_minimal_mapping(self) -> None:
        quote = RawQuote.from_dict({
            "product_id": "P1", "platform_id": "amazon", "price": "1200",
        })
        self.assertEqual(quote.price, 1200.0)
        self.assertEqual(quote.currency, "JPY")
        self.assertEqual(quote.availability, Availability.IN_STOCK)
        self.assertEqual(quote.condition, Condition.NEW)
        self.assertEqual(quote.source, QuoteSource.API)
        self.assertIsNone(quote.timestamp)

    def test_unknown_enum_value_rejected(self) -> None:
        with self.assertRaises(ValueError):
            RawQuote.from_dict({
                "product_id": "P1",
                "platform_id": "amazon",
                "price": 1,
                "availability": "maybe",
            })


class TestPriceEntry(unittest.TestCase):
    """Entry invariants and serialisation."""

    def test_non_positive_price_rejected(self) -> None:
        with self.assertRaises(ValueError):
            PriceEntry("P1", "amazon", 0, NOW)

    def test_negative_shipping_rejected(self) -> None:
        with self.assertRaises(ValueError):
            PriceEntry("P1", "amazon", 100, NOW, shipping_cost=-1)

    def test_from_quote_uses_normalised_price(self) -> None:
        """The entry keeps the quote's fields but the given price."""
        quote = RawQuote("P1", "rakuten", 1999.6, timestamp=NOW, seller="s")
        entry = PriceEntry.from_quote(quote, price=2000)
        self.assertEqual(entry.price, 2000)
        self.assertEqual(entry.seller, "s")
        self.assertEqual(entry.timestamp, NOW)

    def test_entries_get_distinct_ids(self) -> None:
        a = PriceEntry("P1", "amazon", 100, NOW)
        b = PriceEntry("P1", "amazon", 100, NOW)
        self.assertNotEqual(a.id, b.id)

    def test_dict_round_trip(self) -> None:
        entry = PriceEntry(
            "P1", "amazon", 100, NOW,
            original_price=150,
            availability=Availability.LIMITED_STOCK,
            metadata={"delivery_days": 2},
        )
        self.assertEqual(PriceEntry.from_dict(entry.to_dict()), entry)

    def test_limited_stock_counts_as_in_stock(self) -> None:
        entry = PriceEntry(
            "P1", "amazon", 100, NOW,
            availability=Availability.LIMITED_STOCK,
        )
        self.assertTrue(entry.in_stock)


class TestProductOffer(unittest.TestCase):
    """Offer projection from entries."""

    def _offer(self) -> ProductOffer:
        entry = PriceEntry(
            "P1", "amazon", 9000, NOW,
            original_price=12000,
            shipping_cost=500,
            metadata={
                "delivery_days": "2",
                "seller_rating": 4.5,
                "is_official": True,
            },
        )
        return ProductOffer.from_entry(entry)

    def test_from_entry_reads_metadata(self) -> None:
        offer = self._offer()
        self.assertEqual(offer.platform, "amazon")
        self.assertEqual(offer.estimated_shipping_days, 2)
        self.assertEqual(offer.seller_rating, 4.5)
        self.assertTrue(offer.is_official_seller)

    def test_totals_and_discount(self) -> None:
        offer = self._offer()
        self.assertEqual(offer.total_price(), 9500)
        self.assertEqual(offer.total_price(include_shipping=False), 9000)
        self.assertEqual(offer.discount_percentage, 25)
        self.assertFalse(offer.free_shipping)


class TestPriceAlertCondition(unittest.TestCase):
    """Alert conditions loaded from JSON-like mappings."""

    def test_from_dict(self) -> None:
        cond = PriceAlertCondition.from_dict({
            "id": "A1",
            "user_id": "U1",
            "product_id": "P1",
            "kind": "percentage_drop",
            "percentage": 20,
            "created_at": "2026-05-01T00:00:00Z",
        })
        self.assertEqual(cond.kind, AlertKind.PERCENTAGE_DROP)
        self.assertTrue(cond.is_active)
        self.assertEqual(cond.total_triggers, 0)
        self.assertEqual(cond.created_at, NOW - timedelta(days=31, hours=12))

    def test_unknown_kind_rejected(self) -> None:
        with self.assertRaises(ValueError):
            PriceAlertCondition.from_dict({
                "id": "A1", "user_id": "U1", "product_id": "P1",
                "kind": "whenever",
            })


if __name__ == "__main__":
    unittest.main()
