# tests/test_price_validator.py

"""Tests for PriceValidator checks, normalisation and confidence."""

import unittest

from price_engine.filters.price_validator import (
    PriceValidator,
    decimal_places,
    round_half_up,
)
from price_engine.models.price_entry import QuoteSource, RawQuote


def _quote(price: float, platform: str = "rakuten", **kwargs: object) -> RawQuote:
    """Build a quote for product P1 on *platform*."""
    return RawQuote(
        product_id="P1", platform_id=platform, price=price, **kwargs,  # type: ignore[arg-type]
    )


class TestHardErrors(unittest.TestCase):
    """Errors make the quote invalid."""

    def setUp(self) -> None:
        self.validator = PriceValidator()

    def test_negative_price_invalid(self) -> None:
        """A price of -5 is rejected with INVALID_PRICE."""
        result = self.validator.validate(_quote(-5))
        self.assertFalse(result.is_valid)
        self.assertTrue(result.has_error("INVALID_PRICE"))

    def test_zero_price_invalid(self) -> None:
        """Zero is not a price."""
        self.assertFalse(self.validator.validate(_quote(0)).is_valid)

    def test_original_below_current_invalid(self) -> None:
        """An original price of 4000 against 5000 is rejected."""
        result = self.validator.validate(_quote(5000, original_price=4000))
        self.assertFalse(result.is_valid)
        self.assertTrue(result.has_error("INVALID_ORIGINAL_PRICE"))

    def test_original_equal_current_invalid(self) -> None:
        """The original price must be strictly greater."""
        result = self.validator.validate(_quote(5000, original_price=5000))
        self.assertTrue(result.has_error("INVALID_ORIGINAL_PRICE"))

    def test_price_above_ceiling_invalid(self) -> None:
        """Prices above 999,999,999 are rejected."""
        result = self.validator.validate(_quote(1_000_000_000, "shop"))
        self.assertFalse(result.is_valid)
        self.assertTrue(result.has_error("PRICE_TOO_HIGH"))

    def test_unknown_currency_invalid(self) -> None:
        """Currencies outside the allowed set are rejected."""
        result = self.validator.validate(_quote(1000, currency="XYZ"))
        self.assertFalse(result.is_valid)
        self.assertTrue(result.has_error("INVALID_CURRENCY"))

    def test_negative_shipping_invalid(self) -> None:
        """A shipping cost of -5 is rejected with INVALID_SHIPPING_COST."""
        result = self.validator.validate(_quote(1000, shipping_cost=-5.0))
        self.assertFalse(result.is_valid)
        self.assertTrue(result.has_error("INVALID_SHIPPING_COST"))

    def test_nan_price_invalid(self) -> None:
        """NaN is not a price even though it fails no range comparison."""
        result = self.validator.validate(_quote(float("nan"), "amazon"))
        self.assertFalse(result.is_valid)
        self.assertTrue(result.has_error("NON_FINITE_VALUE"))

    def test_infinite_original_price_invalid(self) -> None:
        """An infinite list price is reported, not raised."""
        result = self.validator.validate(
            _quote(1000, original_price=float("inf")),
        )
        self.assertFalse(result.is_valid)
        self.assertEqual(
            [e.field for e in result.errors], ["original_price"],
        )

    def test_infinite_shipping_invalid(self) -> None:
        """Shipping must be finite too."""
        result = self.validator.validate(
            _quote(1000, shipping_cost=float("inf")),
        )
        self.assertTrue(result.has_error("NON_FINITE_VALUE"))

    def test_invalid_quote_not_normalised(self) -> None:
        """Normalisation is skipped when there are errors."""
        result = self.validator.validate(_quote(-5.555))
        self.assertEqual(result.normalized_price, -5.555)


class TestSoftWarnings(unittest.TestCase):
    """Warnings keep the quote valid."""

    def setUp(self) -> None:
        self.validator = PriceValidator()

    def test_fractional_price_on_whole_number_platform(self) -> None:
        """1999.999 on rakuten warns and normalises to 2000."""
        result = self.validator.validate(_quote(1999.999))
        self.assertTrue(result.is_valid)
        self.assertTrue(result.has_warning("FRACTIONAL_PRICE"))
        self.assertTrue(result.has_warning("EXCESS_DECIMALS"))
        self.assertEqual(result.normalized_price, 2000.0)

    def test_amazon_keeps_two_decimals(self) -> None:
        """Amazon allows fractions and rounds to 2 decimals."""
        result = self.validator.validate(_quote(1234.565, "amazon"))
        self.assertFalse(result.has_warning("FRACTIONAL_PRICE"))
        self.assertTrue(result.has_warning("EXCESS_DECIMALS"))
        self.assertEqual(result.normalized_price, 1234.57)

    def test_very_low_price(self) -> None:
        """Prices below 1 suggest a unit error."""
        result = self.validator.validate(_quote(0.5, "amazon"))
        self.assertTrue(result.is_valid)
        self.assertTrue(result.has_warning("VERY_LOW_PRICE"))
        self.assertTrue(result.has_warning("BELOW_MIN_PRICE"))

    def test_above_platform_band(self) -> None:
        """Mercari caps at 500,000."""
        result = self.validator.validate(_quote(600_000, "mercari"))
        self.assertTrue(result.is_valid)
        self.assertTrue(result.has_warning("ABOVE_MAX_PRICE"))

    def test_unknown_platform_skips_rules(self) -> None:
        """No platform rule means no band/formatting warnings."""
        result = self.validator.validate(_quote(1999.999, "shop"))
        self.assertEqual(result.warnings, [])
        self.assertEqual(result.normalized_price, 1999.999)

    def test_discount_mismatch(self) -> None:
        """Supplied 5% vs calculated 20% is flagged."""
        result = self.validator.validate(_quote(
            8000, original_price=10000, discount_percentage=5,
        ))
        self.assertTrue(result.is_valid)
        self.assertTrue(result.has_warning("DISCOUNT_MISMATCH"))

    def test_discount_within_tolerance(self) -> None:
        """A 3-point gap is within the 5-point tolerance."""
        result = self.validator.validate(_quote(
            8000, original_price=10000, discount_percentage=17,
        ))
        self.assertFalse(result.has_warning("DISCOUNT_MISMATCH"))

    def test_unrealistic_discount(self) -> None:
        """A 95% discount is suspicious."""
        result = self.validator.validate(_quote(500, original_price=10000))
        self.assertTrue(result.has_warning("UNREALISTIC_DISCOUNT"))

    def test_unrealistic_threshold_configurable(self) -> None:
        """The unrealistic-discount threshold is a constructor parameter."""
        validator = PriceValidator(unrealistic_discount=99)
        result = validator.validate(_quote(500, original_price=10000))
        self.assertFalse(result.has_warning("UNREALISTIC_DISCOUNT"))

    def test_stale_price(self) -> None:
        """Five identical recent prices equal to the quote are stale."""
        result = self.validator.validate(_quote(1000), [1000] * 5)
        self.assertTrue(result.has_warning("STALE_PRICE"))

    def test_short_history_not_stale(self) -> None:
        """Fewer than five prices cannot be called stale."""
        result = self.validator.validate(_quote(1000), [1000] * 4)
        self.assertFalse(result.has_warning("STALE_PRICE"))

    def test_large_price_change(self) -> None:
        """Doubling against the recent average warns."""
        result = self.validator.validate(_quote(2000), [1000, 1000, 1000])
        self.assertTrue(result.has_warning("LARGE_PRICE_CHANGE"))

    def test_small_change_no_warning(self) -> None:
        """A 10% move is ordinary."""
        result = self.validator.validate(_quote(1100), [1000, 1000, 1000])
        self.assertFalse(result.has_warning("LARGE_PRICE_CHANGE"))


class TestConfidence(unittest.TestCase):
    """Confidence starts at 1, is penalised, adjusted and clamped."""

    def setUp(self) -> None:
        self.validator = PriceValidator()

    def test_clean_api_quote_clamped_to_one(self) -> None:
        """1.0 + 0.1 for api is clamped to 1.0."""
        result = self.validator.validate(_quote(1000))
        self.assertEqual(result.confidence, 1.0)

    def test_clean_scrape_quote(self) -> None:
        """1.0 - 0.1 (scrape) = 0.9."""
        result = self.validator.validate(
            _quote(1000, source=QuoteSource.SCRAPE),
        )
        self.assertAlmostEqual(result.confidence, 0.9)

    def test_scrape_with_one_warning(self) -> None:
        """1.0 - 0.1 (warning) - 0.1 (scrape) = 0.8."""
        result = self.validator.validate(
            _quote(1000, source=QuoteSource.SCRAPE), [1000] * 5,
        )
        self.assertEqual(len(result.warnings), 1)
        self.assertAlmostEqual(result.confidence, 0.8)

    def test_manual_with_error(self) -> None:
        """1.0 - 0.3 (error) - 0.2 (manual) = 0.5."""
        result = self.validator.validate(
            _quote(1000, currency="XYZ", source=QuoteSource.MANUAL),
        )
        self.assertAlmostEqual(result.confidence, 0.5)

    def test_never_below_zero(self) -> None:
        """Many problems clamp at 0."""
        result = self.validator.validate(_quote(
            -1, "shop", currency="XYZ", original_price=-5,
            source=QuoteSource.MANUAL,
        ))
        self.assertEqual(result.confidence, 0.0)


class TestHelpers(unittest.TestCase):
    """Rounding, cleaning and batch helpers."""

    def test_round_half_up(self) -> None:
        """0.5 rounds away from zero, unlike round()."""
        self.assertEqual(round_half_up(2.5, 0), 3.0)
        self.assertEqual(round_half_up(1.005, 2), 1.01)

    def test_decimal_places(self) -> None:
        """Trailing zeros are not counted."""
        self.assertEqual(decimal_places(1999.999), 3)
        self.assertEqual(decimal_places(2000.0), 0)
        self.assertEqual(decimal_places(12.50), 1)

    def test_clean_quote(self) -> None:
        """Prices are rounded and the discount recomputed."""
        cleaned = PriceValidator.clean_quote(_quote(
            1234.5678, "amazon", original_price=2000.004,
            discount_percentage=99,
        ))
        self.assertEqual(cleaned.price, 1234.57)
        self.assertEqual(cleaned.original_price, 2000.0)
        self.assertEqual(cleaned.discount_percentage, 38.0)
        self.assertIsNotNone(cleaned.timestamp)

    def test_validate_batch(self) -> None:
        """Each quote gets its own result, in order."""
        results = PriceValidator().validate_batch(
            [_quote(100), _quote(-1), _quote(200)],
        )
        self.assertEqual(
            [r.is_valid for r in results], [True, False, True],
        )


if __name__ == "__main__":
    unittest.main()
