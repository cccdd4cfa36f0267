# price_engine/filters/price_validator.py

"""Quote validation: range, currency, discount and formatting checks."""

import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import replace
from decimal import ROUND_HALF_UP, Decimal

from price_engine.config.settings import PlatformRule, Settings
from price_engine.models.price_entry import RawQuote, utc_now
from price_engine.models.validation import (
    ValidationError,
    ValidationResult,
    ValidationWarning,
)

logger = logging.getLogger("price_engine.validator")


def round_half_up(value: float, places: int) -> float:
    """Round like a cash register (0.5 goes up), not banker's rounding."""
    quantum = Decimal(1).scaleb(-places)
    return float(
        Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    )


def decimal_places(value: float) -> int:
    """Count significant decimals in the shortest repr of *value*."""
    exponent = Decimal(str(value)).normalize().as_tuple().exponent
    if not isinstance(exponent, int):
        return 0
    return max(0, -exponent)


def discount_percent(original_price: float, price: float) -> int:
    """Whole-number discount of *price* against *original_price*."""
    return int(round_half_up(
        (original_price - price) / original_price * 100, 0
    ))


class PriceValidator:
    """Validate a single quote against static platform rules.

    Pure over its inputs: the quote, the immutable rule table given at
    construction and, for history-aware checks, the recent prices the
    caller passes in.
    """

    def __init__(
        self,
        platform_rules: Mapping[str, PlatformRule] | None = None,
        *,
        max_price: float = Settings.MAX_ABSOLUTE_PRICE,
        currencies: frozenset[str] = Settings.VALID_CURRENCIES,
        low_price_warning: float = Settings.LOW_PRICE_WARNING,
        mismatch_tolerance: float = Settings.DISCOUNT_MISMATCH_TOLERANCE,
        unrealistic_discount: float = Settings.UNREALISTIC_DISCOUNT_PCT,
        large_change_pct: float = Settings.LARGE_CHANGE_PCT,
        stale_window: int = Settings.STALE_FEED_WINDOW,
        source_confidence: Mapping[str, float] = Settings.SOURCE_CONFIDENCE,
    ) -> None:
        self.platform_rules = (
            Settings.PLATFORM_RULES
            if platform_rules is None
            else platform_rules
        )
        self.max_price = max_price
        self.currencies = currencies
        self.low_price_warning = low_price_warning
        self.mismatch_tolerance = mismatch_tolerance
        self.unrealistic_discount = unrealistic_discount
        self.large_change_pct = large_change_pct
        self.stale_window = stale_window
        self.source_confidence = source_confidence

    # ── Public API ───────────────────────────────────────

    def validate(
        self,
        quote: RawQuote,
        recent_prices: Sequence[float] | None = None,
    ) -> ValidationResult:
        """Validate *quote*; *recent_prices* are oldest-first history."""
        errors: list[ValidationError] = []
        warnings: list[ValidationWarning] = []
        rule = self.platform_rules.get(quote.platform_id)

        self._check_currency(quote, errors)
        if not self._check_finite(quote, errors):
            self._check_basic_price(quote, errors, warnings)
            self._check_shipping(quote, errors)
            if rule is not None:
                self._check_platform_band(quote, rule, warnings)
                self._check_formatting(quote, rule, warnings)
            if recent_prices:
                self._check_history(quote, recent_prices, warnings)
            self._check_discount(quote, errors, warnings)

        normalized = quote.price
        if not errors and rule is not None:
            normalized = round_half_up(quote.price, rule.decimal_places)

        confidence = 1.0 - 0.3 * len(errors) - 0.1 * len(warnings)
        confidence += self.source_confidence.get(quote.source.value, 0.0)
        confidence = max(0.0, min(1.0, confidence))

        if errors:
            logger.info(
                "Quote %s@%s invalid: %s",
                quote.product_id,
                quote.platform_id,
                ", ".join(e.code for e in errors),
            )
        elif warnings:
            logger.debug(
                "Quote %s@%s accepted with warnings: %s",
                quote.product_id,
                quote.platform_id,
                ", ".join(w.code for w in warnings),
            )

        return ValidationResult(
            is_valid=not errors,
            normalized_price=normalized,
            confidence=confidence,
            errors=errors,
            warnings=warnings,
        )

    def validate_batch(
        self, quotes: Sequence[RawQuote],
    ) -> list[ValidationResult]:
        """Validate each quote independently (no shared history)."""
        return [self.validate(q) for q in quotes]

    @staticmethod
    def clean_quote(quote: RawQuote) -> RawQuote:
        """Strip float noise and recompute the discount field.

        Prices are rounded to two decimals, the discount is recomputed
        when the original price is above the current one, and a missing
        timestamp is filled with the current time.
        """
        price = round_half_up(quote.price, 2)
        original = (
            round_half_up(quote.original_price, 2)
            if quote.original_price
            else quote.original_price
        )
        discount = quote.discount_percentage
        if original and original > price:
            discount = float(discount_percent(original, price))
        return replace(
            quote,
            price=price,
            original_price=original,
            discount_percentage=discount,
            timestamp=quote.timestamp or utc_now(),
        )

    # ── Checks ───────────────────────────────────────────

    @staticmethod
    def _check_finite(
        quote: RawQuote, errors: list[ValidationError],
    ) -> bool:
        """Flag NaN/infinite amounts; True when any was found."""
        amounts = {
            "price": quote.price,
            "original_price": quote.original_price,
            "shipping_cost": quote.shipping_cost,
        }
        found = False
        for name, value in amounts.items():
            if value is not None and not math.isfinite(value):
                errors.append(ValidationError(
                    "NON_FINITE_VALUE",
                    f"{name} must be a finite number, got {value}",
                    name,
                ))
                found = True
        return found

    @staticmethod
    def _check_shipping(
        quote: RawQuote, errors: list[ValidationError],
    ) -> None:
        if quote.shipping_cost < 0:
            errors.append(ValidationError(
                "INVALID_SHIPPING_COST",
                "Shipping cost cannot be negative",
                "shipping_cost",
            ))

    def _check_basic_price(
        self,
        quote: RawQuote,
        errors: list[ValidationError],
        warnings: list[ValidationWarning],
    ) -> None:
        if quote.price <= 0:
            errors.append(ValidationError(
                "INVALID_PRICE", "Price must be greater than 0", "price",
            ))
        if quote.price > self.max_price:
            errors.append(ValidationError(
                "PRICE_TOO_HIGH",
                "Price exceeds maximum allowed value",
                "price",
            ))
        if 0 < quote.price < self.low_price_warning:
            warnings.append(ValidationWarning(
                "VERY_LOW_PRICE",
                "Price is unusually low, please verify",
                "Check for missing decimal or currency conversion",
            ))

    def _check_currency(
        self, quote: RawQuote, errors: list[ValidationError],
    ) -> None:
        if quote.currency not in self.currencies:
            errors.append(ValidationError(
                "INVALID_CURRENCY",
                f"Invalid currency: {quote.currency}",
                "currency",
            ))

    @staticmethod
    def _check_platform_band(
        quote: RawQuote,
        rule: PlatformRule,
        warnings: list[ValidationWarning],
    ) -> None:
        if quote.price < rule.min_price:
            warnings.append(ValidationWarning(
                "BELOW_MIN_PRICE",
                f"Price is below platform minimum of "
                f"{rule.min_price} {quote.currency}",
                "Verify price accuracy and platform fees",
            ))
        if quote.price > rule.max_price:
            warnings.append(ValidationWarning(
                "ABOVE_MAX_PRICE",
                f"Price is above platform maximum of "
                f"{rule.max_price} {quote.currency}",
                "Check for luxury goods or price errors",
            ))

    @staticmethod
    def _check_formatting(
        quote: RawQuote,
        rule: PlatformRule,
        warnings: list[ValidationWarning],
    ) -> None:
        if not rule.allow_fractions and quote.price % 1 != 0:
            warnings.append(ValidationWarning(
                "FRACTIONAL_PRICE",
                "Platform typically uses whole number prices",
                "Verify price accuracy for this platform",
            ))
        if decimal_places(quote.price) > rule.decimal_places:
            warnings.append(ValidationWarning(
                "EXCESS_DECIMALS",
                f"Price has more than {rule.decimal_places} "
                f"decimal places",
                "Round price to appropriate precision",
            ))

    def _check_history(
        self,
        quote: RawQuote,
        recent_prices: Sequence[float],
        warnings: list[ValidationWarning],
    ) -> None:
        window = list(recent_prices)[-self.stale_window:]
        average = sum(window) / len(window)
        if average > 0:
            change = abs(quote.price - average) / average * 100
            if change > self.large_change_pct:
                warnings.append(ValidationWarning(
                    "LARGE_PRICE_CHANGE",
                    f"Price changed by {change:.1f}% compared to "
                    f"recent data",
                    "Verify sale, discount, or price error",
                ))
        if (
            len(window) >= self.stale_window
            and all(p == quote.price for p in window)
        ):
            warnings.append(ValidationWarning(
                "STALE_PRICE",
                "Price unchanged for recent entries",
                "Verify if price data is being updated regularly",
            ))

    def _check_discount(
        self,
        quote: RawQuote,
        errors: list[ValidationError],
        warnings: list[ValidationWarning],
    ) -> None:
        original = quote.original_price
        if original is None:
            return
        if original <= quote.price:
            errors.append(ValidationError(
                "INVALID_ORIGINAL_PRICE",
                "Original price must be greater than current price",
                "original_price",
            ))
        if original <= 0:
            return

        calculated = discount_percent(original, quote.price)
        supplied = quote.discount_percentage
        if (
            supplied is not None
            and abs(supplied - calculated) > self.mismatch_tolerance
        ):
            warnings.append(ValidationWarning(
                "DISCOUNT_MISMATCH",
                f"Discount percentage ({supplied:g}%) doesn't match "
                f"calculated ({calculated}%)",
                "Update discount percentage for accuracy",
            ))
        if calculated > self.unrealistic_discount:
            warnings.append(ValidationWarning(
                "UNREALISTIC_DISCOUNT",
                "Discount percentage seems unusually high",
                "Verify original price accuracy",
            ))
