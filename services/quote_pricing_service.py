"""
Quote Pricing Service - price a quote row and check its stored amounts

This module is what the quote API calls on save and what replaces the old
one-off verification scripts:
- price_quote: quote row -> breakdown, amounts snapshot, additionalCostsData
- check_stored_amounts: recompute and compare with the amounts on the row

Rate resolution: explicit rates > quote's own marginPercentage > settings.
VAT always comes from explicit rates or settings.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from calculation_models import OperationalCostInputs, PriceBreakdown, PricingRates, QuoteAmounts
from calculation_engine import compute_breakdown, round_breakdown
from calculation_mapper import (
    get_value,
    map_quote_to_cost_inputs,
    map_breakdown_to_amounts,
    map_breakdown_to_quote_fields,
    percent_to_rate,
    read_stored_amounts,
    serialize_additional_costs,
)
from .pricing_settings import get_pricing_rates

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = Decimal("0.01")


@dataclass
class QuotePricingResult:
    """Result of a price_quote operation."""
    quote_id: Optional[str]
    inputs: OperationalCostInputs
    breakdown: PriceBreakdown        # exact
    rounded: PriceBreakdown          # 2 dp, for display
    amounts: QuoteAmounts            # 2 dp, for the amounts table
    additional_costs_data: str       # JSON for additionalCostsData
    quote_fields: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AmountsCheckResult:
    """Result of a check_stored_amounts operation."""
    quote_id: Optional[str]
    matches: bool
    expected: QuoteAmounts
    stored: Optional[QuoteAmounts] = None
    mismatches: Dict[str, Decimal] = field(default_factory=dict)  # field -> stored - expected


def resolve_rates(quote: Any, rates: Optional[PricingRates] = None) -> PricingRates:
    """
    Rates to price this quote with.

    Args:
        quote: Quote row (dict or object)
        rates: Explicit rates, override everything

    Returns:
        PricingRates
    """
    if rates is not None:
        return rates

    settings = get_pricing_rates()
    margin_rate = percent_to_rate(get_value("margin_percentage", quote), default=settings.margin_rate)

    return PricingRates(margin_rate=margin_rate, vat_rate=settings.vat_rate)


def price_quote(quote: Any, rates: Optional[PricingRates] = None) -> QuotePricingResult:
    """
    Price a quote row.

    Args:
        quote: Quote row with paperCost, platesCost (or plates/costPerPlate),
            finishingCost, additionalCostsData and optional marginPercentage
        rates: Explicit rates (optional)

    Returns:
        QuotePricingResult with exact and rounded breakdowns

    Raises:
        InvalidInput: negative cost on the row
        InvalidConfiguration: margin/VAT outside [0, 1]
    """
    quote_id = get_value("quote_id", quote)
    resolved = resolve_rates(quote, rates)
    inputs = map_quote_to_cost_inputs(quote)

    breakdown = compute_breakdown(inputs, resolved.margin_rate, resolved.vat_rate)
    amounts = map_breakdown_to_amounts(breakdown)

    logger.info(
        f"Priced quote {quote_id}: base {amounts.base}, "
        f"margin {resolved.margin_rate}, vat {amounts.vat}, total {amounts.total}"
    )

    return QuotePricingResult(
        quote_id=quote_id,
        inputs=inputs,
        breakdown=breakdown,
        rounded=round_breakdown(breakdown),
        amounts=amounts,
        additional_costs_data=serialize_additional_costs(inputs.additional_costs),
        quote_fields=map_breakdown_to_quote_fields(breakdown),
    )


def check_stored_amounts(
    quote: Any,
    rates: Optional[PricingRates] = None,
    tolerance: Decimal = AMOUNT_TOLERANCE
) -> AmountsCheckResult:
    """
    Recompute a quote and compare with the amounts stored on it.

    A field mismatches when |stored - expected| >= tolerance. A quote with
    no stored amounts never matches.

    Args:
        quote: Quote row including 'amounts' (object or one-element list)
        rates: Explicit rates (optional)
        tolerance: Allowed difference per field (default 0.01)

    Returns:
        AmountsCheckResult
    """
    result = price_quote(quote, rates)
    expected = result.amounts
    stored = read_stored_amounts(quote)

    if stored is None:
        logger.warning(f"Quote {result.quote_id} has no stored amounts")
        return AmountsCheckResult(quote_id=result.quote_id, matches=False, expected=expected)

    mismatches = {}
    for name in ("base", "vat", "total"):
        difference = getattr(stored, name) - getattr(expected, name)
        if abs(difference) >= tolerance:
            mismatches[name] = difference

    if mismatches:
        details: List[str] = [f"{name} off by {diff}" for name, diff in mismatches.items()]
        logger.warning(f"Quote {result.quote_id} stored amounts differ: {', '.join(details)}")

    return AmountsCheckResult(
        quote_id=result.quote_id,
        matches=not mismatches,
        expected=expected,
        stored=stored,
        mismatches=mismatches,
    )
