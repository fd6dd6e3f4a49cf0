"""
Quote Calculation Mapping Module

This module handles:
- Reading cost fields from a quote row (top level > operational block > fallback)
- Parsing/serializing the persisted additionalCostsData JSON column
- Flattening a PriceBreakdown into the fields stored on the quote

Quote rows come from the admin app as camelCase dicts (Prisma naming); a few
older rows use snake_case or the operational block's short names, so every
field is looked up through QUOTE_FIELD_ALIASES.
"""

from typing import Dict, Any, Optional, List
from decimal import Decimal, InvalidOperation
import json
import logging

from calculation_models import (
    CostLineItem,
    OperationalCostInputs,
    PriceBreakdown,
    QuoteAmounts,
)
from calculation_engine import round_decimal, breakdown_to_amounts

# Setup logger
logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


# ============================================================================
# SAFE CONVERSION UTILITIES
# ============================================================================

def safe_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Safely convert value to Decimal"""
    if value is None or value == "":
        return default
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default
    # NaN / Infinity are not amounts
    return result if result.is_finite() else default


def safe_str(value: Any, default: str = "") -> str:
    """Safely convert value to string"""
    if value is None or value == "":
        return default
    return str(value)


def safe_int(value: Any, default: int = 0) -> int:
    """Safely convert value to int"""
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def percent_to_rate(percent: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """30 -> 0.30. Quote rows store marginPercentage as a percent."""
    if percent is None or percent == "":
        return default
    value = safe_decimal(percent, default=None)
    if value is None:
        return default
    return value / HUNDRED


def rate_to_percent(rate: Decimal) -> Decimal:
    """0.30 -> 30"""
    return round_decimal(rate * HUNDRED)


# ============================================================================
# FIELD NAME NORMALIZATION
# ============================================================================

# Canonical field -> names seen in quote rows, in lookup order
QUOTE_FIELD_ALIASES = {
    "paper_cost": ("paperCost", "paper_cost"),
    "plates_cost": ("platesCost", "plates_cost"),
    "plate_count": ("plates", "plateCount", "plate_count"),
    "cost_per_plate": ("costPerPlate", "cost_per_plate"),
    "finishing_cost": ("finishingCost", "finishing_cost", "finishing"),
    "additional_costs": ("additionalCostsData", "additionalCosts", "additional_costs"),
    "margin_percentage": ("marginPercentage", "margin_percentage"),
    "amounts": ("amounts",),
    "quote_id": ("quoteId", "id"),
}


def _field(source: Any, name: str) -> Any:
    """Dict rows (API) and object rows (ORM) alike"""
    return source.get(name) if isinstance(source, dict) else getattr(source, name, None)


def _lookup(source: Any, names: tuple) -> Any:
    if not source:
        return None
    for name in names:
        value = _field(source, name)
        if value is not None and value != "":
            return value
    return None


def get_value(field_name: str, quote: Any, operational: Any = None, default: Any = None) -> Any:
    """
    Get value using two-tier logic: quote row > operational block > fallback default

    Args:
        field_name: Canonical field name (key of QUOTE_FIELD_ALIASES)
        quote: Quote row (dict or object)
        operational: Operational data block (QuoteOperational), optional
        default: Fallback default if not found anywhere

    Returns:
        Value from quote row, operational block, or fallback (in that order)
    """
    names = QUOTE_FIELD_ALIASES.get(field_name, (field_name,))

    quote_value = _lookup(quote, names)
    if quote_value is not None:
        return quote_value

    operational_value = _lookup(operational, names)
    if operational_value is not None:
        return operational_value

    return default


# ============================================================================
# ADDITIONAL COSTS (additionalCostsData column)
# ============================================================================

def parse_additional_costs(raw: Any) -> List[CostLineItem]:
    """
    Parse additional costs from the persisted column.

    Accepts the JSON string stored in additionalCostsData or an already
    decoded list. Entries carry the amount as 'cost' (stored rows) or
    'amount'. Unreadable JSON means no additional costs; unreadable entries
    are skipped. Negative amounts are kept so the engine rejects them.

    Args:
        raw: JSON string, list of dicts/CostLineItem, or None

    Returns:
        List of CostLineItem in stored order
    """
    if raw is None or raw == "":
        return []

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Could not parse additionalCostsData, ignoring: {e}")
            return []

    if not isinstance(raw, list):
        logger.warning(f"additionalCostsData is not a list ({type(raw).__name__}), ignoring")
        return []

    items = []
    for index, entry in enumerate(raw):
        if isinstance(entry, CostLineItem):
            items.append(entry)
            continue

        if not isinstance(entry, dict):
            logger.warning(f"Skipping additional cost #{index + 1}: not an object")
            continue

        raw_amount = entry.get("cost")
        if raw_amount is None or raw_amount == "":
            raw_amount = entry.get("amount")
        amount = safe_decimal(raw_amount, default=None)
        if amount is None and raw_amount not in (None, ""):
            logger.warning(f"Skipping additional cost #{index + 1}: amount {raw_amount!r} is not a number")
            continue

        items.append(CostLineItem(
            id=safe_str(entry.get("id")) or None,
            description=safe_str(entry.get("description")),
            amount=amount if amount is not None else Decimal("0"),
            comment=safe_str(entry.get("comment")) or None,
        ))

    return items


def serialize_additional_costs(items: List[CostLineItem]) -> str:
    """Additional costs as stored in additionalCostsData (amounts at 2 dp)"""
    return json.dumps([
        {
            "id": item.id,
            "description": item.description,
            "cost": float(round_decimal(item.amount)),
            "comment": item.comment,
        }
        for item in items
    ])


# ============================================================================
# MAIN MAPPING FUNCTIONS
# ============================================================================

def map_quote_to_cost_inputs(quote: Any, operational: Any = None) -> OperationalCostInputs:
    """
    Transform a quote row into OperationalCostInputs.

    Plates cost falls back to plates x costPerPlate when the row has no
    platesCost of its own.

    Args:
        quote: Quote row (dict or object)
        operational: Operational block; defaults to quote['QuoteOperational']

    Returns:
        OperationalCostInputs for compute_breakdown()
    """
    if operational is None and isinstance(quote, dict):
        operational = quote.get("QuoteOperational") or quote.get("operational")

    plates_cost = get_value("plates_cost", quote, operational)
    if plates_cost is None:
        plate_count = safe_int(get_value("plate_count", quote, operational), 0)
        cost_per_plate = safe_decimal(get_value("cost_per_plate", quote, operational), Decimal("0"))
        plates_cost = Decimal(plate_count) * cost_per_plate

    return OperationalCostInputs(
        paper_cost=safe_decimal(get_value("paper_cost", quote, operational), Decimal("0")),
        plates_cost=safe_decimal(plates_cost, Decimal("0")),
        finishing_cost=safe_decimal(get_value("finishing_cost", quote, operational), Decimal("0")),
        additional_costs=parse_additional_costs(get_value("additional_costs", quote, operational)),
    )


def map_breakdown_to_amounts(breakdown: PriceBreakdown) -> QuoteAmounts:
    """Snapshot for the amounts table (base incl. additional costs, vat, total)"""
    return breakdown_to_amounts(breakdown)


def map_breakdown_to_quote_fields(breakdown: PriceBreakdown) -> Dict[str, Any]:
    """
    Flatten a breakdown into the quote row fields written on save.

    Returns:
        Dict with marginPercentage, marginAmount and nested amounts
    """
    amounts = breakdown_to_amounts(breakdown)
    return {
        "marginPercentage": rate_to_percent(breakdown.margin_rate),
        "marginAmount": round_decimal(breakdown.margin_amount),
        "amounts": {
            "base": amounts.base,
            "vat": amounts.vat,
            "total": amounts.total,
        },
    }


def read_stored_amounts(quote: Any) -> Optional[QuoteAmounts]:
    """
    Amounts previously stored with the quote.

    The API returns amounts either as an object or as a one-element list;
    both are accepted. None when the quote has no amounts yet.
    """
    amounts = get_value("amounts", quote)
    if isinstance(amounts, list):
        amounts = amounts[0] if amounts else None
    if not amounts:
        return None

    return QuoteAmounts(
        base=safe_decimal(_field(amounts, "base")),
        vat=safe_decimal(_field(amounts, "vat")),
        total=safe_decimal(_field(amounts, "total")),
    )


# ============================================================================
# VALIDATION FUNCTION
# ============================================================================

def validate_cost_input(quote: Any, operational: Any = None) -> List[str]:
    """
    Validate a quote row before pricing.
    Returns list of all validation errors (empty list if valid).

    Args:
        quote: Quote row (dict or object)
        operational: Operational block, optional

    Returns:
        List of error messages (empty if valid)
    """
    errors = []

    if operational is None and isinstance(quote, dict):
        operational = quote.get("QuoteOperational") or quote.get("operational")

    labels = {
        "paper_cost": "Paper cost",
        "plates_cost": "Plates cost",
        "cost_per_plate": "Cost per plate",
        "finishing_cost": "Finishing cost",
    }
    for field_name, label in labels.items():
        value = get_value(field_name, quote, operational)
        if value is None:
            continue
        amount = safe_decimal(value, default=None)
        if amount is None:
            errors.append(f"{label} must be a number (got {value!r}).")
        elif amount < 0:
            errors.append(f"{label} cannot be negative.")

    plate_count = get_value("plate_count", quote, operational)
    if plate_count is not None and safe_int(plate_count, -1) < 0:
        errors.append("Plates must be a whole number of 0 or more.")

    for index, item in enumerate(parse_additional_costs(get_value("additional_costs", quote, operational))):
        name = item.description or f"#{index + 1}"
        if item.amount < 0:
            errors.append(f"Additional cost '{name}' cannot be negative.")

    margin_percentage = get_value("margin_percentage", quote)
    if margin_percentage is not None:
        margin = safe_decimal(margin_percentage, default=None)
        if margin is None or margin < 0 or margin > HUNDRED:
            errors.append("Margin percentage must be between 0 and 100.")

    return errors
