"""
Print Quote Pricing - Calculation Engine
Implements the Step 5 quote pricing pipeline.

ORDER OF OPERATIONS (final, milestone "step5-calculation-fixed"):
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
1. Base cost  = Paper + Plates + Finishing + Additional costs
2. Margin     = Base cost × margin_rate (default 30%)
3. Subtotal   = Base cost + Margin
4. VAT        = Subtotal × vat_rate (default 5%)
5. Total      = Subtotal + VAT

Additional costs belong to the base BEFORE margin. Appending them after
margin/VAT was the old defect; any other order is superseded, not a mode.

All phases work on exact Decimals. Rounding (2 dp, ROUND_HALF_UP) happens
once, at the output boundary: round_breakdown() / breakdown_to_amounts().
Rounded subtotal and total are sums of the rounded parts.
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Dict, List, Optional, Any

from calculation_models import (
    CostLineItem,
    OperationalCostInputs,
    PriceBreakdown,
    QuoteAmounts,
    PaperSpec,
    PlateSpec,
    DEFAULT_MARGIN_RATE,
    DEFAULT_VAT_RATE,
    DEFAULT_PIECE_GAP,
)


ZERO = Decimal("0")
ONE = Decimal("1")


# ============================================================================
# ERRORS
# ============================================================================

class CalculationError(ValueError):
    """Bad data passed to the calculator. Never transient, never retried."""

    def __init__(self, field: str, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(f"{field}={value!r}")


class InvalidInput(CalculationError):
    """A cost component is negative or not a finite number"""


class InvalidConfiguration(CalculationError):
    """A rate is outside [0, 1] or not a finite number"""


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def round_decimal(value: Decimal, decimal_places: int = 2) -> Decimal:
    """Round decimal to specified places using ROUND_HALF_UP."""
    if decimal_places == 2:
        return value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    elif decimal_places == 0:
        return value.quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    else:
        quantizer = Decimal(10) ** -decimal_places
        return value.quantize(quantizer, rounding=ROUND_HALF_UP)


def _as_decimal(value: Any, field: str, error_cls) -> Decimal:
    """Coerce to a finite Decimal or raise error_cls(field)"""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise error_cls(field, value) from None
    if not result.is_finite():
        raise error_cls(field, value)
    return result


def validate_rate(value: Any, field: str) -> Decimal:
    """Rates are fractions in [0, 1]"""
    if value is None:
        raise InvalidConfiguration(field, value)
    rate = _as_decimal(value, field, InvalidConfiguration)
    if rate < ZERO or rate > ONE:
        raise InvalidConfiguration(field, value)
    return rate


def validate_amount(value: Any, field: str) -> Decimal:
    """Cost amounts are finite and >= 0; missing counts as 0"""
    if value is None:
        return ZERO
    amount = _as_decimal(value, field, InvalidInput)
    if amount < ZERO:
        raise InvalidInput(field, value)
    return amount


def validate_cost_inputs(inputs: OperationalCostInputs) -> Dict[str, Any]:
    """
    Check every cost component before any arithmetic happens.

    Returns:
        Dict with validated paper, plates, finishing and the list of
        additional amounts (same order as inputs.additional_costs)

    Raises:
        InvalidInput: naming the first offending field
    """
    paper = validate_amount(inputs.paper_cost, "paper_cost")
    plates = validate_amount(inputs.plates_cost, "plates_cost")
    finishing = validate_amount(inputs.finishing_cost, "finishing_cost")
    additional = [
        validate_amount(item.amount, f"additional_costs[{i}].amount")
        for i, item in enumerate(inputs.additional_costs)
    ]
    return {
        "paper": paper,
        "plates": plates,
        "finishing": finishing,
        "additional": additional,
    }


# ============================================================================
# PHASE 1: BASE COST
# ============================================================================

def phase1_base_cost(
    paper: Decimal,
    plates: Decimal,
    finishing: Decimal,
    additional: List[Decimal]
) -> Dict[str, Decimal]:
    """
    Base cost including additional costs

    Returns: additional_costs_total, base_cost
    """
    additional_total = sum(additional, ZERO)
    return {
        "additional_costs_total": additional_total,
        "base_cost": paper + plates + finishing + additional_total,
    }


# ============================================================================
# PHASE 2: MARGIN
# ============================================================================

def phase2_margin(base_cost: Decimal, margin_rate: Decimal) -> Dict[str, Decimal]:
    """
    Margin on the full base cost

    Returns: margin_amount, subtotal
    """
    margin_amount = base_cost * margin_rate
    return {
        "margin_amount": margin_amount,
        "subtotal": base_cost + margin_amount,
    }


# ============================================================================
# PHASE 3: VAT
# ============================================================================

def phase3_vat(subtotal: Decimal, vat_rate: Decimal) -> Dict[str, Decimal]:
    """
    VAT on the post-margin subtotal

    Returns: vat_amount, total
    """
    vat_amount = subtotal * vat_rate
    return {
        "vat_amount": vat_amount,
        "total": subtotal + vat_amount,
    }


# ============================================================================
# MAIN CALCULATION
# ============================================================================

def compute_breakdown(
    inputs: OperationalCostInputs,
    margin_rate: Any = DEFAULT_MARGIN_RATE,
    vat_rate: Any = DEFAULT_VAT_RATE
) -> PriceBreakdown:
    """
    Price a quote from its itemized costs.

    Pure function: does not touch inputs, keeps no state. Values in the
    result are exact; use round_breakdown() for display/storage.

    Args:
        inputs: Paper, plates, finishing and additional costs
        margin_rate: Fraction in [0, 1] (0.30 = 30%)
        vat_rate: Fraction in [0, 1] (0.05 = 5%)

    Returns:
        PriceBreakdown with base, margin, subtotal, VAT and total

    Raises:
        InvalidConfiguration: rate outside [0, 1]
        InvalidInput: negative or non-finite cost component
    """
    margin = validate_rate(margin_rate, "margin_rate")
    vat = validate_rate(vat_rate, "vat_rate")
    costs = validate_cost_inputs(inputs)

    # PHASE 1: Base cost (additional costs included before margin)
    phase1_results = phase1_base_cost(
        costs["paper"],
        costs["plates"],
        costs["finishing"],
        costs["additional"]
    )

    # PHASE 2: Margin
    phase2_results = phase2_margin(phase1_results["base_cost"], margin)

    # PHASE 3: VAT on subtotal
    phase3_results = phase3_vat(phase2_results["subtotal"], vat)

    return PriceBreakdown(
        additional_costs_total=phase1_results["additional_costs_total"],
        base_cost=phase1_results["base_cost"],
        margin_rate=margin,
        margin_amount=phase2_results["margin_amount"],
        subtotal=phase2_results["subtotal"],
        vat_rate=vat,
        vat_amount=phase3_results["vat_amount"],
        total=phase3_results["total"],
    )


def round_breakdown(breakdown: PriceBreakdown) -> PriceBreakdown:
    """
    Display/storage copy at 2 dp. Rates are left as configured.

    Base, margin and VAT are each rounded once from their exact values (VAT
    from the exact subtotal). Subtotal and total are then summed from the
    rounded parts, so the line items on a quote always add up.
    """
    base_cost = round_decimal(breakdown.base_cost)
    margin_amount = round_decimal(breakdown.margin_amount)
    vat_amount = round_decimal(breakdown.vat_amount)
    subtotal = base_cost + margin_amount

    return breakdown.model_copy(update={
        "additional_costs_total": round_decimal(breakdown.additional_costs_total),
        "base_cost": base_cost,
        "margin_amount": margin_amount,
        "subtotal": subtotal,
        "vat_amount": vat_amount,
        "total": subtotal + vat_amount,
    })


def breakdown_to_amounts(breakdown: PriceBreakdown) -> QuoteAmounts:
    """Persisted snapshot, taken from the rounded breakdown"""
    rounded = round_breakdown(breakdown)
    return QuoteAmounts(
        base=rounded.base_cost,
        vat=rounded.vat_amount,
        total=rounded.total,
    )


# ============================================================================
# OPERATIONAL COST DERIVATION (paper, plates)
# ============================================================================

def _pieces_on_sheet(sheet_w: Decimal, sheet_h: Decimal, piece_w: Decimal, piece_h: Decimal) -> int:
    if piece_w <= 0 or piece_h <= 0:
        return 0
    return int(sheet_w // piece_w) * int(sheet_h // piece_h)


def calculate_items_per_sheet(
    sheet_width: Decimal,
    sheet_height: Decimal,
    output_width: Decimal,
    output_height: Decimal,
    gap: Decimal = DEFAULT_PIECE_GAP
) -> int:
    """
    How many finished pieces fit on one press sheet.

    ROUNDDOWN(W / (w + gap)) × ROUNDDOWN(H / (h + gap)), taking the better
    of the normal and rotated orientation. 0 when any size is missing.
    """
    dims = [
        validate_amount(sheet_width, "sheet_width"),
        validate_amount(sheet_height, "sheet_height"),
        validate_amount(output_width, "output_width"),
        validate_amount(output_height, "output_height"),
    ]
    gap = validate_amount(gap, "gap")
    sw, sh, ow, oh = dims
    if ZERO in dims:
        return 0

    normal = _pieces_on_sheet(sw, sh, ow + gap, oh + gap)
    rotated = _pieces_on_sheet(sw, sh, oh + gap, ow + gap)
    return max(normal, rotated)


def calculate_press_sheets_per_parent(
    parent_width: Decimal,
    parent_height: Decimal,
    press_width: Decimal,
    press_height: Decimal
) -> int:
    """Press sheets cut from one parent sheet (no rotation, no gap)"""
    dims = [
        validate_amount(parent_width, "input_width"),
        validate_amount(parent_height, "input_height"),
        validate_amount(press_width, "press_width"),
        validate_amount(press_height, "press_height"),
    ]
    if ZERO in dims:
        return 0
    return _pieces_on_sheet(*dims)


def calculate_items_per_parent(paper: PaperSpec) -> int:
    """Pieces per press sheet × press sheets per parent sheet"""
    if paper.press_width and paper.press_height:
        press_width, press_height = paper.press_width, paper.press_height
    else:
        press_width, press_height = paper.input_width, paper.input_height

    items_per_press = calculate_items_per_sheet(
        press_width,
        press_height,
        paper.output_width,
        paper.output_height,
        paper.gap
    )
    presses_per_parent = calculate_press_sheets_per_parent(
        paper.input_width,
        paper.input_height,
        press_width,
        press_height
    )
    return items_per_press * presses_per_parent


def calculate_sheets_needed(quantity: int, items_per_sheet: int) -> int:
    """Parent sheets for the run; 0 when nothing fits"""
    if quantity < 0:
        raise InvalidInput("quantity", quantity)
    if items_per_sheet <= 0 or quantity == 0:
        return 0
    return -(-quantity // items_per_sheet)


def resolve_price_per_sheet(paper: PaperSpec) -> Decimal:
    """Explicit per-sheet price wins; otherwise pack price / pack size"""
    if paper.price_per_sheet is not None:
        return validate_amount(paper.price_per_sheet, "price_per_sheet")

    if paper.price_per_pack is not None and paper.pack_size:
        if paper.pack_size < 0:
            raise InvalidInput("pack_size", paper.pack_size)
        pack_price = validate_amount(paper.price_per_pack, "price_per_pack")
        return pack_price / Decimal(paper.pack_size)

    return ZERO


def calculate_paper_cost(paper: PaperSpec, quantity: int) -> Decimal:
    """Parent sheets needed × price per parent sheet (exact, unrounded)"""
    sheets = calculate_sheets_needed(quantity, calculate_items_per_parent(paper))
    return Decimal(sheets) * resolve_price_per_sheet(paper)


def calculate_plates_cost(plates: PlateSpec) -> Decimal:
    """plate_count × cost_per_plate"""
    if plates.plate_count < 0:
        raise InvalidInput("plate_count", plates.plate_count)
    cost = validate_amount(plates.cost_per_plate, "cost_per_plate")
    return Decimal(plates.plate_count) * cost


def build_operational_inputs(
    quantity: int,
    paper: Optional[PaperSpec] = None,
    plates: Optional[PlateSpec] = None,
    finishing_cost: Any = ZERO,
    additional_costs: Optional[List[CostLineItem]] = None
) -> OperationalCostInputs:
    """
    Assemble calculator inputs from the wizard's operational data.

    Args:
        quantity: Number of finished pieces
        paper: Sheet sizes and paper pricing (no paper cost if None)
        plates: Plate count and unit cost (no plates cost if None)
        finishing_cost: Finishing cost for the job
        additional_costs: Ad-hoc costs from the additional-costs editor

    Returns:
        OperationalCostInputs ready for compute_breakdown()
    """
    paper_cost = calculate_paper_cost(paper, quantity) if paper else ZERO
    plates_cost = calculate_plates_cost(plates) if plates else ZERO

    return OperationalCostInputs(
        paper_cost=paper_cost,
        plates_cost=plates_cost,
        finishing_cost=validate_amount(finishing_cost, "finishing_cost"),
        additional_costs=list(additional_costs or []),
    )
