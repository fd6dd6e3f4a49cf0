"""
Print Quote Pricing - Calculation Models
Pydantic models for quote cost inputs and the priced breakdown

All money values are Decimal in quote currency (AED). Rates are fractions
(0.30 = 30%). Sign checks are NOT done here: the calculation engine rejects
negative amounts with InvalidInput so the caller gets the offending field.
"""

from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator


DEFAULT_MARGIN_RATE = Decimal("0.30")
DEFAULT_VAT_RATE = Decimal("0.05")

# Sheet layout (cm)
DEFAULT_PARENT_WIDTH = Decimal("100")
DEFAULT_PARENT_HEIGHT = Decimal("70")
DEFAULT_PIECE_GAP = Decimal("0.5")


def _missing_to_zero(v):
    """Absent cost components count as 0"""
    if v is None or v == "":
        return Decimal("0")
    return v


# ============================================================================
# COST INPUT MODELS
# ============================================================================

class CostLineItem(BaseModel):
    """Ad-hoc named cost added to a quote (e.g. rush delivery)"""
    id: Optional[str] = Field(default=None, description="Editor row id, kept for additionalCostsData")
    description: str = Field(default="", description="Cost label")
    amount: Decimal = Field(default=Decimal("0"), description="Cost amount, must be >= 0")
    comment: Optional[str] = Field(default=None, description="Free text note")

    @field_validator("amount", mode="before")
    @classmethod
    def missing_amount_is_zero(cls, v):
        return _missing_to_zero(v)


class OperationalCostInputs(BaseModel):
    """Itemized job costs feeding the price breakdown"""
    paper_cost: Decimal = Field(default=Decimal("0"), description="Paper cost for the job")
    plates_cost: Decimal = Field(default=Decimal("0"), description="plate_count x cost_per_plate")
    finishing_cost: Decimal = Field(default=Decimal("0"), description="Finishing cost")
    additional_costs: List[CostLineItem] = Field(default_factory=list, description="Ordered additional costs")

    @field_validator("paper_cost", "plates_cost", "finishing_cost", mode="before")
    @classmethod
    def missing_component_is_zero(cls, v):
        return _missing_to_zero(v)

    @field_validator("additional_costs", mode="before")
    @classmethod
    def none_means_no_additional_costs(cls, v):
        return [] if v is None else v


class PricingRates(BaseModel):
    """Margin and VAT configuration (admin controlled)"""
    margin_rate: Decimal = Field(default=DEFAULT_MARGIN_RATE, description="Markup on base cost (0.30 = 30%)")
    vat_rate: Decimal = Field(default=DEFAULT_VAT_RATE, description="VAT on subtotal (0.05 = 5%)")


# ============================================================================
# DERIVATION INPUTS (wizard step 4: operational data)
# ============================================================================

class PaperSpec(BaseModel):
    """
    Paper for the job (sizes in cm).

    Parent sheets (100x70 unless given) are cut into press sheets, and the
    finished pieces are laid out on each press sheet with a gap between
    them. Without a press size the parent sheet goes on the press uncut.
    """
    input_width: Decimal = Field(default=DEFAULT_PARENT_WIDTH, description="Parent sheet width")
    input_height: Decimal = Field(default=DEFAULT_PARENT_HEIGHT, description="Parent sheet height")
    press_width: Optional[Decimal] = Field(default=None, description="Press sheet width")
    press_height: Optional[Decimal] = Field(default=None, description="Press sheet height")
    output_width: Decimal = Field(default=Decimal("0"), description="Finished piece width")
    output_height: Decimal = Field(default=Decimal("0"), description="Finished piece height")
    gap: Decimal = Field(default=DEFAULT_PIECE_GAP, description="Gap between pieces on the press sheet")
    price_per_sheet: Optional[Decimal] = Field(default=None, description="Price of one parent sheet")
    price_per_pack: Optional[Decimal] = Field(default=None, description="Price of one pack")
    pack_size: Optional[int] = Field(default=None, description="Sheets per pack")

    @field_validator("input_width", mode="before")
    @classmethod
    def missing_parent_width_is_standard(cls, v):
        return DEFAULT_PARENT_WIDTH if v is None or v == "" else v

    @field_validator("input_height", mode="before")
    @classmethod
    def missing_parent_height_is_standard(cls, v):
        return DEFAULT_PARENT_HEIGHT if v is None or v == "" else v

    @field_validator("output_width", "output_height", mode="before")
    @classmethod
    def missing_dimension_is_zero(cls, v):
        return _missing_to_zero(v)

    @field_validator("gap", mode="before")
    @classmethod
    def missing_gap_is_standard(cls, v):
        return DEFAULT_PIECE_GAP if v is None or v == "" else v


class PlateSpec(BaseModel):
    """Printing plates for the job"""
    plate_count: int = Field(default=0, description="Number of plates")
    cost_per_plate: Decimal = Field(default=Decimal("0"), description="Cost of one plate")

    @field_validator("plate_count", mode="before")
    @classmethod
    def missing_count_is_zero(cls, v):
        return 0 if v is None or v == "" else v

    @field_validator("cost_per_plate", mode="before")
    @classmethod
    def missing_cost_is_zero(cls, v):
        return _missing_to_zero(v)


# ============================================================================
# CALCULATION OUTPUT MODELS
# ============================================================================

class PriceBreakdown(BaseModel):
    """Priced breakdown. Exact values unless produced by round_breakdown()"""
    class Config:
        frozen = True

    additional_costs_total: Decimal = Field(..., description="Sum of additional cost amounts")
    base_cost: Decimal = Field(..., description="Paper + plates + finishing + additional costs")
    margin_rate: Decimal = Field(..., description="Applied margin fraction")
    margin_amount: Decimal = Field(..., description="base_cost x margin_rate")
    subtotal: Decimal = Field(..., description="base_cost + margin_amount")
    vat_rate: Decimal = Field(..., description="Applied VAT fraction")
    vat_amount: Decimal = Field(..., description="subtotal x vat_rate")
    total: Decimal = Field(..., description="subtotal + vat_amount")


class QuoteAmounts(BaseModel):
    """Flattened snapshot stored with the quote (amounts table)"""
    base: Decimal = Field(..., description="Base cost incl. additional costs, 2 dp")
    vat: Decimal = Field(..., description="VAT derived from the exact subtotal, 2 dp")
    total: Decimal = Field(..., description="Final total, 2 dp")

    class Config:
        json_schema_extra = {
            "example": {
                "base": "330.00",
                "vat": "21.45",
                "total": "450.45"
            }
        }
