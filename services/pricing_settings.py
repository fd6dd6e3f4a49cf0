"""
Pricing settings - single source of truth for margin and VAT rates
"""

import os
from functools import lru_cache
from dotenv import load_dotenv

from calculation_models import PricingRates, DEFAULT_MARGIN_RATE, DEFAULT_VAT_RATE
from calculation_engine import validate_rate

load_dotenv()


def _read_rate(env_name: str, default):
    raw = os.getenv(env_name)
    if raw is None or raw.strip() == "":
        return default
    return validate_rate(raw.strip(), env_name)


@lru_cache()
def get_pricing_rates() -> PricingRates:
    """Get margin/VAT rates (cached) from PRICING_MARGIN_RATE / PRICING_VAT_RATE"""
    return PricingRates(
        margin_rate=_read_rate("PRICING_MARGIN_RATE", DEFAULT_MARGIN_RATE),
        vat_rate=_read_rate("PRICING_VAT_RATE", DEFAULT_VAT_RATE),
    )
