"""
Quote Pricing Services

Settings for margin/VAT rates.
Quote-row pricing and stored-amounts checks.
"""

from .pricing_settings import get_pricing_rates
from .quote_pricing_service import (
    # Data classes
    QuotePricingResult,
    AmountsCheckResult,
    # Operations
    resolve_rates,
    price_quote,
    check_stored_amounts,
)
