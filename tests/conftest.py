"""
Shared pytest fixtures for quote pricing tests.

Provides:
- Quote row factories (camelCase, as the admin API returns them)
- Additional cost entry factories
- Clean pricing settings (no env overrides, empty cache)
"""

import pytest
import os
import sys
from decimal import Decimal
from datetime import datetime
from uuid import uuid4

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


# ============================================================================
# MOCK FACTORIES
# ============================================================================

def make_uuid():
    """Generate a UUID string."""
    return str(uuid4())


def make_additional_cost(
    description="Rush Delivery",
    cost=60.00,
    comment="Express shipping required",
    cost_id=None
):
    """Create an additionalCostsData entry dict."""
    return {
        "id": cost_id or make_uuid(),
        "description": description,
        "cost": cost,
        "comment": comment
    }


def make_quote(
    quote_id=None,
    paper_cost="100.00",
    plates_cost="70.00",
    finishing_cost="50.00",
    additional_costs=None,
    margin_percentage=None,
    amounts=None,
    product="Business Card",
    quantity=100
):
    """Create a mock quote row dict."""
    return {
        "id": make_uuid(),
        "quoteId": quote_id or f"QT-TEST-{uuid4().hex[:6]}",
        "date": datetime.now().isoformat(),
        "status": "Draft",
        "product": product,
        "quantity": quantity,
        "paperCost": paper_cost,
        "platesCost": plates_cost,
        "finishingCost": finishing_cost,
        "additionalCostsData": additional_costs,
        "marginPercentage": margin_percentage,
        "amounts": amounts,
    }


def two_additional_costs():
    """Rush delivery 60.00 + special packaging 50.00 (the reference pair)."""
    return [
        make_additional_cost("Rush Delivery", 60.00, "Express shipping required", "rush-delivery"),
        make_additional_cost("Special Packaging", 50.00, "Custom packaging for fragile items", "special-packaging"),
    ]


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def reference_quote():
    """Quote row for the 450.45 target case."""
    return make_quote(additional_costs=two_additional_costs())


@pytest.fixture
def clean_pricing_settings(monkeypatch):
    """No PRICING_* overrides; settings cache reset before and after."""
    from services.pricing_settings import get_pricing_rates

    monkeypatch.delenv("PRICING_MARGIN_RATE", raising=False)
    monkeypatch.delenv("PRICING_VAT_RATE", raising=False)
    get_pricing_rates.cache_clear()
    yield
    get_pricing_rates.cache_clear()


@pytest.fixture
def reference_rates():
    """30% margin, 5% VAT."""
    from calculation_models import PricingRates
    return PricingRates(margin_rate=Decimal("0.30"), vat_rate=Decimal("0.05"))
