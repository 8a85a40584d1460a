"""
Tests for the plan catalog.
"""

import pytest

from alchemist.exceptions import UnknownPlanError
from alchemist.models.api import Plan
from alchemist.services.plans import PLANS, PlanConfig, get_plan, list_plans


class TestPlanCatalog:
    """Tests for plan lookup and listing."""

    def test_every_plan_enum_has_config(self) -> None:
        """The catalog covers the whole Plan enumeration."""
        assert set(PLANS) == set(Plan)

    def test_get_plan_accepts_string_and_enum(self) -> None:
        """Lookup works with both the enum and its value."""
        assert get_plan("blogger") is get_plan(Plan.BLOGGER)

    def test_prices(self) -> None:
        """Checkout prices are in USD cents."""
        assert get_plan(Plan.BASIC).price_minor == 599
        assert get_plan(Plan.BLOGGER).price_minor == 5000
        assert get_plan(Plan.PRO).price_minor == 10000
        assert all(plan.currency == "usd" for plan in PLANS.values())

    def test_list_plans_cheapest_first(self) -> None:
        """list_plans is ordered by price."""
        assert [p.plan for p in list_plans()] == [Plan.BASIC, Plan.BLOGGER, Plan.PRO]

    def test_unknown_plan(self) -> None:
        """Unknown names raise UnknownPlanError."""
        with pytest.raises(UnknownPlanError):
            get_plan("free")


class TestPlanConfigValidation:
    """Tests for PlanConfig invariants."""

    def test_rejects_zero_credits(self) -> None:
        with pytest.raises(ValueError, match="Credits must be positive"):
            PlanConfig(plan=Plan.BASIC, credits=0, price_minor=100, name="x", description="")

    def test_rejects_zero_price(self) -> None:
        with pytest.raises(ValueError, match="Price must be positive"):
            PlanConfig(plan=Plan.BASIC, credits=1, price_minor=0, name="x", description="")

    def test_rejects_empty_name(self) -> None:
        with pytest.raises(ValueError, match="Name required"):
            PlanConfig(plan=Plan.BASIC, credits=1, price_minor=1, name="", description="")
