"""
Plan catalog configuration.

Maps purchasable plans to credit amounts and checkout prices.
"""

from dataclasses import dataclass

from alchemist.exceptions import UnknownPlanError
from alchemist.models.api import Plan


@dataclass(frozen=True)
class PlanConfig:
    """Purchasable plan configuration."""

    plan: Plan
    credits: int
    price_minor: int  # USD cents
    name: str
    description: str
    currency: str = "usd"

    def __post_init__(self) -> None:
        """Validate plan configuration."""
        if self.credits <= 0:
            raise ValueError(f"Credits must be positive: {self.credits}")
        if self.price_minor <= 0:
            raise ValueError(f"Price must be positive: {self.price_minor}")
        if not self.name:
            raise ValueError("Name required")


# Plan catalog (prices must match what the pricing page advertises)
PLANS: dict[Plan, PlanConfig] = {
    Plan.BASIC: PlanConfig(
        plan=Plan.BASIC,
        credits=10,
        price_minor=599,
        name="Basic Plan",
        description="Perfect for getting started and testing the waters",
    ),
    Plan.BLOGGER: PlanConfig(
        plan=Plan.BLOGGER,
        credits=50,
        price_minor=5000,
        name="Blogger Plan",
        description="Ideal for serious bloggers building an authority site",
    ),
    Plan.PRO: PlanConfig(
        plan=Plan.PRO,
        credits=240,
        price_minor=10000,
        name="Pro / Agency Plan",
        description="For professionals managing multiple sites or high-volume content",
    ),
}


def get_plan(plan: str | Plan) -> PlanConfig:
    """
    Get plan configuration by name.

    Raises:
        UnknownPlanError: If the plan is not in the catalog
    """
    try:
        key = Plan(plan)
    except ValueError as exc:
        raise UnknownPlanError(str(plan)) from exc
    return PLANS[key]


def list_plans() -> list[PlanConfig]:
    """All plans, cheapest first."""
    return sorted(PLANS.values(), key=lambda p: p.price_minor)
