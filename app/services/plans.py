"""
Plan Catalog - subscription tiers and their Stripe price IDs.

Prices are whole USD. Yearly prices are listed explicitly and sit below
twelve monthly payments.
"""

from dataclasses import dataclass

from app.models.api import BillingInterval, PlanListOutput, PlanOutput


@dataclass(frozen=True)
class Plan:
    """One subscription tier."""

    tier: str
    name: str
    price_id_prefix: str
    monthly_price: int
    yearly_price: int
    features: tuple[str, ...]

    def __post_init__(self) -> None:
        """Validate plan prices."""
        if self.monthly_price <= 0 or self.yearly_price <= 0:
            raise ValueError(f"Plan prices must be positive: {self.tier}")

    def price_id(self, interval: BillingInterval) -> str:
        """Stripe price ID for a billing interval, e.g. price_starter_monthly."""
        return f"{self.price_id_prefix}_{interval.value}"


PLANS: tuple[Plan, ...] = (
    Plan(
        tier="STARTER",
        name="Starter",
        price_id_prefix="price_starter",
        monthly_price=49,
        yearly_price=470,
        features=(
            "Up to 1,000 API requests/month",
            "Basic AI Services",
            "Email Support",
            "Standard API Access",
            "Basic Analytics",
        ),
    ),
    Plan(
        tier="GROWTH",
        name="Growth",
        price_id_prefix="price_growth",
        monthly_price=199,
        yearly_price=1990,
        features=(
            "Up to 10,000 API requests/month",
            "Advanced AI Services",
            "Priority Support",
            "Advanced API Access",
            "Detailed Analytics",
            "Custom Integrations",
        ),
    ),
    Plan(
        tier="ENTERPRISE",
        name="Enterprise",
        price_id_prefix="price_enterprise",
        monthly_price=999,
        yearly_price=9990,
        features=(
            "Unlimited API requests",
            "Full AI Suite",
            "24/7 Support",
            "Dedicated API Gateway",
            "Advanced Analytics",
            "Custom Solutions",
            "SLA Guarantee",
        ),
    ),
)


def format_price(amount: float) -> str:
    """Format a whole-dollar USD amount, e.g. 1990 -> $1,990."""
    return f"${amount:,.0f}"


class PlanCatalog:
    """Lookup over the configured plans."""

    def __init__(self, plans: tuple[Plan, ...] = PLANS) -> None:
        self._plans = {p.tier: p for p in plans}

    def to_output(self) -> PlanListOutput:
        return PlanListOutput(
            plans=[
                PlanOutput(
                    tier=p.tier,
                    name=p.name,
                    monthly_price=p.monthly_price,
                    yearly_price=p.yearly_price,
                    monthly_price_id=p.price_id(BillingInterval.MONTHLY),
                    yearly_price_id=p.price_id(BillingInterval.YEARLY),
                    formatted_monthly_price=format_price(p.monthly_price),
                    formatted_yearly_price=format_price(p.yearly_price),
                    features=list(p.features),
                )
                for p in self._plans.values()
            ]
        )
