"""
Tests for the plan catalog and price helpers.
"""

import pytest

from app.services.plans import PLANS, Plan, PlanCatalog, format_price


class TestPriceHelpers:
    """Tests for format_price()."""

    @pytest.mark.parametrize(
        ("amount", "expected"),
        [(49, "$49"), (1990, "$1,990"), (9990, "$9,990"), (1234567, "$1,234,567")],
    )
    def test_format_price(self, amount: int, expected: str):
        assert format_price(amount) == expected


class TestPlanCatalog:
    """Tests for PlanCatalog lookups."""

    @pytest.fixture
    def catalog(self) -> PlanCatalog:
        return PlanCatalog()

    def test_three_tiers(self, catalog: PlanCatalog):
        assert [p.tier for p in catalog.to_output().plans] == ["STARTER", "GROWTH", "ENTERPRISE"]

    def test_output_is_formatted(self, catalog: PlanCatalog):
        growth = catalog.to_output().plans[1]

        assert growth.monthly_price == 199
        assert growth.yearly_price == 1990
        assert growth.formatted_monthly_price == "$199"
        assert growth.formatted_yearly_price == "$1,990"
        assert growth.monthly_price_id == "price_growth_monthly"
        assert growth.yearly_price_id == "price_growth_yearly"
        assert growth.features

    def test_output_serializes_camel_case(self, catalog: PlanCatalog):
        data = catalog.to_output().model_dump(by_alias=True)

        assert "monthlyPriceId" in data["plans"][0]
        assert "formattedYearlyPrice" in data["plans"][0]

    def test_yearly_prices_are_discounted(self):
        """Every listed yearly price is below twelve monthly payments."""
        for plan in PLANS:
            assert plan.yearly_price < plan.monthly_price * 12

    def test_non_positive_price_rejected(self):
        with pytest.raises(ValueError):
            Plan("FREE", "Free", "price_free", 0, 0, ())
