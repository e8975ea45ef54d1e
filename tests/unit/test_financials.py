"""
Unit tests for job financials.

Tests cover:
- COGS breakdown
- Zero revenue margin
- Labor rate precedence
- Fallback from actuals to planned materials
- Determinism
"""

import pytest

from backend.rfe_server.jobs import compute_financials
from backend.rfe_server.models import CostSettings, Estimate


def _estimate(**fields):
    return Estimate.from_dict({"id": "e1", **fields})


class TestComputeFinancials:
    """Tests for compute_financials."""

    @pytest.fixture
    def costs(self):
        return CostSettings.from_dict({"openCell": 100, "closedCell": 200, "laborRate": 50})

    def test_full_breakdown(self, costs):
        estimate = _estimate(
            totalValue=5000,
            actuals={
                "openCellSets": 2,
                "closedCellSets": 1,
                "laborHours": 10,
                "inventory": [
                    {"id": "i1", "quantity": 3, "unitCost": 10},
                    {"id": "i2", "quantity": 1},
                ],
            },
            expenses={"tripCharge": 25, "fuelSurcharge": 5},
        )

        financials = compute_financials(estimate, costs)
        assert financials.revenue == 5000
        assert financials.chemical_cost == 400
        assert financials.labor_cost == 500
        assert financials.inventory_cost == 30
        assert financials.misc_cost == 30
        assert financials.total_cogs == 960
        assert financials.net_profit == 4040
        assert financials.margin == pytest.approx(4040 / 5000)

    def test_zero_revenue_zero_margin(self, costs):
        estimate = _estimate(totalValue=0, actuals={"openCellSets": 1})

        financials = compute_financials(estimate, costs)
        assert financials.net_profit == -100
        assert financials.margin == 0

    def test_missing_revenue_is_zero(self, costs):
        financials = compute_financials(_estimate(totalValue="n/a"), costs)

        assert financials.revenue == 0
        assert financials.margin == 0

    def test_tenant_labor_rate_wins(self, costs):
        estimate = _estimate(actuals={"laborHours": 2}, expenses={"laborRate": 80})

        assert compute_financials(estimate, costs).labor_cost == 100

    def test_estimate_labor_rate_fallback(self):
        estimate = _estimate(actuals={"laborHours": 2}, expenses={"laborRate": 80})

        financials = compute_financials(estimate, CostSettings())
        assert financials.labor_cost == 160

    def test_labor_hours_fall_back_to_man_hours(self, costs):
        estimate = _estimate(actuals={}, expenses={"manHours": 4})

        assert compute_financials(estimate, costs).labor_cost == 200

    def test_planned_materials_used_without_actuals(self, costs):
        estimate = _estimate(
            totalValue=1000,
            materials={"openCellSets": 1, "inventory": [{"quantity": 2, "unitCost": 5}]},
        )

        financials = compute_financials(estimate, costs)
        assert financials.chemical_cost == 100
        assert financials.inventory_cost == 10

    def test_no_usage_at_all(self):
        financials = compute_financials(_estimate(totalValue=300), CostSettings())

        assert financials.total_cogs == 0
        assert financials.net_profit == 300
        assert financials.margin == 1

    def test_deterministic(self, costs):
        estimate = _estimate(totalValue=999, actuals={"openCellSets": 1.5, "laborHours": 3})

        first = compute_financials(estimate, costs).to_dict()
        second = compute_financials(estimate, costs).to_dict()
        assert first == second
        assert set(first) == {
            "revenue",
            "chemicalCost",
            "laborCost",
            "inventoryCost",
            "miscCost",
            "totalCOGS",
            "netProfit",
            "margin",
        }
