"""
Job profitability (cost of goods sold) computation.

Pure functions: the result depends only on the estimate document and the
tenant's cost settings, so recomputing on an unchanged estimate always
yields identical financials.
"""

from __future__ import annotations

from ..models import Actuals, CostSettings, Estimate, Financials, to_number


def _usage_source(estimate: Estimate) -> Actuals:
    # Recorded actuals win; planned materials stand in for jobs invoiced without them.
    if isinstance(estimate.actuals, Actuals):
        return estimate.actuals
    if isinstance(estimate.materials, Actuals):
        return estimate.materials
    return Actuals()


def compute_financials(estimate: Estimate, costs: CostSettings) -> Financials:
    """Compute revenue, COGS breakdown, net profit and margin for a job.

    - chemical: open/closed cell sets used x tenant unit cost
    - labor: labor hours x rate (tenant rate, else estimate rate, else 0)
    - inventory: sum of quantity x unitCost over the reported lines
    - misc: trip charge + fuel surcharge from the estimate's expenses

    A zero revenue yields a zero margin.
    """
    usage = _usage_source(estimate)
    expenses = estimate.expense_sheet()

    open_cell = to_number(usage.open_cell_sets)
    closed_cell = to_number(usage.closed_cell_sets)
    chemical_cost = open_cell * to_number(costs.open_cell) + closed_cell * to_number(
        costs.closed_cell
    )

    labor_hours = to_number(usage.labor_hours or expenses.man_hours)
    labor_rate = to_number(costs.labor_rate) or to_number(expenses.labor_rate)
    labor_cost = labor_hours * labor_rate

    lines = usage.material_lines()
    if not lines and isinstance(estimate.materials, Actuals):
        lines = estimate.materials.material_lines()
    inventory_cost = sum(to_number(line.quantity) * to_number(line.unit_cost) for line in lines)

    misc_cost = to_number(expenses.trip_charge) + to_number(expenses.fuel_surcharge)

    revenue = to_number(estimate.total_value)
    total_cogs = chemical_cost + labor_cost + inventory_cost + misc_cost
    net_profit = revenue - total_cogs

    return Financials(
        revenue=revenue,
        chemical_cost=chemical_cost,
        labor_cost=labor_cost,
        inventory_cost=inventory_cost,
        misc_cost=misc_cost,
        total_cogs=total_cogs,
        net_profit=net_profit,
        margin=net_profit / revenue if revenue else 0,
    )
