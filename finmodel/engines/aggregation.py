"""
FinModel — Annual Aggregator

Rolls ForecastPeriod rows into AnnualSummary rows (one per calendar year) or
quarterly summaries. Flow quantities are summed; stock quantities (cash
balance, customers, runway) come from the last period of the group.
"""

from collections import defaultdict
from typing import Optional

from .types import AnnualSummary, ForecastPeriod

FLOW_FIELDS = (
    "revenue", "cogs", "gross_profit", "sales_marketing",
    "research_development", "general_admin", "depreciation", "total_opex",
    "ebitda", "operating_income", "income_tax", "net_income", "capex",
    "cash_flow",
)


def _quarter_of(row: ForecastPeriod) -> int:
    if row.period[5:6] == "Q":
        return row.sub_period
    return (row.sub_period - 1) // 3 + 1


def _summarize(period: str, year: int, quarter: Optional[int], rows: list) -> AnnualSummary:
    last = rows[-1]
    totals = {name: sum(getattr(r, name) for r in rows) for name in FLOW_FIELDS}
    return AnnualSummary(
        period=period,
        year=year,
        quarter=quarter,
        cash_balance=last.cash_balance,
        customers=last.customers,
        runway_months=last.runway_months,
        **totals,
    )


def aggregate_annual(periods: list[ForecastPeriod]) -> list[AnnualSummary]:
    """One AnnualSummary per calendar year, in year order."""
    by_year = defaultdict(list)
    for row in periods:
        by_year[row.year].append(row)
    return [
        _summarize(str(year), year, None, by_year[year])
        for year in sorted(by_year)
    ]


def aggregate_quarterly(periods: list[ForecastPeriod]) -> list[AnnualSummary]:
    """One summary per (year, quarter), in chronological order."""
    by_quarter = defaultdict(list)
    for row in periods:
        by_quarter[(row.year, _quarter_of(row))].append(row)
    return [
        _summarize(f"{year}-Q{quarter}", year, quarter, by_quarter[(year, quarter)])
        for year, quarter in sorted(by_quarter)
    ]
