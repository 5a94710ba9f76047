"""
FinModel — Variance Engine

Compares forecast rows against user-entered actuals, matched on the period
key ("2025-03", "2025-Q1" or "2025").

    variance         = actual - forecast
    variance_percent = variance / |forecast|     (None when forecast == 0)

Forecast rows without a matching actual are kept with actual = None; callers
filter them before charting.
"""

from collections.abc import Mapping
from typing import Iterable, Optional

from .types import VarianceLine, VarianceRow

# metric name -> attribute on the forecast row
VARIANCE_METRICS = {
    "revenue": "revenue",
    "cogs": "cogs",
    "operating_expenses": "total_opex",
    "net_income": "net_income",
    "cash_balance": "cash_balance",
    "customers": "customers",
}


def variance_line(forecast: float, actual: Optional[float]) -> VarianceLine:
    if actual is None:
        return VarianceLine(forecast=forecast, actual=None, variance=None, variance_percent=None)
    variance = actual - forecast
    percent = variance / abs(forecast) if forecast != 0 else None
    return VarianceLine(
        forecast=forecast, actual=actual, variance=variance, variance_percent=percent
    )


def _value(source, name: str):
    if isinstance(source, Mapping):
        return source.get(name)
    return getattr(source, name, None)


def _index_actuals(actuals: Iterable) -> dict:
    """period -> actual record. A later record for the same period wins."""
    return {_value(a, "period"): a for a in actuals}


def calculate_variance(rows: Iterable, actuals: Iterable) -> list[VarianceRow]:
    """
    One VarianceRow per forecast row, in input order.

    Args:
        rows: ForecastPeriod or AnnualSummary rows.
        actuals: Actual records (ORM rows or mappings) with a `period` key and
                 nullable metric fields.
    """
    by_period = _index_actuals(actuals)
    result = []
    for row in rows:
        actual = by_period.get(row.period)
        lines = {}
        for metric, attr in VARIANCE_METRICS.items():
            observed = _value(actual, metric) if actual is not None else None
            lines[metric] = variance_line(
                getattr(row, attr),
                float(observed) if observed is not None else None,
            )
        result.append(VarianceRow(period=row.period, year=row.year, **lines))
    return result
