"""
FinModel — Forecast Generator

Turns an effective AssumptionSet into a per-period time series across the
model's year range (inclusive). Monthly and quarterly granularities are
supported; all annual rates are converted to equivalent period rates.

Per period t (P = periods per year, y = year index from the start year):

    g(y)        = g_T + (g_0 - g_T) * (1 - decay)^y            growth decay
    growth_p    = (1 + g(y))^(1/P) - 1
    churn_p     = 1 - (1 - churn)^(1/P)        (1.0 when churn >= 1)
    net_adds    = customers[t-1] * growth_p
    customers   = customers[t-1] * (1 - churn_p) + net_adds
    revenue     = customers * ARPU * 12 / P
    costs       = revenue * pct  (COGS, S&M, R&D, G&A, depreciation)
    tax         = max(pre_tax, 0) * tax_rate
    cash[t]     = cash[t-1] + net_income - capex,  cash[-1] = initial_cash

With a target net margin, S&M, R&D and G&A are scaled each year so the
operating margin moves linearly (year y of N: weight (y + 1) / N) from the
configured cost structure to the pre-tax equivalent of the target. Opex never
goes below zero, so a target above what COGS and depreciation allow is not
reached.

The first period carries `initial_customers` unchanged. With decay = 0 every
year uses the configured growth rate; with decay = 1 every year after the
first uses the terminal rate. The curve is monotonic toward the terminal rate.

Runway (months) = cash / monthly burn, where burn is the override when one is
configured, otherwise the trailing average of the last three periods' cash
flow. Non-negative average cash flow means "profitable" (runway None).
"""

import logging
from typing import Optional

import numpy as np

from ..errors import ValidationError
from .assumptions import AssumptionSet
from .types import ForecastPeriod

logger = logging.getLogger("finmodel.engines.forecast")

PERIODS_PER_YEAR = {"monthly": 12, "quarterly": 4}

# Periods included in the trailing burn average
BURN_WINDOW = 3


def decayed_growth_rate(assumptions: AssumptionSet, year_index: int) -> float:
    """Effective annual growth rate for the given year of the projection."""
    initial = assumptions.revenue_growth_rate
    terminal = assumptions.terminal_growth_rate
    decay = assumptions.growth_decay_rate
    if decay == 0.0:
        return initial
    return terminal + (initial - terminal) * (1.0 - decay) ** year_index


def period_churn_rate(annual_churn: float, periods_per_year: int) -> float:
    """Equivalent per-period churn. Annual churn of 100% or more saturates at 1."""
    if annual_churn >= 1.0:
        return 1.0
    return 1.0 - (1.0 - annual_churn) ** (1.0 / periods_per_year)


def period_growth_rate(annual_growth: float, periods_per_year: int) -> float:
    return (1.0 + annual_growth) ** (1.0 / periods_per_year) - 1.0


def target_operating_margin(target_net_margin: float, tax_rate: float) -> float:
    """Pre-tax margin that leaves `target_net_margin` after tax."""
    if target_net_margin > 0 and tax_rate < 1.0:
        return target_net_margin / (1.0 - tax_rate)
    return target_net_margin


def opex_scale(assumptions: AssumptionSet, year_index: int, horizon_years: int) -> float:
    """
    Multiplier on S&M, R&D and G&A that moves the operating margin linearly
    from its configured level to the target margin, reaching it in the last
    model year. 1.0 when no target is set or there is no opex to adjust.
    """
    a = assumptions
    opex = a.sales_marketing_percent + a.rd_percent + a.ga_percent
    if a.target_net_margin is None or opex == 0.0:
        return 1.0
    base_margin = 1.0 - a.cogs_percent - a.depreciation_percent - opex
    target = target_operating_margin(a.target_net_margin, a.tax_rate)
    weight = (year_index + 1) / horizon_years
    margin = base_margin + (target - base_margin) * weight
    return max(opex + base_margin - margin, 0.0) / opex


def _period_label(year: int, sub_period: int, granularity: str) -> str:
    if granularity == "monthly":
        return f"{year}-{sub_period:02d}"
    return f"{year}-Q{sub_period}"


def _runway(
    cash_balance: float,
    cash_flows: list,
    months_per_period: float,
    burn_override: Optional[float],
) -> Optional[float]:
    if burn_override is not None:
        return max(cash_balance, 0.0) / burn_override

    trailing = float(np.mean(cash_flows[-BURN_WINDOW:])) / months_per_period
    if trailing >= 0:
        return None
    if cash_balance <= 0:
        return 0.0
    return cash_balance / -trailing


def generate_forecast(
    assumptions: AssumptionSet,
    start_year: int,
    end_year: int,
    granularity: str = "monthly",
) -> list[ForecastPeriod]:
    """
    Generate the full period series for [start_year, end_year].

    Pure function of its inputs; calling it twice returns equal sequences.

    Raises:
        ValidationError: end_year before start_year, or unknown granularity.
    """
    if granularity not in PERIODS_PER_YEAR:
        raise ValidationError(
            f"Unknown granularity '{granularity}'",
            errors={"granularity": f"must be one of {sorted(PERIODS_PER_YEAR)}"},
        )
    if end_year < start_year:
        raise ValidationError(
            f"end_year {end_year} is before start_year {start_year}",
            errors={"end_year": "must be >= start_year"},
        )

    a = assumptions
    periods_per_year = PERIODS_PER_YEAR[granularity]
    months_per_period = 12 / periods_per_year
    churn_p = period_churn_rate(a.churn_rate, periods_per_year)
    horizon_years = end_year - start_year + 1

    rows: list[ForecastPeriod] = []
    cash_flows: list[float] = []
    customers = a.initial_customers
    cash_balance = a.initial_cash

    for year in range(start_year, end_year + 1):
        year_index = year - start_year
        annual_growth = decayed_growth_rate(a, year_index)
        growth_p = period_growth_rate(annual_growth, periods_per_year)
        scale = opex_scale(a, year_index, horizon_years)

        for sub_period in range(1, periods_per_year + 1):
            if rows:
                net_adds = customers * growth_p
                customers = customers * (1.0 - churn_p) + net_adds

            revenue = customers * a.avg_revenue_per_unit * months_per_period
            cogs = revenue * a.cogs_percent
            gross_profit = revenue - cogs
            sales_marketing = revenue * a.sales_marketing_percent * scale
            research_development = revenue * a.rd_percent * scale
            general_admin = revenue * a.ga_percent * scale
            depreciation = revenue * a.depreciation_percent
            total_opex = sales_marketing + research_development + general_admin
            ebitda = gross_profit - total_opex
            operating_income = ebitda - depreciation
            income_tax = max(operating_income, 0.0) * a.tax_rate
            net_income = operating_income - income_tax

            capex = revenue * a.capex_percent
            cash_flow = net_income - capex
            cash_balance += cash_flow
            cash_flows.append(cash_flow)

            rows.append(ForecastPeriod(
                period=_period_label(year, sub_period, granularity),
                year=year,
                sub_period=sub_period,
                growth_rate=annual_growth,
                customers=customers,
                revenue=revenue,
                cogs=cogs,
                gross_profit=gross_profit,
                sales_marketing=sales_marketing,
                research_development=research_development,
                general_admin=general_admin,
                depreciation=depreciation,
                total_opex=total_opex,
                ebitda=ebitda,
                operating_income=operating_income,
                income_tax=income_tax,
                net_income=net_income,
                capex=capex,
                cash_flow=cash_flow,
                cash_balance=cash_balance,
                runway_months=_runway(
                    cash_balance, cash_flows, months_per_period, a.monthly_burn_override
                ),
            ))

    logger.debug(
        f"Generated {len(rows)} {granularity} periods for {start_year}-{end_year}"
    )
    return rows
