"""
FinModel — Valuation Engine

Closed-form valuation from the refreshed statements:

    Cost of equity (CAPM)  = rf + beta * (market_return - rf)
    WACC                   = Ke * We + Kd * (1 - t) * Wd
    NPV                    = sum FCF[i] / (1 + WACC)^(i + 1)
    Terminal value         = FCF[last] * (1 + g) / (WACC - g)      (WACC > g)
    Discounted TV          = TV / (1 + WACC)^N
    Target equity value    = NPV + discounted TV - total debt
    Target price per share = target equity value / shares outstanding

The 5x5 sensitivity grid recomputes the full DCF for WACC and terminal growth
each shifted by -2..+2 steps; the center cell is the base case itself.

Comparable valuation prices the last projected year on price/revenue
multiples and PEG ratios for bull/base/bear cases, adds DCF-derived targets
and blends everything into an average target.

No I/O, no rounding inside the DCF formulas: results are reproducible bit
for bit for the same inputs.
"""

from typing import Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..errors import DomainError, ValidationError
from .discounting import discount_factor, present_value
from .types import (
    DCFResult, DCFValuationResult, IncomeStatementRow, SensitivityTable,
    ValuationComparisonResult,
)

# One percentage point per grid cell
SENSITIVITY_STEP = 0.01
SENSITIVITY_OFFSETS = np.arange(-2, 3)

# Used when fewer than two years of EPS exist or the prior EPS is zero
DEFAULT_EARNINGS_GROWTH = 0.25


class DCFParameters(BaseModel):
    """WACC inputs and capital-structure figures for one model's DCF."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    risk_free_rate: float = Field(0.043, allow_inf_nan=False)
    beta: float = Field(1.25, allow_inf_nan=False)
    market_return: float = Field(0.10, allow_inf_nan=False)
    cost_of_debt: float = Field(0.055, ge=0.0, allow_inf_nan=False)
    tax_rate: float = Field(0.25, ge=0.0, le=1.0, allow_inf_nan=False)
    equity_weight: float = Field(0.70, ge=0.0, le=1.0, allow_inf_nan=False)
    debt_weight: float = Field(0.30, ge=0.0, le=1.0, allow_inf_nan=False)
    long_term_growth: float = Field(0.025, allow_inf_nan=False)
    total_debt: float = Field(0.0, ge=0.0, allow_inf_nan=False)
    current_share_price: float = Field(0.0, ge=0.0, allow_inf_nan=False)


class ComparableParameters(BaseModel):
    """Multiples for the bull/base/bear comparable valuation."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    pr_bull_multiple: float = Field(10.0, ge=0.0, allow_inf_nan=False)
    pr_base_multiple: float = Field(7.5, ge=0.0, allow_inf_nan=False)
    pr_bear_multiple: float = Field(5.0, ge=0.0, allow_inf_nan=False)
    pe_bull_peg: float = Field(2.0, ge=0.0, allow_inf_nan=False)
    pe_base_peg: float = Field(1.5, ge=0.0, allow_inf_nan=False)
    pe_bear_peg: float = Field(1.0, ge=0.0, allow_inf_nan=False)
    dcf_bull_multiplier: float = Field(1.2, ge=0.0, allow_inf_nan=False)
    dcf_bear_multiplier: float = Field(0.8, ge=0.0, allow_inf_nan=False)


def build_parameters(model_cls, values: dict):
    """
    Validate a parameter mapping, converting pydantic errors to ValidationError.

    None values fall back to the field default; unknown keys are rejected.
    """
    unknown = sorted(set(values) - set(model_cls.model_fields))
    if unknown:
        raise ValidationError(
            f"Unknown {model_cls.__name__} fields: {', '.join(unknown)}",
            errors={name: "unknown field" for name in unknown},
        )
    known = {k: v for k, v in values.items() if v is not None}
    try:
        return model_cls.model_validate(known)
    except PydanticValidationError as exc:
        errors = {
            ".".join(str(p) for p in err["loc"]): err["msg"] for err in exc.errors()
        }
        raise ValidationError(
            f"Invalid {model_cls.__name__}: {', '.join(sorted(errors))}", errors=errors
        ) from exc


# ---------------------------------------------------------------------------
# COST OF CAPITAL
# ---------------------------------------------------------------------------

def cost_of_equity(risk_free_rate: float, beta: float, market_return: float) -> float:
    """CAPM: rf + beta * (market_return - rf)."""
    return risk_free_rate + beta * (market_return - risk_free_rate)


def weighted_average_cost_of_capital(
    cost_of_equity: float,
    equity_weight: float,
    cost_of_debt: float,
    tax_rate: float,
    debt_weight: float,
) -> float:
    """Blended discount rate with the after-tax cost of debt."""
    return cost_of_equity * equity_weight + cost_of_debt * (1 - tax_rate) * debt_weight


# ---------------------------------------------------------------------------
# DCF
# ---------------------------------------------------------------------------

def discounted_cash_flow(
    free_cash_flows: list[float],
    wacc: float,
    long_term_growth: float,
    total_debt: float,
    shares_outstanding: float,
) -> DCFResult:
    """
    Perpetuity-growth DCF over the projection horizon.

    Raises:
        DomainError: WACC <= long-term growth (terminal value undefined),
                     or no free cash flow projections.
        ValidationError: shares_outstanding <= 0.
    """
    if shares_outstanding <= 0:
        raise ValidationError(
            "shares_outstanding must be positive",
            errors={"shares_outstanding": "must be > 0"},
        )
    if not free_cash_flows:
        raise DomainError("No free cash flow projections to discount")
    if wacc <= long_term_growth:
        raise DomainError(
            f"WACC ({wacc:.4%}) must exceed long-term growth "
            f"({long_term_growth:.4%}) for a terminal value"
        )

    horizon = len(free_cash_flows)
    npv = present_value(free_cash_flows, wacc)
    terminal_value = free_cash_flows[-1] * (1 + long_term_growth) / (wacc - long_term_growth)
    terminal_value_discounted = terminal_value / discount_factor(horizon, wacc)
    target_value = npv + terminal_value_discounted
    target_equity_value = target_value - total_debt

    return DCFResult(
        wacc=wacc,
        long_term_growth=long_term_growth,
        npv=npv,
        terminal_value=terminal_value,
        terminal_value_discounted=terminal_value_discounted,
        target_value=target_value,
        target_equity_value=target_equity_value,
        target_price_per_share=target_equity_value / shares_outstanding,
    )


def sensitivity_table(
    free_cash_flows: list[float],
    wacc: float,
    long_term_growth: float,
    total_debt: float,
    shares_outstanding: float,
    step: float = SENSITIVITY_STEP,
) -> SensitivityTable:
    """
    5x5 target price grid over WACC (rows) x terminal growth (columns).

    Cells where the shifted WACC does not exceed the shifted growth are None.
    values[2][2] is computed from exactly (wacc, long_term_growth).
    """
    wacc_range = [float(wacc + offset * step) for offset in SENSITIVITY_OFFSETS]
    ltg_range = [float(long_term_growth + offset * step) for offset in SENSITIVITY_OFFSETS]

    values = []
    for w in wacc_range:
        row = []
        for g in ltg_range:
            try:
                result = discounted_cash_flow(
                    free_cash_flows, w, g, total_debt, shares_outstanding
                )
                row.append(result.target_price_per_share)
            except DomainError:
                row.append(None)
        values.append(row)

    return SensitivityTable(wacc_range=wacc_range, ltg_range=ltg_range, values=values)


def value_dcf(
    params: DCFParameters,
    free_cash_flows: list[float],
    shares_outstanding: float,
) -> DCFValuationResult:
    """CAPM -> WACC -> DCF -> sensitivity grid for one parameter set."""
    ke = cost_of_equity(params.risk_free_rate, params.beta, params.market_return)
    wacc = weighted_average_cost_of_capital(
        ke, params.equity_weight, params.cost_of_debt, params.tax_rate, params.debt_weight
    )
    dcf = discounted_cash_flow(
        free_cash_flows, wacc, params.long_term_growth,
        params.total_debt, shares_outstanding,
    )
    grid = sensitivity_table(
        free_cash_flows, wacc, params.long_term_growth,
        params.total_debt, shares_outstanding,
    )
    return DCFValuationResult(cost_of_equity=ke, dcf=dcf, sensitivity=grid)


# ---------------------------------------------------------------------------
# COMPARABLES
# ---------------------------------------------------------------------------

def earnings_growth(income_statement: list[IncomeStatementRow]) -> float:
    """Year-over-year EPS growth of the last two annual rows."""
    annual = sorted(
        (r for r in income_statement if r.quarter is None), key=lambda r: r.year
    )
    if len(annual) >= 2 and annual[-2].eps:
        return (annual[-1].eps - annual[-2].eps) / abs(annual[-2].eps)
    return DEFAULT_EARNINGS_GROWTH


def comparable_valuation(
    params: ComparableParameters,
    income_statement: list[IncomeStatementRow],
    shares_outstanding: float,
    current_share_price: float = 0.0,
    dcf_price: Optional[float] = None,
) -> ValuationComparisonResult:
    """
    Bull/base/bear targets from price/revenue and PEG multiples plus DCF.

    DCF targets are None when the DCF step failed; the blended average then
    covers the multiple-based targets only.
    """
    annual = sorted(
        (r for r in income_statement if r.quarter is None), key=lambda r: r.year
    )
    last = annual[-1] if annual else IncomeStatementRow(year=0)
    revenue_per_share = last.revenue / shares_outstanding if shares_outstanding > 0 else 0.0
    growth_pct = earnings_growth(annual) * 100

    def _pr(multiple: float) -> float:
        return round(revenue_per_share * multiple, 2)

    def _pe(peg: float) -> float:
        return round(last.eps * growth_pct * peg, 2)

    def _dcf(multiplier: float) -> Optional[float]:
        return None if dcf_price is None else round(dcf_price * multiplier, 2)

    targets = {
        "pr_bull_target": _pr(params.pr_bull_multiple),
        "pr_base_target": _pr(params.pr_base_multiple),
        "pr_bear_target": _pr(params.pr_bear_multiple),
        "pe_bull_target": _pe(params.pe_bull_peg),
        "pe_base_target": _pe(params.pe_base_peg),
        "pe_bear_target": _pe(params.pe_bear_peg),
        "dcf_bull_target": _dcf(params.dcf_bull_multiplier),
        "dcf_base_target": _dcf(1.0),
        "dcf_bear_target": _dcf(params.dcf_bear_multiplier),
    }
    available = [v for v in targets.values() if v is not None]
    average_target = round(sum(available) / len(available), 2)
    percent_to_target = (
        round((average_target - current_share_price) / current_share_price, 4)
        if current_share_price > 0 else None
    )

    return ValuationComparisonResult(
        current_share_price=current_share_price,
        pr_bull_multiple=params.pr_bull_multiple,
        pr_base_multiple=params.pr_base_multiple,
        pr_bear_multiple=params.pr_bear_multiple,
        pe_bull_peg=params.pe_bull_peg,
        pe_base_peg=params.pe_base_peg,
        pe_bear_peg=params.pe_bear_peg,
        average_target=average_target,
        percent_to_target=percent_to_target,
        **targets,
    )
