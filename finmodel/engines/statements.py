"""
FinModel — Statement Derivation Engine

Expands the annual forecast into Income Statement, Balance Sheet and Cash Flow
rows for every model year, honoring the `is_actual` flag on stored rows.

Rules:
    - Stored rows with is_actual=True are copied through unchanged (annual and
      quarterly) when their year is inside the model range. Actual rows for
      years outside the range stay stored but take no part in the result.
      Everything else is recomputed; only annual rows are derived.
    - A year without an actual annual income statement but with quarterly
      actual income rows rolls those quarters up (forecast quarters fill the
      gaps) instead of using the forecast annual summary.
    - Values are rounded to whole currency units at derivation time and every
      subtotal is computed from the rounded parts, so a fresh forecast balances
      exactly (zero difference, not merely within tolerance).
    - Each year reads the *effective* prior-year balance sheet; an actual prior
      row is the opening balance of the following year.
    - A year with no AnnualSummary gets a zero-filled income statement.

Derivation order for one year:

    income statement  (actual row, quarterly roll-up, or annual summary)
        -> balance sheet accounts  (A/R, inventory, A/P, PP&E, debt)
        -> cash flow               (deltas of those accounts + NI + D&A)
        -> balance sheet           (cash = cash flow ending cash)

Opening balance (year before start): cash = initial_cash,
long-term debt = opening_debt, common shares = initial_cash - opening_debt.

The Balance Invariant Checker reports each year as "Balanced" or "Imbalanced";
an imbalance is a ConsistencyWarning, never an exception.
"""

import logging
from collections.abc import Mapping
from dataclasses import fields, replace
from typing import Iterable, Optional

from ..config import BALANCE_TOLERANCE
from ..errors import ConsistencyWarning
from .assumptions import AssumptionSet
from .types import (
    AnnualSummary, BalanceCheck, BalanceSheetRow, CashFlowRow,
    IncomeStatementRow, StatementSet, STATEMENT_ROW_TYPES,
)

logger = logging.getLogger("finmodel.engines.statements")

STATUS_BALANCED = "Balanced"
STATUS_IMBALANCED = "Imbalanced"


def _r(value: float) -> float:
    """Round to whole currency units."""
    return float(round(value))


def _sort_key(row) -> tuple:
    return (row.year, row.quarter or 0)


# ---------------------------------------------------------------------------
# STORED ROWS
# ---------------------------------------------------------------------------

def coerce_row(kind: str, source):
    """
    Convert a stored row (ORM instance, mapping or dataclass row) into the
    engine row type for `kind`. Null numeric columns read as 0.
    """
    row_type = STATEMENT_ROW_TYPES[kind]
    data = {}
    for f in fields(row_type):
        if isinstance(source, Mapping):
            if f.name not in source:
                continue
            value = source[f.name]
        elif hasattr(source, f.name):
            value = getattr(source, f.name)
        else:
            continue
        if value is None and f.name != "quarter":
            continue
        data[f.name] = value
    return row_type(**data)


def _actual_rows(kind: str, stored: Optional[Mapping]) -> list:
    if not stored:
        return []
    rows = [coerce_row(kind, r) for r in stored.get(kind, ())]
    return [r for r in rows if r.is_actual]


def in_range_rows(rows: list, years) -> list:
    """Rows whose year is one of `years`; the rest are logged and dropped."""
    kept = [r for r in rows if r.year in years]
    if len(kept) < len(rows):
        stale = sorted({r.year for r in rows if r.year not in years})
        logger.info(f"Ignoring actual rows outside the model years: {stale}")
    return kept


# ---------------------------------------------------------------------------
# DERIVATION
# ---------------------------------------------------------------------------

def opening_balance(assumptions: AssumptionSet, year: int) -> BalanceSheetRow:
    """Balance sheet at the end of the year before the first model year."""
    cash = _r(assumptions.initial_cash)
    debt = _r(assumptions.opening_debt)
    common = cash - debt
    return BalanceSheetRow(
        year=year,
        cash=cash,
        total_current_assets=cash,
        total_assets=cash,
        long_term_debt=debt,
        total_long_term_liabilities=debt,
        total_liabilities=debt,
        common_shares=common,
        total_equity=common,
        total_liabilities_and_equity=cash,
    )


def derive_income_statement(
    year: int,
    summary: Optional[AnnualSummary],
    shares_outstanding: float,
) -> IncomeStatementRow:
    """Income statement row from one annual summary (zero-filled if missing)."""
    if summary is None:
        return IncomeStatementRow(year=year, shares_outstanding=shares_outstanding)

    revenue = _r(summary.revenue)
    cogs = _r(summary.cogs)
    gross_profit = revenue - cogs
    sales_marketing = _r(summary.sales_marketing)
    research_development = _r(summary.research_development)
    general_admin = _r(summary.general_admin)
    depreciation = _r(summary.depreciation)
    total_expenses = sales_marketing + research_development + general_admin + depreciation
    operating_income = gross_profit - total_expenses
    income_tax = _r(summary.income_tax)
    net_income = operating_income - income_tax
    eps = round(net_income / shares_outstanding, 2) if shares_outstanding > 0 else 0.0

    return IncomeStatementRow(
        year=year,
        revenue=revenue,
        cogs=cogs,
        gross_profit=gross_profit,
        sales_marketing=sales_marketing,
        research_development=research_development,
        general_admin=general_admin,
        depreciation=depreciation,
        total_expenses=total_expenses,
        operating_income=operating_income,
        ebitda=operating_income + depreciation,
        pre_tax_income=operating_income,
        income_tax=income_tax,
        net_income=net_income,
        shares_outstanding=shares_outstanding,
        eps=eps,
    )


def project_accounts(
    income: IncomeStatementRow,
    prior: BalanceSheetRow,
    assumptions: AssumptionSet,
) -> dict:
    """Percentage-of-revenue working capital and roll-forward of PP&E and debt."""
    revenue = income.revenue
    return {
        "accounts_receivable": _r(revenue * assumptions.ar_percent),
        "inventory": _r(revenue * assumptions.inventory_percent),
        "accounts_payable": _r(revenue * assumptions.ap_percent),
        "equipment": prior.equipment + _r(revenue * assumptions.capex_percent),
        "depreciation_accum": prior.depreciation_accum + income.depreciation,
        "long_term_debt": max(
            prior.long_term_debt - _r(assumptions.annual_debt_repayment), 0.0
        ),
    }


def _accounts_of(row: BalanceSheetRow) -> dict:
    return {
        "accounts_receivable": row.accounts_receivable,
        "inventory": row.inventory,
        "accounts_payable": row.accounts_payable,
        "equipment": row.equipment,
        "depreciation_accum": row.depreciation_accum,
        "long_term_debt": row.long_term_debt,
    }


def derive_cash_flow(
    year: int,
    income: IncomeStatementRow,
    prior: BalanceSheetRow,
    accounts: dict,
) -> CashFlowRow:
    """Cash flow row as year-over-year deltas of the balance sheet accounts."""
    ar_change = accounts["accounts_receivable"] - prior.accounts_receivable
    inventory_change = accounts["inventory"] - prior.inventory
    ap_change = accounts["accounts_payable"] - prior.accounts_payable
    operating = (
        income.net_income + income.depreciation
        - ar_change - inventory_change + ap_change
    )
    capex = -(accounts["equipment"] - prior.equipment)
    debt_change = accounts["long_term_debt"] - prior.long_term_debt
    net_change = operating + capex + debt_change

    return CashFlowRow(
        year=year,
        net_income=income.net_income,
        depreciation_add=income.depreciation,
        ar_change=ar_change,
        inventory_change=inventory_change,
        ap_change=ap_change,
        operating_cash_flow=operating,
        capex=capex,
        investing_cash_flow=capex,
        long_term_debt_change=debt_change,
        financing_cash_flow=debt_change,
        net_cash_change=net_change,
        beginning_cash=prior.cash,
        ending_cash=prior.cash + net_change,
        free_cash_flow=operating + capex,
    )


def derive_balance_sheet(
    year: int,
    income: IncomeStatementRow,
    prior: BalanceSheetRow,
    accounts: dict,
    cash_flow: CashFlowRow,
) -> BalanceSheetRow:
    cash = cash_flow.ending_cash
    total_current_assets = cash + accounts["accounts_receivable"] + accounts["inventory"]
    total_long_term_assets = accounts["equipment"] - accounts["depreciation_accum"]
    total_assets = total_current_assets + total_long_term_assets

    total_current_liabilities = accounts["accounts_payable"]
    total_long_term_liabilities = accounts["long_term_debt"]
    total_liabilities = total_current_liabilities + total_long_term_liabilities

    retained_earnings = prior.retained_earnings + income.net_income
    total_equity = prior.common_shares + retained_earnings

    return BalanceSheetRow(
        year=year,
        cash=cash,
        accounts_receivable=accounts["accounts_receivable"],
        inventory=accounts["inventory"],
        total_current_assets=total_current_assets,
        equipment=accounts["equipment"],
        depreciation_accum=accounts["depreciation_accum"],
        total_long_term_assets=total_long_term_assets,
        total_assets=total_assets,
        accounts_payable=accounts["accounts_payable"],
        total_current_liabilities=total_current_liabilities,
        long_term_debt=accounts["long_term_debt"],
        total_long_term_liabilities=total_long_term_liabilities,
        total_liabilities=total_liabilities,
        common_shares=prior.common_shares,
        retained_earnings=retained_earnings,
        total_equity=total_equity,
        total_liabilities_and_equity=total_liabilities + total_equity,
    )


# ---------------------------------------------------------------------------
# BALANCE INVARIANT CHECKER
# ---------------------------------------------------------------------------

def check_balance(
    balance_sheet: Iterable[BalanceSheetRow],
    tolerance: float = BALANCE_TOLERANCE,
) -> tuple[list[BalanceCheck], list[ConsistencyWarning]]:
    """Per-row assets minus liabilities-and-equity, flagged beyond `tolerance`."""
    checks, warnings = [], []
    for row in balance_sheet:
        difference = row.total_assets - row.total_liabilities_and_equity
        if abs(difference) > tolerance:
            status = STATUS_IMBALANCED
            warnings.append(ConsistencyWarning(row.year, difference, row.quarter))
        else:
            status = STATUS_BALANCED
        checks.append(BalanceCheck(row.year, row.quarter, difference, status))
    return checks, warnings


# ---------------------------------------------------------------------------
# ENTRY POINT
# ---------------------------------------------------------------------------

# Income statement components a quarterly roll-up sums; subtotals are rebuilt
ROLLUP_FIELDS = (
    "revenue", "cogs", "sales_marketing", "research_development",
    "general_admin", "depreciation", "income_tax",
)


def rollup_quarters(
    year: int,
    summary: Optional[AnnualSummary],
    quarterly: Mapping,
    actual_quarters: Mapping,
) -> Optional[AnnualSummary]:
    """
    Annual summary for a year with quarterly actuals: each quarter contributes
    its actual income statement row when one exists, otherwise its forecast
    quarter. Returns `summary` unchanged when the year has no quarterly actuals.
    """
    entered = {q: row for (y, q), row in actual_quarters.items() if y == year}
    if summary is None or not entered:
        return summary

    totals = dict.fromkeys(ROLLUP_FIELDS, 0.0)
    for quarter in range(1, 5):
        source = entered.get(quarter) or quarterly.get((year, quarter))
        if source is None:
            continue
        for name in ROLLUP_FIELDS:
            totals[name] += getattr(source, name)

    logger.debug(f"{year}: annual income rolled up from quarters {sorted(entered)}")
    return replace(summary, **totals)


def derive_statements(
    summaries: Iterable[AnnualSummary],
    assumptions: AssumptionSet,
    years: Iterable[int],
    stored: Optional[Mapping] = None,
    shares_outstanding: float = 0.0,
    tolerance: float = BALANCE_TOLERANCE,
) -> StatementSet:
    """
    Build the full replacement set of statement rows.

    Args:
        summaries: Annual summaries from the aggregator. Quarterly summaries
                   may be included; they fill the quarters without actuals
                   when a year's income statement is rolled up from quarters.
        assumptions: Effective assumption set.
        years: Model years in order.
        stored: Currently persisted rows keyed by "income_statement",
                "balance_sheet", "cash_flow". Only actual rows whose year is
                one of `years` are read; the rest stay out of the result.
        shares_outstanding: For EPS.
        tolerance: Balance checker tolerance in currency units.

    Returns:
        StatementSet with rows sorted by (year, quarter), balance checks and
        ConsistencyWarnings for imbalanced years.
    """
    years = sorted(years)
    in_range = set(years)
    summaries = list(summaries)
    by_year = {s.year: s for s in summaries if s.quarter is None}
    by_quarter = {(s.year, s.quarter): s for s in summaries if s.quarter is not None}

    actual_is = in_range_rows(_actual_rows("income_statement", stored), in_range)
    actual_bs = in_range_rows(_actual_rows("balance_sheet", stored), in_range)
    actual_cf = in_range_rows(_actual_rows("cash_flow", stored), in_range)
    annual_is = {r.year: r for r in actual_is if r.quarter is None}
    annual_bs = {r.year: r for r in actual_bs if r.quarter is None}
    annual_cf = {r.year: r for r in actual_cf if r.quarter is None}
    quarterly_is = {(r.year, r.quarter): r for r in actual_is if r.quarter is not None}

    result = StatementSet(
        income_statement=[replace(r) for r in actual_is],
        balance_sheet=[replace(r) for r in actual_bs],
        cash_flow=[replace(r) for r in actual_cf],
    )

    prior = opening_balance(assumptions, years[0] - 1) if years else None
    for year in years:
        income = annual_is.get(year)
        if income is None:
            summary = rollup_quarters(year, by_year.get(year), by_quarter, quarterly_is)
            income = derive_income_statement(year, summary, shares_outstanding)
            result.income_statement.append(income)

        balance = annual_bs.get(year)
        if balance is not None:
            accounts = _accounts_of(balance)
        else:
            accounts = project_accounts(income, prior, assumptions)

        cash_flow = annual_cf.get(year)
        if cash_flow is None:
            cash_flow = derive_cash_flow(year, income, prior, accounts)
            result.cash_flow.append(cash_flow)

        if balance is None:
            balance = derive_balance_sheet(year, income, prior, accounts, cash_flow)
            result.balance_sheet.append(balance)

        prior = balance

    result.income_statement.sort(key=_sort_key)
    result.balance_sheet.sort(key=_sort_key)
    result.cash_flow.sort(key=_sort_key)

    result.balance_checks, result.warnings = check_balance(result.balance_sheet, tolerance)
    for warning in result.warnings:
        logger.warning(str(warning))

    return result
