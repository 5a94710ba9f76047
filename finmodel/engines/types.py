"""
FinModel — Engine Record Types

Plain dataclasses passed between engine stages. They are returned by value and
never mutated by a later stage; the recalculation service converts them into
ORM rows (statement lines, valuation records) or JSON payloads.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional


# ---------------------------------------------------------------------------
# FORECAST
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ForecastPeriod:
    """One sub-annual period of the forecast (a month or a quarter)."""
    period: str               # "2025-01" or "2025-Q1"
    year: int
    sub_period: int           # month 1-12 or quarter 1-4
    growth_rate: float        # effective annual growth rate for this year
    customers: float
    revenue: float
    cogs: float
    gross_profit: float
    sales_marketing: float
    research_development: float
    general_admin: float
    depreciation: float
    total_opex: float
    ebitda: float
    operating_income: float
    income_tax: float
    net_income: float
    capex: float
    cash_flow: float
    cash_balance: float
    runway_months: Optional[float]

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class AnnualSummary:
    """
    Aggregate of the periods in one calendar year (or one quarter).

    Flow fields are sums; `customers`, `cash_balance` and `runway_months` are
    taken from the last period.
    """
    period: str               # "2025" or "2025-Q1"
    year: int
    quarter: Optional[int]
    revenue: float
    cogs: float
    gross_profit: float
    sales_marketing: float
    research_development: float
    general_admin: float
    depreciation: float
    total_opex: float
    ebitda: float
    operating_income: float
    income_tax: float
    net_income: float
    capex: float
    cash_flow: float
    cash_balance: float
    customers: float
    runway_months: Optional[float]

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# STATEMENTS
# ---------------------------------------------------------------------------

@dataclass
class IncomeStatementRow:
    year: int
    quarter: Optional[int] = None
    is_actual: bool = False
    revenue: float = 0.0
    cogs: float = 0.0
    gross_profit: float = 0.0
    sales_marketing: float = 0.0
    research_development: float = 0.0
    general_admin: float = 0.0
    depreciation: float = 0.0
    total_expenses: float = 0.0
    operating_income: float = 0.0
    ebitda: float = 0.0
    pre_tax_income: float = 0.0
    income_tax: float = 0.0
    net_income: float = 0.0
    shares_outstanding: float = 0.0
    eps: float = 0.0


@dataclass
class BalanceSheetRow:
    year: int
    quarter: Optional[int] = None
    is_actual: bool = False
    cash: float = 0.0
    accounts_receivable: float = 0.0
    inventory: float = 0.0
    total_current_assets: float = 0.0
    equipment: float = 0.0
    depreciation_accum: float = 0.0
    total_long_term_assets: float = 0.0
    total_assets: float = 0.0
    accounts_payable: float = 0.0
    total_current_liabilities: float = 0.0
    long_term_debt: float = 0.0
    total_long_term_liabilities: float = 0.0
    total_liabilities: float = 0.0
    common_shares: float = 0.0
    retained_earnings: float = 0.0
    total_equity: float = 0.0
    total_liabilities_and_equity: float = 0.0


@dataclass
class CashFlowRow:
    year: int
    quarter: Optional[int] = None
    is_actual: bool = False
    net_income: float = 0.0
    depreciation_add: float = 0.0
    ar_change: float = 0.0
    inventory_change: float = 0.0
    ap_change: float = 0.0
    operating_cash_flow: float = 0.0
    capex: float = 0.0
    investing_cash_flow: float = 0.0
    long_term_debt_change: float = 0.0
    financing_cash_flow: float = 0.0
    net_cash_change: float = 0.0
    beginning_cash: float = 0.0
    ending_cash: float = 0.0
    free_cash_flow: float = 0.0


STATEMENT_ROW_TYPES = {
    "income_statement": IncomeStatementRow,
    "balance_sheet": BalanceSheetRow,
    "cash_flow": CashFlowRow,
}


@dataclass(frozen=True)
class BalanceCheck:
    year: int
    quarter: Optional[int]
    difference: float
    status: str               # "Balanced" | "Imbalanced"


@dataclass
class StatementSet:
    """Full replacement set of statement rows for one model, plus balance checks."""
    income_statement: list = field(default_factory=list)
    balance_sheet: list = field(default_factory=list)
    cash_flow: list = field(default_factory=list)
    balance_checks: list = field(default_factory=list)
    warnings: list = field(default_factory=list)

    @property
    def is_balanced(self) -> bool:
        return all(c.status == "Balanced" for c in self.balance_checks)


# ---------------------------------------------------------------------------
# VALUATION
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DCFResult:
    wacc: float
    long_term_growth: float
    npv: float
    terminal_value: float
    terminal_value_discounted: float
    target_value: float           # enterprise value: NPV + discounted TV
    target_equity_value: float
    target_price_per_share: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SensitivityTable:
    wacc_range: list
    ltg_range: list
    values: list                  # values[wacc_index][ltg_index], None where WACC <= g

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class DCFValuationResult:
    """Everything the live DCF record needs: CAPM output, DCF and sensitivity grid."""
    cost_of_equity: float
    dcf: DCFResult
    sensitivity: SensitivityTable

    def to_dict(self) -> dict:
        payload = {"cost_of_equity": self.cost_of_equity}
        payload.update(self.dcf.to_dict())
        payload["sensitivity"] = self.sensitivity.to_dict()
        return payload


@dataclass(frozen=True)
class ValuationComparisonResult:
    current_share_price: float
    pr_bull_multiple: float
    pr_base_multiple: float
    pr_bear_multiple: float
    pe_bull_peg: float
    pe_base_peg: float
    pe_bear_peg: float
    pr_bull_target: float
    pr_base_target: float
    pr_bear_target: float
    pe_bull_target: float
    pe_base_target: float
    pe_bear_target: float
    dcf_bull_target: Optional[float]
    dcf_base_target: Optional[float]
    dcf_bear_target: Optional[float]
    average_target: float
    percent_to_target: Optional[float]

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# VARIANCE
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VarianceLine:
    forecast: float
    actual: Optional[float]
    variance: Optional[float]
    variance_percent: Optional[float]


@dataclass(frozen=True)
class VarianceRow:
    period: str
    year: int
    revenue: VarianceLine
    cogs: VarianceLine
    operating_expenses: VarianceLine
    net_income: VarianceLine
    cash_balance: VarianceLine
    customers: VarianceLine

    @property
    def has_actual(self) -> bool:
        return any(
            getattr(self, name).actual is not None
            for name in ("revenue", "cogs", "operating_expenses",
                         "net_income", "cash_balance", "customers")
        )

    def to_dict(self) -> dict:
        return asdict(self)
