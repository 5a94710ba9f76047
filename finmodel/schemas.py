"""
FinModel Pydantic Schemas

Defines request/response models for the FastAPI REST API.
Pydantic validates the shape of incoming data; domain ranges for assumptions
and valuation parameters are enforced by the engine (ValidationError -> 422).

Architecture:
    - Create schemas: used for POST request bodies
    - Update / Patch schemas: used for PUT and PATCH bodies (all fields optional)
    - Response schemas: used for GET/POST response serialization

Naming convention:
    - XxxCreate: request body for creating Xxx
    - XxxUpdate: request body for updating Xxx
    - XxxResponse: response body for Xxx
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

VALID_GRANULARITIES = ["monthly", "quarterly"]
VALID_SCENARIO_TYPES = ["optimistic", "base", "pessimistic"]

# "2025", "2025-03" or "2025-Q1"
PERIOD_PATTERN = r"^\d{4}(-(0[1-9]|1[0-2])|-Q[1-4])?$"


# ---------------------------------------------------------------------------
# ASSUMPTION SCHEMAS
# ---------------------------------------------------------------------------

class AssumptionPatch(BaseModel):
    """
    Partial assumption edit. Only fields that are sent are applied; sending
    null resets a field to its default. Unknown fields are rejected.
    """
    revenue_growth_rate: Optional[float] = None
    churn_rate: Optional[float] = None
    avg_revenue_per_unit: Optional[float] = None
    initial_customers: Optional[float] = None
    cogs_percent: Optional[float] = None
    sales_marketing_percent: Optional[float] = None
    rd_percent: Optional[float] = None
    ga_percent: Optional[float] = None
    depreciation_percent: Optional[float] = None
    tax_rate: Optional[float] = None
    capex_percent: Optional[float] = None
    ar_percent: Optional[float] = None
    ap_percent: Optional[float] = None
    inventory_percent: Optional[float] = None
    initial_cash: Optional[float] = None
    monthly_burn_override: Optional[float] = None
    growth_decay_rate: Optional[float] = None
    terminal_growth_rate: Optional[float] = None
    target_net_margin: Optional[float] = None
    opening_debt: Optional[float] = None
    annual_debt_repayment: Optional[float] = None

    model_config = {"extra": "forbid"}


class AssumptionResponse(BaseModel):
    """Stored assumption record (base or scenario)."""
    id: int
    model_id: int
    scenario_id: Optional[int] = None
    revenue_growth_rate: float
    churn_rate: float
    avg_revenue_per_unit: float
    initial_customers: float
    cogs_percent: float
    sales_marketing_percent: float
    rd_percent: float
    ga_percent: float
    depreciation_percent: float
    tax_rate: float
    capex_percent: float
    ar_percent: float
    ap_percent: float
    inventory_percent: float
    initial_cash: float
    monthly_burn_override: Optional[float] = None
    growth_decay_rate: float
    terminal_growth_rate: float
    target_net_margin: Optional[float] = None
    opening_debt: float
    annual_debt_repayment: float

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# FINANCIAL MODEL SCHEMAS
# ---------------------------------------------------------------------------

class FinancialModelCreate(BaseModel):
    """Request body for creating a model. Base assumptions are created with it."""
    name: str = Field(..., min_length=1, max_length=200)
    ticker: Optional[str] = None
    description: Optional[str] = None
    currency: str = "USD"
    start_year: int = Field(..., ge=1900, le=2200)
    end_year: int = Field(..., ge=1900, le=2200)
    shares_outstanding: float = Field(1_000_000, gt=0)
    granularity: str = "monthly"
    scenario_bull_multiplier: float = Field(1.2, ge=0)
    scenario_bear_multiplier: float = Field(0.8, ge=0)
    assumptions: Optional[AssumptionPatch] = None

    @field_validator("granularity")
    @classmethod
    def validate_granularity(cls, v):
        if v not in VALID_GRANULARITIES:
            raise ValueError(f"Invalid granularity: {v}. Must be one of {VALID_GRANULARITIES}")
        return v

    @model_validator(mode="after")
    def validate_year_range(self):
        if self.end_year < self.start_year:
            raise ValueError("end_year must be >= start_year")
        return self


class FinancialModelUpdate(BaseModel):
    """Request body for updating a model. All fields optional; triggers a recalculation."""
    name: Optional[str] = None
    ticker: Optional[str] = None
    description: Optional[str] = None
    currency: Optional[str] = None
    start_year: Optional[int] = Field(None, ge=1900, le=2200)
    end_year: Optional[int] = Field(None, ge=1900, le=2200)
    shares_outstanding: Optional[float] = Field(None, gt=0)
    granularity: Optional[str] = None
    scenario_bull_multiplier: Optional[float] = Field(None, ge=0)
    scenario_bear_multiplier: Optional[float] = Field(None, ge=0)

    @field_validator("granularity")
    @classmethod
    def validate_granularity(cls, v):
        if v is not None and v not in VALID_GRANULARITIES:
            raise ValueError(f"Invalid granularity: {v}. Must be one of {VALID_GRANULARITIES}")
        return v


class FinancialModelResponse(BaseModel):
    """Response body for a model."""
    id: int
    name: str
    ticker: Optional[str] = None
    description: Optional[str] = None
    currency: str
    start_year: int
    end_year: int
    shares_outstanding: float
    granularity: str
    scenario_bull_multiplier: float
    scenario_bear_multiplier: float
    last_fingerprint: Optional[str] = None
    last_recalculated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# SCENARIO SCHEMAS
# ---------------------------------------------------------------------------

class ScenarioCreate(BaseModel):
    """
    Request body for a scenario. Assumptions are derived from the base set by
    scenario type; `assumptions` overrides individual fields on top.
    """
    name: str = Field(..., min_length=1)
    scenario_type: str = "base"
    color: str = "#3b82f6"
    assumptions: Optional[AssumptionPatch] = None

    @field_validator("scenario_type")
    @classmethod
    def validate_scenario_type(cls, v):
        if v not in VALID_SCENARIO_TYPES:
            raise ValueError(f"Invalid scenario_type: {v}. Must be one of {VALID_SCENARIO_TYPES}")
        return v


class ScenarioResponse(BaseModel):
    id: int
    model_id: int
    name: str
    scenario_type: str
    color: str
    assumption: Optional[AssumptionResponse] = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# ACTUALS
# ---------------------------------------------------------------------------

class ActualCreate(BaseModel):
    """Observed figures for one period. Re-posting a period replaces it."""
    period: str = Field(..., pattern=PERIOD_PATTERN)
    revenue: Optional[float] = None
    cogs: Optional[float] = None
    operating_expenses: Optional[float] = None
    net_income: Optional[float] = None
    cash_balance: Optional[float] = None
    customers: Optional[float] = Field(None, ge=0)


class ActualResponse(BaseModel):
    id: int
    model_id: int
    period: str
    revenue: Optional[float] = None
    cogs: Optional[float] = None
    operating_expenses: Optional[float] = None
    net_income: Optional[float] = None
    cash_balance: Optional[float] = None
    customers: Optional[float] = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# STATEMENT SCHEMAS
# ---------------------------------------------------------------------------

class StatementActualUpdate(BaseModel):
    """
    Mark one statement row as actual. `values` holds the user-entered cells;
    unspecified cells keep their current (projected) value.
    """
    values: dict[str, float] = Field(default_factory=dict)
    quarter: Optional[int] = Field(None, ge=1, le=4)


class IncomeStatementLineResponse(BaseModel):
    year: int
    quarter: Optional[int] = None
    is_actual: bool
    revenue: float
    cogs: float
    gross_profit: float
    sales_marketing: float
    research_development: float
    general_admin: float
    depreciation: float
    total_expenses: float
    operating_income: float
    ebitda: float
    pre_tax_income: float
    income_tax: float
    net_income: float
    shares_outstanding: float
    eps: float

    model_config = {"from_attributes": True}


class BalanceSheetLineResponse(BaseModel):
    year: int
    quarter: Optional[int] = None
    is_actual: bool
    cash: float
    accounts_receivable: float
    inventory: float
    total_current_assets: float
    equipment: float
    depreciation_accum: float
    total_long_term_assets: float
    total_assets: float
    accounts_payable: float
    total_current_liabilities: float
    long_term_debt: float
    total_long_term_liabilities: float
    total_liabilities: float
    common_shares: float
    retained_earnings: float
    total_equity: float
    total_liabilities_and_equity: float

    model_config = {"from_attributes": True}


class CashFlowLineResponse(BaseModel):
    year: int
    quarter: Optional[int] = None
    is_actual: bool
    net_income: float
    depreciation_add: float
    ar_change: float
    inventory_change: float
    ap_change: float
    operating_cash_flow: float
    capex: float
    investing_cash_flow: float
    long_term_debt_change: float
    financing_cash_flow: float
    net_cash_change: float
    beginning_cash: float
    ending_cash: float
    free_cash_flow: float

    model_config = {"from_attributes": True}


STATEMENT_RESPONSES = {
    "income_statement": IncomeStatementLineResponse,
    "balance_sheet": BalanceSheetLineResponse,
    "cash_flow": CashFlowLineResponse,
}


# ---------------------------------------------------------------------------
# VALUATION SCHEMAS
# ---------------------------------------------------------------------------

class DCFParametersUpdate(BaseModel):
    """Partial edit of the DCF inputs. Unknown fields are rejected."""
    risk_free_rate: Optional[float] = None
    beta: Optional[float] = None
    market_return: Optional[float] = None
    cost_of_debt: Optional[float] = None
    tax_rate: Optional[float] = None
    equity_weight: Optional[float] = None
    debt_weight: Optional[float] = None
    long_term_growth: Optional[float] = None
    total_debt: Optional[float] = None
    current_share_price: Optional[float] = None

    model_config = {"extra": "forbid"}


class SensitivityResponse(BaseModel):
    """Target price grid: values[i][j] for wacc_range[i] x ltg_range[j]."""
    wacc_range: list[float]
    ltg_range: list[float]
    values: list[list[Optional[float]]]


class DCFValuationResponse(BaseModel):
    model_id: int
    risk_free_rate: float
    beta: float
    market_return: float
    cost_of_debt: float
    tax_rate: float
    equity_weight: float
    debt_weight: float
    long_term_growth: float
    total_debt: float
    current_share_price: float
    cost_of_equity: Optional[float] = None
    wacc: Optional[float] = None
    npv: Optional[float] = None
    terminal_value: Optional[float] = None
    terminal_value_discounted: Optional[float] = None
    target_value: Optional[float] = None
    target_equity_value: Optional[float] = None
    target_price_per_share: Optional[float] = None
    sensitivity: Optional[SensitivityResponse] = None
    computed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ComparableParametersUpdate(BaseModel):
    """Partial edit of the comparable multiples."""
    pr_bull_multiple: Optional[float] = None
    pr_base_multiple: Optional[float] = None
    pr_bear_multiple: Optional[float] = None
    pe_bull_peg: Optional[float] = None
    pe_base_peg: Optional[float] = None
    pe_bear_peg: Optional[float] = None

    model_config = {"extra": "forbid"}


class ValuationComparisonResponse(BaseModel):
    model_id: int
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
    dcf_bull_target: Optional[float] = None
    dcf_base_target: Optional[float] = None
    dcf_bear_target: Optional[float] = None
    average_target: float
    percent_to_target: Optional[float] = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# RECALCULATION / ERROR SCHEMAS
# ---------------------------------------------------------------------------

class BalanceCheckResponse(BaseModel):
    year: int
    quarter: Optional[int] = None
    difference: float
    status: str


class ConsistencyWarningResponse(BaseModel):
    year: int
    quarter: Optional[int] = None
    difference: float
    message: str


class RecalculationResponse(BaseModel):
    """Summary of one full recalculation."""
    model_id: int
    fingerprint: str
    is_balanced: bool
    balance_checks: list[BalanceCheckResponse]
    warnings: list[ConsistencyWarningResponse]
    dcf_error: Optional[str] = None
    target_price_per_share: Optional[float] = None
    average_target: Optional[float] = None
    rows_written: dict[str, int]


class ErrorResponse(BaseModel):
    """Standard error response format."""
    detail: str
    error_code: Optional[str] = None
    context: Optional[dict] = None
