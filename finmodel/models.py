"""
FinModel ORM Models

Defines all database tables using SQLAlchemy 2.0 mapped_column style.

Architecture:
    - All models inherit from Base (defined in database.py)
    - Relationships defined with back_populates for bidirectional access
    - CASCADE deletes configured so removing a model cleans up every child row
    - UNIQUE constraints enforce one statement row per (model, year, quarter)

Tables:
    - financial_models: Model container (year range, shares, granularity)
    - scenarios: Named optimistic / base / pessimistic variants of a model
    - assumptions: Business assumptions (base: scenario_id NULL, or per scenario)
    - actuals: User-entered period observations used for variance
    - income_statement_lines / balance_sheet_lines / cash_flow_lines:
      Derived statement rows; is_actual rows are user-owned and never rewritten
    - dcf_valuations: Live DCF parameters + outputs + sensitivity grid (1:1)
    - valuation_comparisons: Live comparable-multiples valuation (1:1)
"""

import json
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Integer, Float, Text, Boolean, DateTime, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


def utc_now() -> datetime:
    """Timezone-aware current time for timestamp columns."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# MODEL CONTAINER
# ---------------------------------------------------------------------------

class FinancialModel(Base):
    """
    A company model. The year range is inclusive; granularity selects
    monthly or quarterly forecast periods.
    """
    __tablename__ = "financial_models"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    ticker: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    currency: Mapped[str] = mapped_column(Text, nullable=False, default="USD")
    start_year: Mapped[int] = mapped_column(Integer, nullable=False)
    end_year: Mapped[int] = mapped_column(Integer, nullable=False)
    shares_outstanding: Mapped[float] = mapped_column(Float, nullable=False, default=1_000_000)
    granularity: Mapped[str] = mapped_column(Text, nullable=False, default="monthly")

    # DCF-derived comparable targets: bull = price x bull, bear = price x bear
    scenario_bull_multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=1.2)
    scenario_bear_multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=0.8)

    # Result of the last recalculation
    last_fingerprint: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_recalculated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, onupdate=utc_now
    )

    # Relationships
    scenarios: Mapped[list["Scenario"]] = relationship(
        "Scenario", back_populates="model", cascade="all, delete"
    )
    assumptions: Mapped[list["Assumption"]] = relationship(
        "Assumption", back_populates="model", cascade="all, delete"
    )
    actuals: Mapped[list["Actual"]] = relationship(
        "Actual", back_populates="model", cascade="all, delete"
    )
    income_statement_lines: Mapped[list["IncomeStatementLine"]] = relationship(
        "IncomeStatementLine", back_populates="model", cascade="all, delete"
    )
    balance_sheet_lines: Mapped[list["BalanceSheetLine"]] = relationship(
        "BalanceSheetLine", back_populates="model", cascade="all, delete"
    )
    cash_flow_lines: Mapped[list["CashFlowLine"]] = relationship(
        "CashFlowLine", back_populates="model", cascade="all, delete"
    )
    dcf_valuation: Mapped[Optional["DCFValuation"]] = relationship(
        "DCFValuation", back_populates="model", uselist=False,
        cascade="all, delete"
    )
    valuation_comparison: Mapped[Optional["ValuationComparison"]] = relationship(
        "ValuationComparison", back_populates="model", uselist=False,
        cascade="all, delete"
    )

    def __repr__(self) -> str:
        return f"<FinancialModel(id={self.id}, name='{self.name}', {self.start_year}-{self.end_year})>"


class Scenario(Base):
    """Named variant of a model. Owns zero or one assumption record."""
    __tablename__ = "scenarios"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    model_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("financial_models.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    scenario_type: Mapped[str] = mapped_column(Text, nullable=False, default="base")
    color: Mapped[str] = mapped_column(Text, nullable=False, default="#3b82f6")

    # Relationships
    model: Mapped["FinancialModel"] = relationship("FinancialModel", back_populates="scenarios")
    assumption: Mapped[Optional["Assumption"]] = relationship(
        "Assumption", back_populates="scenario", uselist=False,
        cascade="all, delete"
    )

    def __repr__(self) -> str:
        return f"<Scenario(id={self.id}, name='{self.name}', type='{self.scenario_type}')>"


# ---------------------------------------------------------------------------
# INPUTS
# ---------------------------------------------------------------------------

class Assumption(Base):
    """
    Business assumptions for a model (scenario_id NULL) or one of its scenarios.
    Rates are decimals; ARPU is per customer per month.
    """
    __tablename__ = "assumptions"
    __table_args__ = (
        UniqueConstraint("model_id", "scenario_id", name="uq_assumption_scope"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    model_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("financial_models.id", ondelete="CASCADE"), nullable=False
    )
    scenario_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("scenarios.id", ondelete="CASCADE"), nullable=True
    )

    revenue_growth_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.10)
    churn_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.05)
    avg_revenue_per_unit: Mapped[float] = mapped_column(Float, nullable=False, default=100.0)
    initial_customers: Mapped[float] = mapped_column(Float, nullable=False, default=100.0)

    cogs_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.30)
    sales_marketing_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.20)
    rd_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.15)
    ga_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.10)
    depreciation_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.01)
    tax_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.25)

    capex_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.05)
    ar_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.15)
    ap_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.15)
    inventory_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.03)

    initial_cash: Mapped[float] = mapped_column(Float, nullable=False, default=100000.0)
    monthly_burn_override: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    growth_decay_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    terminal_growth_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.03)
    target_net_margin: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    opening_debt: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    annual_debt_repayment: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Relationships
    model: Mapped["FinancialModel"] = relationship("FinancialModel", back_populates="assumptions")
    scenario: Mapped[Optional["Scenario"]] = relationship("Scenario", back_populates="assumption")

    def __repr__(self) -> str:
        return f"<Assumption(model_id={self.model_id}, scenario_id={self.scenario_id})>"


class Actual(Base):
    """
    Observed figures for one period key ("2025-03", "2025-Q1" or "2025").
    Every metric is optional; missing metrics are excluded from variance.
    """
    __tablename__ = "actuals"
    __table_args__ = (
        UniqueConstraint("model_id", "period", name="uq_actual_period"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    model_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("financial_models.id", ondelete="CASCADE"), nullable=False
    )
    period: Mapped[str] = mapped_column(Text, nullable=False)
    revenue: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    cogs: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    operating_expenses: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    net_income: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    cash_balance: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    customers: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Relationship
    model: Mapped["FinancialModel"] = relationship("FinancialModel", back_populates="actuals")

    def __repr__(self) -> str:
        return f"<Actual(model_id={self.model_id}, period='{self.period}')>"


# ---------------------------------------------------------------------------
# STATEMENT TABLES
# ---------------------------------------------------------------------------

class IncomeStatementLine(Base):
    __tablename__ = "income_statement_lines"
    __table_args__ = (
        UniqueConstraint("model_id", "year", "quarter", name="uq_income_statement_period"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    model_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("financial_models.id", ondelete="CASCADE"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    quarter: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_actual: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    revenue: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    cogs: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    gross_profit: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    sales_marketing: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    research_development: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    general_admin: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    depreciation: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_expenses: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    operating_income: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    ebitda: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    pre_tax_income: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    income_tax: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    net_income: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    shares_outstanding: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    eps: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    model: Mapped["FinancialModel"] = relationship(
        "FinancialModel", back_populates="income_statement_lines"
    )

    def __repr__(self) -> str:
        return f"<IncomeStatementLine(year={self.year}, quarter={self.quarter}, actual={self.is_actual})>"


class BalanceSheetLine(Base):
    __tablename__ = "balance_sheet_lines"
    __table_args__ = (
        UniqueConstraint("model_id", "year", "quarter", name="uq_balance_sheet_period"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    model_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("financial_models.id", ondelete="CASCADE"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    quarter: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_actual: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    cash: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    accounts_receivable: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    inventory: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_current_assets: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    equipment: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    depreciation_accum: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_long_term_assets: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_assets: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    accounts_payable: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_current_liabilities: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    long_term_debt: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_long_term_liabilities: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_liabilities: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    common_shares: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    retained_earnings: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_equity: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_liabilities_and_equity: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    model: Mapped["FinancialModel"] = relationship(
        "FinancialModel", back_populates="balance_sheet_lines"
    )

    def __repr__(self) -> str:
        return f"<BalanceSheetLine(year={self.year}, quarter={self.quarter}, actual={self.is_actual})>"


class CashFlowLine(Base):
    __tablename__ = "cash_flow_lines"
    __table_args__ = (
        UniqueConstraint("model_id", "year", "quarter", name="uq_cash_flow_period"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    model_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("financial_models.id", ondelete="CASCADE"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    quarter: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_actual: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    net_income: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    depreciation_add: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    ar_change: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    inventory_change: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    ap_change: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    operating_cash_flow: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    capex: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    investing_cash_flow: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    long_term_debt_change: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    financing_cash_flow: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    net_cash_change: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    beginning_cash: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    ending_cash: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    free_cash_flow: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    model: Mapped["FinancialModel"] = relationship(
        "FinancialModel", back_populates="cash_flow_lines"
    )

    def __repr__(self) -> str:
        return f"<CashFlowLine(year={self.year}, quarter={self.quarter}, actual={self.is_actual})>"


STATEMENT_MODELS = {
    "income_statement": IncomeStatementLine,
    "balance_sheet": BalanceSheetLine,
    "cash_flow": CashFlowLine,
}


# ---------------------------------------------------------------------------
# VALUATION TABLES
# ---------------------------------------------------------------------------

class DCFValuation(Base):
    """
    Live DCF for a model: WACC inputs (user-editable) and outputs (recomputed).
    Outputs stay at their last good values when a recalculation hits a
    DomainError.
    """
    __tablename__ = "dcf_valuations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    model_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("financial_models.id", ondelete="CASCADE"),
        nullable=False, unique=True
    )

    # Parameters
    risk_free_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.043)
    beta: Mapped[float] = mapped_column(Float, nullable=False, default=1.25)
    market_return: Mapped[float] = mapped_column(Float, nullable=False, default=0.10)
    cost_of_debt: Mapped[float] = mapped_column(Float, nullable=False, default=0.055)
    tax_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.25)
    equity_weight: Mapped[float] = mapped_column(Float, nullable=False, default=0.70)
    debt_weight: Mapped[float] = mapped_column(Float, nullable=False, default=0.30)
    long_term_growth: Mapped[float] = mapped_column(Float, nullable=False, default=0.025)
    total_debt: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    current_share_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Outputs
    cost_of_equity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    wacc: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    npv: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    terminal_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    terminal_value_discounted: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    target_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    target_equity_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    target_price_per_share: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sensitivity_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    computed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    model: Mapped["FinancialModel"] = relationship("FinancialModel", back_populates="dcf_valuation")

    @property
    def sensitivity(self) -> Optional[dict]:
        return json.loads(self.sensitivity_json) if self.sensitivity_json else None

    def __repr__(self) -> str:
        return f"<DCFValuation(model_id={self.model_id}, wacc={self.wacc}, price={self.target_price_per_share})>"


class ValuationComparison(Base):
    """Comparable-multiples valuation: user multiples in, nine targets out."""
    __tablename__ = "valuation_comparisons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    model_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("financial_models.id", ondelete="CASCADE"),
        nullable=False, unique=True
    )

    # Parameters
    pr_bull_multiple: Mapped[float] = mapped_column(Float, nullable=False, default=10.0)
    pr_base_multiple: Mapped[float] = mapped_column(Float, nullable=False, default=7.5)
    pr_bear_multiple: Mapped[float] = mapped_column(Float, nullable=False, default=5.0)
    pe_bull_peg: Mapped[float] = mapped_column(Float, nullable=False, default=2.0)
    pe_base_peg: Mapped[float] = mapped_column(Float, nullable=False, default=1.5)
    pe_bear_peg: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)

    # Outputs
    current_share_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    pr_bull_target: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    pr_base_target: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    pr_bear_target: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    pe_bull_target: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    pe_base_target: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    pe_bear_target: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    dcf_bull_target: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    dcf_base_target: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    dcf_bear_target: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    average_target: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    percent_to_target: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    model: Mapped["FinancialModel"] = relationship(
        "FinancialModel", back_populates="valuation_comparison"
    )

    def __repr__(self) -> str:
        return f"<ValuationComparison(model_id={self.model_id}, average={self.average_target})>"
