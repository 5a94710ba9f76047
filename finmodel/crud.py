"""
FinModel CRUD Operations

Database access functions for all tables. These functions encapsulate
all SQLAlchemy queries and are called by the recalculation service and the
API routers. No financial logic lives here.

Architecture:
    - Each function takes a db: Session parameter (injected by FastAPI)
    - Functions return ORM model instances (routers convert to Pydantic)
    - Get functions return None if not found (callers raise 404)
    - List functions return lists (empty list if none found)
    - Functions with a `commit` flag only flush when commit=False, so the
      recalculation service can write a whole recalculation in one transaction

Naming convention:
    - create_xxx: INSERT new record
    - get_xxx: SELECT single record by ID
    - list_xxx: SELECT multiple records with optional filters
    - update_xxx: UPDATE existing record
    - delete_xxx: DELETE record (CASCADE handles children)
"""

import json
from dataclasses import asdict
from typing import Optional

from sqlalchemy.orm import Session

from .engines.assumptions import ASSUMPTION_FIELDS, AssumptionSet
from .engines.types import DCFValuationResult, StatementSet, ValuationComparisonResult
from .models import (
    FinancialModel, Scenario, Assumption, Actual,
    DCFValuation, ValuationComparison, STATEMENT_MODELS, utc_now,
)
from .schemas import ActualCreate, FinancialModelCreate


def _finish(db: Session, commit: bool, instance=None):
    if commit:
        db.commit()
        if instance is not None:
            db.refresh(instance)
    else:
        db.flush()
    return instance


# ---------------------------------------------------------------------------
# FINANCIAL MODEL CRUD
# ---------------------------------------------------------------------------

def create_model(
    db: Session,
    data: FinancialModelCreate,
    assumptions: AssumptionSet,
    commit: bool = True,
) -> FinancialModel:
    """
    Create a model together with its base assumptions and default
    valuation records.

    Args:
        db: Database session
        data: Validated model creation data
        assumptions: Resolved base assumption set
    """
    model = FinancialModel(**data.model_dump(exclude={"assumptions"}))
    db.add(model)
    db.flush()  # Get the model.id without committing

    db.add(Assumption(model_id=model.id, scenario_id=None, **assumptions.model_dump()))
    db.add(DCFValuation(model_id=model.id))
    db.add(ValuationComparison(model_id=model.id))
    return _finish(db, commit, model)


def get_model(db: Session, model_id: int) -> Optional[FinancialModel]:
    """Get a single model by ID. Returns None if not found."""
    return db.query(FinancialModel).filter(FinancialModel.id == model_id).first()


def list_models(db: Session, name: Optional[str] = None) -> list[FinancialModel]:
    """List models, optionally filtered by a partial (LIKE) name match."""
    query = db.query(FinancialModel)
    if name:
        query = query.filter(FinancialModel.name.ilike(f"%{name}%"))
    return query.order_by(FinancialModel.id).all()


def update_model(
    db: Session,
    model: FinancialModel,
    update_data: dict,
    commit: bool = True,
) -> FinancialModel:
    """Apply non-None fields to a model."""
    for field, value in update_data.items():
        if value is not None:
            setattr(model, field, value)
    model.updated_at = utc_now()
    return _finish(db, commit, model)


def delete_model(db: Session, model_id: int) -> bool:
    """Delete a model and everything it owns (CASCADE). Returns True if deleted."""
    model = get_model(db, model_id)
    if not model:
        return False
    db.delete(model)
    db.commit()
    return True


# ---------------------------------------------------------------------------
# ASSUMPTION CRUD
# ---------------------------------------------------------------------------

def assumption_values(record: Optional[Assumption]) -> Optional[dict]:
    """Stored assumption row -> plain field dict (None passes through)."""
    if record is None:
        return None
    return {name: getattr(record, name) for name in ASSUMPTION_FIELDS}


def get_base_assumption(db: Session, model_id: int) -> Optional[Assumption]:
    return (
        db.query(Assumption)
        .filter(Assumption.model_id == model_id, Assumption.scenario_id.is_(None))
        .first()
    )


def get_scenario_assumption(db: Session, scenario_id: int) -> Optional[Assumption]:
    return db.query(Assumption).filter(Assumption.scenario_id == scenario_id).first()


def save_assumptions(
    db: Session,
    model_id: int,
    assumptions: AssumptionSet,
    scenario_id: Optional[int] = None,
    commit: bool = True,
) -> Assumption:
    """Full-record write of an assumption set (insert or overwrite)."""
    if scenario_id is None:
        record = get_base_assumption(db, model_id)
    else:
        record = get_scenario_assumption(db, scenario_id)
    if record is None:
        record = Assumption(model_id=model_id, scenario_id=scenario_id)
        db.add(record)
    for name, value in assumptions.model_dump().items():
        setattr(record, name, value)
    return _finish(db, commit, record)


# ---------------------------------------------------------------------------
# SCENARIO CRUD
# ---------------------------------------------------------------------------

def create_scenario(
    db: Session,
    model_id: int,
    name: str,
    scenario_type: str,
    color: str,
    assumptions: AssumptionSet,
) -> Scenario:
    """Create a scenario with its own full assumption set."""
    scenario = Scenario(model_id=model_id, name=name, scenario_type=scenario_type, color=color)
    db.add(scenario)
    db.flush()
    db.add(Assumption(model_id=model_id, scenario_id=scenario.id, **assumptions.model_dump()))
    return _finish(db, True, scenario)


def get_scenario(db: Session, scenario_id: int) -> Optional[Scenario]:
    return db.query(Scenario).filter(Scenario.id == scenario_id).first()


def list_scenarios(db: Session, model_id: int) -> list[Scenario]:
    return (
        db.query(Scenario)
        .filter(Scenario.model_id == model_id)
        .order_by(Scenario.id)
        .all()
    )


def delete_scenario(db: Session, scenario_id: int) -> bool:
    scenario = get_scenario(db, scenario_id)
    if not scenario:
        return False
    db.delete(scenario)
    db.commit()
    return True


# ---------------------------------------------------------------------------
# ACTUALS CRUD
# ---------------------------------------------------------------------------

def create_actual(db: Session, model_id: int, data: ActualCreate) -> Actual:
    """Insert the actuals for a period, replacing any existing record for it."""
    actual = (
        db.query(Actual)
        .filter(Actual.model_id == model_id, Actual.period == data.period)
        .first()
    )
    if actual is None:
        actual = Actual(model_id=model_id, period=data.period)
        db.add(actual)
    for field, value in data.model_dump(exclude={"period"}).items():
        setattr(actual, field, value)
    return _finish(db, True, actual)


def get_actual(db: Session, actual_id: int) -> Optional[Actual]:
    return db.query(Actual).filter(Actual.id == actual_id).first()


def list_actuals(db: Session, model_id: int) -> list[Actual]:
    return (
        db.query(Actual)
        .filter(Actual.model_id == model_id)
        .order_by(Actual.period)
        .all()
    )


def delete_actual(db: Session, actual_id: int) -> bool:
    actual = get_actual(db, actual_id)
    if not actual:
        return False
    db.delete(actual)
    db.commit()
    return True


# ---------------------------------------------------------------------------
# STATEMENT CRUD
# ---------------------------------------------------------------------------

def list_statement_rows(
    db: Session,
    model_id: int,
    kind: str,
    is_actual: Optional[bool] = None,
) -> list:
    """Rows of one statement ordered by year, annual row before quarters."""
    line = STATEMENT_MODELS[kind]
    query = db.query(line).filter(line.model_id == model_id)
    if is_actual is not None:
        query = query.filter(line.is_actual == is_actual)
    rows = query.all()
    return sorted(rows, key=lambda r: (r.year, r.quarter or 0))


def get_statement_row(
    db: Session,
    model_id: int,
    kind: str,
    year: int,
    quarter: Optional[int] = None,
):
    line = STATEMENT_MODELS[kind]
    query = db.query(line).filter(line.model_id == model_id, line.year == year)
    if quarter is None:
        query = query.filter(line.quarter.is_(None))
    else:
        query = query.filter(line.quarter == quarter)
    return query.first()


def load_statement_rows(db: Session, model_id: int) -> dict:
    """All stored rows keyed by statement kind."""
    return {kind: list_statement_rows(db, model_id, kind) for kind in STATEMENT_MODELS}


def replace_derived_rows(db: Session, model_id: int, statements: StatementSet) -> dict:
    """
    Delete every non-actual statement row of the model and insert the derived
    rows. Actual rows are never touched. Flushes only.

    Returns:
        Number of rows written per statement kind.
    """
    written = {}
    for kind in STATEMENT_MODELS:
        for row in list_statement_rows(db, model_id, kind, is_actual=False):
            db.delete(row)
    db.flush()

    for kind, line in STATEMENT_MODELS.items():
        derived = [r for r in getattr(statements, kind) if not r.is_actual]
        for row in derived:
            db.add(line(model_id=model_id, **asdict(row)))
        written[kind] = len(derived)
    db.flush()
    return written


# ---------------------------------------------------------------------------
# VALUATION CRUD
# ---------------------------------------------------------------------------

DCF_PARAMETER_FIELDS = (
    "risk_free_rate", "beta", "market_return", "cost_of_debt", "tax_rate",
    "equity_weight", "debt_weight", "long_term_growth", "total_debt",
    "current_share_price",
)

COMPARABLE_PARAMETER_FIELDS = (
    "pr_bull_multiple", "pr_base_multiple", "pr_bear_multiple",
    "pe_bull_peg", "pe_base_peg", "pe_bear_peg",
)


def get_dcf_valuation(db: Session, model_id: int) -> Optional[DCFValuation]:
    return db.query(DCFValuation).filter(DCFValuation.model_id == model_id).first()


def ensure_dcf_valuation(db: Session, model_id: int) -> DCFValuation:
    """The live DCF record, created with default parameters when missing."""
    record = get_dcf_valuation(db, model_id)
    if record is None:
        record = DCFValuation(model_id=model_id)
        db.add(record)
        db.flush()
    return record


def dcf_parameter_values(record: DCFValuation) -> dict:
    return {name: getattr(record, name) for name in DCF_PARAMETER_FIELDS}


def store_dcf_result(db: Session, record: DCFValuation, result: DCFValuationResult) -> DCFValuation:
    """Overwrite the outputs of the live DCF record. Flushes only."""
    record.cost_of_equity = result.cost_of_equity
    for name, value in result.dcf.to_dict().items():
        if name != "long_term_growth":
            setattr(record, name, value)
    record.sensitivity_json = json.dumps(result.sensitivity.to_dict())
    record.computed_at = utc_now()
    db.flush()
    return record


def get_valuation_comparison(db: Session, model_id: int) -> Optional[ValuationComparison]:
    return (
        db.query(ValuationComparison)
        .filter(ValuationComparison.model_id == model_id)
        .first()
    )


def ensure_valuation_comparison(db: Session, model_id: int) -> ValuationComparison:
    record = get_valuation_comparison(db, model_id)
    if record is None:
        record = ValuationComparison(model_id=model_id)
        db.add(record)
        db.flush()
    return record


def comparable_parameter_values(record: ValuationComparison) -> dict:
    return {name: getattr(record, name) for name in COMPARABLE_PARAMETER_FIELDS}


def store_comparison_result(
    db: Session,
    record: ValuationComparison,
    result: ValuationComparisonResult,
) -> ValuationComparison:
    """Overwrite the live comparison record with a fresh result. Flushes only."""
    for name, value in result.to_dict().items():
        setattr(record, name, value)
    db.flush()
    return record
