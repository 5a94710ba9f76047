"""
FinModel — Recalculation Service

Glue between storage and the pure engine pipeline. Every edit that can change
a number (assumption patch, model settings, actual cell, valuation parameter)
goes through here and ends in one full recalculation:

    load stored inputs -> run_pipeline -> replace derived rows -> commit

Guarantees:
    - ValidationError / DomainError are raised before anything is committed;
      the session is rolled back so the stored model is unchanged.
    - Statement rows flagged is_actual are never rewritten by a recalculation.
    - Scenario forecasts are computed on demand and never persisted.
    - Concurrent edits are last-write-wins (no version column).
"""

import logging
import math
from dataclasses import fields
from typing import Optional

from sqlalchemy.orm import Session

from . import crud
from .errors import DomainError, FinModelError, NotFoundError, ValidationError
from .engines.aggregation import aggregate_annual, aggregate_quarterly
from .engines.assumptions import derive_scenario_assumptions, resolve_assumptions
from .engines.forecast import generate_forecast
from .engines.pipeline import PipelineInputs, RecalculationResult, run_pipeline
from .engines.types import STATEMENT_ROW_TYPES
from .engines.valuation import ComparableParameters, DCFParameters, build_parameters
from .engines.variance import calculate_variance
from .models import FinancialModel, STATEMENT_MODELS, utc_now

logger = logging.getLogger("finmodel.recalculate")

# Row identity columns a user cannot edit through an actual-cell patch
_ROW_KEYS = ("year", "quarter", "is_actual")


def _require_model(db: Session, model_id: int) -> FinancialModel:
    model = crud.get_model(db, model_id)
    if model is None:
        raise NotFoundError(f"Model {model_id} not found")
    return model


def _require_kind(statement: str) -> None:
    if statement not in STATEMENT_ROW_TYPES:
        raise ValidationError(
            f"Unknown statement '{statement}'",
            errors={"statement": f"must be one of {sorted(STATEMENT_ROW_TYPES)}"},
        )


# ---------------------------------------------------------------------------
# PIPELINE INPUTS
# ---------------------------------------------------------------------------

def load_inputs(
    db: Session,
    model: FinancialModel,
    assumption_patch: Optional[dict] = None,
    dcf_parameters: Optional[DCFParameters] = None,
    comparable_parameters: Optional[ComparableParameters] = None,
) -> PipelineInputs:
    """Collect everything the pipeline reads for one model."""
    dcf_record = crud.ensure_dcf_valuation(db, model.id)
    comparison_record = crud.ensure_valuation_comparison(db, model.id)

    if comparable_parameters is None:
        comparable_parameters = build_parameters(ComparableParameters, {
            **crud.comparable_parameter_values(comparison_record),
            "dcf_bull_multiplier": model.scenario_bull_multiplier,
            "dcf_bear_multiplier": model.scenario_bear_multiplier,
        })

    return PipelineInputs(
        start_year=model.start_year,
        end_year=model.end_year,
        granularity=model.granularity,
        shares_outstanding=model.shares_outstanding,
        base_assumptions=crud.assumption_values(crud.get_base_assumption(db, model.id)),
        assumption_patch=assumption_patch,
        stored_statements=crud.load_statement_rows(db, model.id),
        actuals=crud.list_actuals(db, model.id),
        dcf_parameters=dcf_parameters or build_parameters(
            DCFParameters, crud.dcf_parameter_values(dcf_record)
        ),
        comparable_parameters=comparable_parameters,
    )


def _persist(
    db: Session,
    model: FinancialModel,
    result: RecalculationResult,
    save_assumptions: bool,
) -> dict:
    if save_assumptions:
        crud.save_assumptions(db, model.id, result.assumptions, commit=False)

    written = crud.replace_derived_rows(db, model.id, result.statements)

    dcf_record = crud.ensure_dcf_valuation(db, model.id)
    if result.dcf is not None:
        crud.store_dcf_result(db, dcf_record, result.dcf)

    comparison_record = crud.ensure_valuation_comparison(db, model.id)
    crud.store_comparison_result(db, comparison_record, result.comparison)

    model.last_fingerprint = result.fingerprint
    model.last_recalculated_at = utc_now()
    return written


def _summary(model: FinancialModel, result: RecalculationResult, written: dict) -> dict:
    return {
        "model_id": model.id,
        "fingerprint": result.fingerprint,
        "is_balanced": result.statements.is_balanced,
        "balance_checks": [
            {"year": c.year, "quarter": c.quarter, "difference": c.difference, "status": c.status}
            for c in result.statements.balance_checks
        ],
        "warnings": [w.to_dict() for w in result.warnings],
        "dcf_error": result.dcf_error,
        "target_price_per_share": (
            result.dcf.dcf.target_price_per_share if result.dcf is not None else None
        ),
        "average_target": result.comparison.average_target,
        "rows_written": written,
    }


def _run(db: Session, model: FinancialModel, **kwargs) -> dict:
    """Run the pipeline and commit its results, rolling back on any engine error."""
    save_assumptions = kwargs.get("assumption_patch") is not None
    try:
        result = run_pipeline(load_inputs(db, model, **kwargs))
        written = _persist(db, model, result, save_assumptions)
        db.commit()
    except FinModelError:
        db.rollback()
        raise
    logger.info(
        f"Recalculated model {model.id}: "
        f"{sum(written.values())} derived rows, {len(result.warnings)} warnings"
    )
    return _summary(model, result, written)


# ---------------------------------------------------------------------------
# TRIGGERS
# ---------------------------------------------------------------------------

def recalculate_model(
    db: Session,
    model_id: int,
    assumption_patch: Optional[dict] = None,
) -> dict:
    """
    Full recalculation, optionally applying an assumption patch first.

    The patch is validated before any write; on success it is stored into the
    base assumption record together with the recomputed statements.
    """
    model = _require_model(db, model_id)
    return _run(db, model, assumption_patch=assumption_patch)


def create_model(db: Session, data) -> FinancialModel:
    """Create a model with base assumptions and run its first recalculation."""
    patch = data.assumptions.model_dump(exclude_unset=True) if data.assumptions else None
    assumptions = resolve_assumptions(patch=patch)
    model = crud.create_model(db, data, assumptions)
    _run(db, model)
    db.refresh(model)
    return model


def update_model(db: Session, model_id: int, update_data: dict) -> dict:
    """Change model settings (years, shares, granularity...) and recalculate."""
    model = _require_model(db, model_id)
    crud.update_model(db, model, update_data, commit=False)
    if model.end_year < model.start_year:
        db.rollback()
        raise ValidationError(
            f"end_year {model.end_year} is before start_year {model.start_year}",
            errors={"end_year": "must be >= start_year"},
        )
    return _run(db, model)


def mark_actual(
    db: Session,
    model_id: int,
    statement: str,
    year: int,
    values: dict,
    quarter: Optional[int] = None,
) -> dict:
    """
    Store user-entered cells on a statement row, flag it is_actual, recalculate.

    Cells not given keep their current value. The row is created when the
    period has no stored row yet (e.g. a quarter).
    """
    model = _require_model(db, model_id)
    _require_kind(statement)

    editable = {f.name for f in fields(STATEMENT_ROW_TYPES[statement])} - set(_ROW_KEYS)
    unknown = sorted(set(values) - editable)
    if unknown:
        raise ValidationError(
            f"Unknown {statement} fields: {', '.join(unknown)}",
            errors={name: "unknown field" for name in unknown},
        )
    bad = sorted(
        name for name, value in values.items()
        if not isinstance(value, (int, float)) or not math.isfinite(value)
    )
    if bad:
        raise ValidationError(
            f"Non-numeric {statement} values: {', '.join(bad)}",
            errors={name: "must be a finite number" for name in bad},
        )
    if not model.start_year <= year <= model.end_year:
        raise ValidationError(
            f"Year {year} is outside the model range {model.start_year}-{model.end_year}",
            errors={"year": f"must be within {model.start_year}-{model.end_year}"},
        )

    row = crud.get_statement_row(db, model.id, statement, year, quarter)
    if row is None:
        row = STATEMENT_MODELS[statement](model_id=model.id, year=year, quarter=quarter)
        db.add(row)
    for name, value in values.items():
        setattr(row, name, float(value))
    row.is_actual = True
    db.flush()

    logger.info(f"Model {model.id}: {statement} {year} (quarter={quarter}) marked actual")
    return _run(db, model)


def clear_actual(
    db: Session,
    model_id: int,
    statement: str,
    year: int,
    quarter: Optional[int] = None,
) -> dict:
    """Revert an actual row to a projection and recalculate."""
    model = _require_model(db, model_id)
    _require_kind(statement)

    row = crud.get_statement_row(db, model.id, statement, year, quarter)
    if row is None or not row.is_actual:
        raise NotFoundError(f"No actual {statement} row for {year}")
    row.is_actual = False
    db.flush()
    return _run(db, model)


def update_dcf_parameters(db: Session, model_id: int, patch: dict) -> dict:
    """
    Validate and apply DCF parameter edits.

    The new parameters are run through the pipeline before anything is stored:
    when the DCF is undefined for them (WACC <= long-term growth) a
    DomainError is raised and the stored parameters are left as they were.
    """
    model = _require_model(db, model_id)
    record = crud.ensure_dcf_valuation(db, model.id)
    merged = {**crud.dcf_parameter_values(record), **{k: v for k, v in patch.items() if v is not None}}
    params = build_parameters(DCFParameters, merged)

    try:
        result = run_pipeline(load_inputs(db, model, dcf_parameters=params))
        if result.dcf_error is not None:
            raise DomainError(result.dcf_error)
        for name, value in params.model_dump().items():
            setattr(record, name, value)
        written = _persist(db, model, result, save_assumptions=False)
        db.commit()
    except FinModelError:
        db.rollback()
        raise
    logger.info(f"Model {model.id}: DCF parameters updated ({', '.join(sorted(patch))})")
    return _summary(model, result, written)


def update_comparable_parameters(db: Session, model_id: int, patch: dict) -> dict:
    """Validate and apply comparable-multiple edits, then recalculate."""
    model = _require_model(db, model_id)
    record = crud.ensure_valuation_comparison(db, model.id)
    merged = {
        **crud.comparable_parameter_values(record),
        **{k: v for k, v in patch.items() if v is not None},
    }
    params = build_parameters(ComparableParameters, merged)
    for name, value in params.model_dump().items():
        if hasattr(record, name):
            setattr(record, name, value)
    db.flush()
    return _run(db, model)


# ---------------------------------------------------------------------------
# SCENARIOS
# ---------------------------------------------------------------------------

def create_scenario(
    db: Session,
    model_id: int,
    name: str,
    scenario_type: str,
    color: str = "#3b82f6",
    overrides: Optional[dict] = None,
):
    """
    Create a scenario whose assumptions are derived from the model's base set
    by scenario type, with optional per-field overrides on top.
    """
    model = _require_model(db, model_id)
    base = crud.assumption_values(crud.get_base_assumption(db, model.id))
    assumptions = derive_scenario_assumptions(base, scenario_type)
    if overrides:
        assumptions = resolve_assumptions(assumptions, patch=overrides)
    return crud.create_scenario(db, model.id, name, scenario_type, color, assumptions)


def _scenario_assumptions(db: Session, model: FinancialModel, scenario_id: int) -> dict:
    scenario = crud.get_scenario(db, scenario_id)
    if scenario is None or scenario.model_id != model.id:
        raise NotFoundError(f"Scenario {scenario_id} not found for model {model.id}")
    return crud.assumption_values(crud.get_scenario_assumption(db, scenario_id))


# ---------------------------------------------------------------------------
# READ-ONLY VIEWS
# ---------------------------------------------------------------------------

def build_forecast(
    db: Session,
    model_id: int,
    scenario_id: Optional[int] = None,
    patch: Optional[dict] = None,
) -> dict:
    """
    Ephemeral forecast for the base set or one scenario (nothing is stored).

    Returns periods, annual and quarterly summaries and the effective
    assumptions they were generated from.
    """
    model = _require_model(db, model_id)
    base = crud.assumption_values(crud.get_base_assumption(db, model.id))
    scenario = _scenario_assumptions(db, model, scenario_id) if scenario_id is not None else None

    assumptions = resolve_assumptions(base, scenario, patch)
    periods = generate_forecast(assumptions, model.start_year, model.end_year, model.granularity)
    return {
        "model_id": model.id,
        "scenario_id": scenario_id,
        "granularity": model.granularity,
        "assumptions": assumptions.model_dump(),
        "periods": [p.to_dict() for p in periods],
        "quarterly": [q.to_dict() for q in aggregate_quarterly(periods)],
        "annual": [a.to_dict() for a in aggregate_annual(periods)],
    }


def build_variance(
    db: Session,
    model_id: int,
    annual: bool = False,
    only_with_actuals: bool = False,
) -> dict:
    """Forecast vs actuals for the base assumptions, per period or per year."""
    model = _require_model(db, model_id)
    assumptions = resolve_assumptions(
        crud.assumption_values(crud.get_base_assumption(db, model.id))
    )
    periods = generate_forecast(assumptions, model.start_year, model.end_year, model.granularity)
    rows = aggregate_annual(periods) if annual else periods

    variance = calculate_variance(rows, crud.list_actuals(db, model.id))
    if only_with_actuals:
        variance = [v for v in variance if v.has_actual]
    return {
        "model_id": model.id,
        "annual": annual,
        "rows": [v.to_dict() for v in variance],
    }


def compare_scenarios(db: Session, model_id: int) -> dict:
    """Annual revenue, net income, cash and customers for base and every scenario."""
    model = _require_model(db, model_id)
    base = crud.assumption_values(crud.get_base_assumption(db, model.id))

    variants = [(None, "Base", "base", base)]
    for scenario in crud.list_scenarios(db, model.id):
        variants.append((
            scenario.id, scenario.name, scenario.scenario_type,
            crud.assumption_values(scenario.assumption),
        ))

    comparison = []
    for scenario_id, name, scenario_type, values in variants:
        assumptions = resolve_assumptions(values)
        annual = aggregate_annual(
            generate_forecast(assumptions, model.start_year, model.end_year, model.granularity)
        )
        comparison.append({
            "scenario_id": scenario_id,
            "name": name,
            "scenario_type": scenario_type,
            "years": [
                {
                    "year": a.year,
                    "revenue": a.revenue,
                    "net_income": a.net_income,
                    "cash_balance": a.cash_balance,
                    "customers": a.customers,
                }
                for a in annual
            ],
        })
    return {"model_id": model.id, "scenarios": comparison}
