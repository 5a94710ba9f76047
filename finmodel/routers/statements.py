"""
Statements Router — /api/models/{id}/statements

Endpoints:
    GET    /api/models/{id}/statements/{kind}                — Stored rows
    PUT    /api/models/{id}/statements/{kind}/{year}/actual  — Enter actual cells, recalculate
    DELETE /api/models/{id}/statements/{kind}/{year}/actual  — Revert to projection, recalculate

kind: income_statement | balance_sheet | cash_flow
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import crud, recalculate
from ..database import get_db
from ..engines.statements import check_balance, coerce_row
from ..errors import FinModelError
from ..schemas import RecalculationResponse, StatementActualUpdate, STATEMENT_RESPONSES
from .common import ERROR_RESPONSES, http_error, not_found

router = APIRouter(prefix="/api/models", tags=["Statements"], responses=ERROR_RESPONSES)


@router.get("/{model_id}/statements/{kind}")
def get_statement(model_id: int, kind: str, db: Session = Depends(get_db)):
    """
    Rows of one statement ordered by (year, quarter). The balance sheet also
    carries its per-row balance checks.
    """
    if kind not in STATEMENT_RESPONSES:
        raise not_found("Statement", kind)
    if not crud.get_model(db, model_id):
        raise not_found("Model", model_id)

    rows = crud.list_statement_rows(db, model_id, kind)
    payload = {
        "model_id": model_id,
        "kind": kind,
        "rows": [STATEMENT_RESPONSES[kind].model_validate(r).model_dump() for r in rows],
    }
    if kind == "balance_sheet":
        checks, _ = check_balance(coerce_row(kind, r) for r in rows)
        payload["balance_checks"] = [
            {"year": c.year, "quarter": c.quarter, "difference": c.difference, "status": c.status}
            for c in checks
        ]
    return payload


@router.put("/{model_id}/statements/{kind}/{year}/actual", response_model=RecalculationResponse)
def mark_actual(
    model_id: int,
    kind: str,
    year: int,
    data: StatementActualUpdate,
    db: Session = Depends(get_db),
):
    """
    Flag a row as actual with the given cell values. From then on the row is
    copied through every recalculation unchanged, and later years build on it.
    """
    try:
        return recalculate.mark_actual(
            db, model_id, kind, year, data.values, quarter=data.quarter
        )
    except FinModelError as e:
        raise http_error(e)


@router.delete("/{model_id}/statements/{kind}/{year}/actual", response_model=RecalculationResponse)
def clear_actual(
    model_id: int,
    kind: str,
    year: int,
    quarter: Optional[int] = Query(None, ge=1, le=4),
    db: Session = Depends(get_db),
):
    """Drop the actual flag; the row is re-derived from assumptions."""
    try:
        return recalculate.clear_actual(db, model_id, kind, year, quarter=quarter)
    except FinModelError as e:
        raise http_error(e)
