"""
Actuals & Variance Router

Endpoints:
    GET    /api/models/{id}/actuals   — List recorded actuals
    POST   /api/models/{id}/actuals   — Record actuals for a period (replaces that period)
    DELETE /api/actuals/{aid}         — Delete one actuals record
    GET    /api/models/{id}/variance  — Forecast vs actual per period (or per year)
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import crud, recalculate
from ..database import get_db
from ..errors import FinModelError
from ..schemas import ActualCreate, ActualResponse
from .common import ERROR_RESPONSES, http_error, not_found

router = APIRouter(prefix="/api", tags=["Actuals"], responses=ERROR_RESPONSES)


@router.get("/models/{model_id}/actuals", response_model=list[ActualResponse])
def list_actuals(model_id: int, db: Session = Depends(get_db)):
    if not crud.get_model(db, model_id):
        raise not_found("Model", model_id)
    return crud.list_actuals(db, model_id)


@router.post("/models/{model_id}/actuals", response_model=ActualResponse, status_code=201)
def create_actual(model_id: int, data: ActualCreate, db: Session = Depends(get_db)):
    """
    Record observed figures for a period key ("2025-03", "2025-Q1" or "2025").
    Actuals feed variance only; they never change derived statements.
    """
    if not crud.get_model(db, model_id):
        raise not_found("Model", model_id)
    return crud.create_actual(db, model_id, data)


@router.delete("/actuals/{actual_id}", status_code=200)
def delete_actual(actual_id: int, db: Session = Depends(get_db)):
    if not crud.delete_actual(db, actual_id):
        raise not_found("Actual", actual_id)
    return {"detail": f"Actual {actual_id} deleted successfully"}


@router.get("/models/{model_id}/variance")
def get_variance(
    model_id: int,
    annual: bool = Query(False, description="Compare annual summaries instead of periods"),
    only_with_actuals: bool = Query(False, description="Drop rows that have no actuals"),
    db: Session = Depends(get_db),
):
    """
    Variance = actual - forecast; variance_percent = variance / |forecast|
    (null when the forecast is zero).
    """
    try:
        return recalculate.build_variance(
            db, model_id, annual=annual, only_with_actuals=only_with_actuals
        )
    except FinModelError as e:
        raise http_error(e)
