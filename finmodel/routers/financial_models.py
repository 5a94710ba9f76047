"""
Financial Model Router — /api/models

Model-level CRUD plus the explicit full-recalculation trigger.

Endpoints:
    GET    /api/models                   — List models (optional name filter)
    POST   /api/models                   — Create a model (+ base assumptions) and run it
    GET    /api/models/{id}              — Get one model
    PUT    /api/models/{id}              — Update settings, then recalculate
    DELETE /api/models/{id}              — Delete a model and everything it owns
    POST   /api/models/{id}/recalculate  — Run the full pipeline
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import crud, recalculate
from ..database import get_db
from ..errors import FinModelError
from ..schemas import (
    FinancialModelCreate, FinancialModelUpdate, FinancialModelResponse,
    RecalculationResponse,
)
from .common import ERROR_RESPONSES, http_error, not_found

router = APIRouter(prefix="/api/models", tags=["Models"], responses=ERROR_RESPONSES)


@router.get("", response_model=list[FinancialModelResponse])
def list_models(
    name: Optional[str] = Query(None, description="Partial match on model name"),
    db: Session = Depends(get_db),
):
    """List all financial models."""
    return crud.list_models(db, name=name)


@router.post("", response_model=FinancialModelResponse, status_code=201)
def create_model(data: FinancialModelCreate, db: Session = Depends(get_db)):
    """
    Create a model. Base assumptions come from `assumptions` (defaults for
    anything omitted); statements and valuation are derived immediately.
    """
    try:
        return recalculate.create_model(db, data)
    except FinModelError as e:
        raise http_error(e)


@router.get("/{model_id}", response_model=FinancialModelResponse)
def get_model(model_id: int, db: Session = Depends(get_db)):
    """Get a single model by ID."""
    model = crud.get_model(db, model_id)
    if not model:
        raise not_found("Model", model_id)
    return model


@router.put("/{model_id}", response_model=RecalculationResponse)
def update_model(model_id: int, data: FinancialModelUpdate, db: Session = Depends(get_db)):
    """Update model settings. Only provided fields change; every statement is re-derived."""
    try:
        return recalculate.update_model(db, model_id, data.model_dump(exclude_unset=True))
    except FinModelError as e:
        raise http_error(e)


@router.delete("/{model_id}", status_code=200)
def delete_model(model_id: int, db: Session = Depends(get_db)):
    """Delete a model with its assumptions, scenarios, actuals, statements and valuations."""
    if not crud.delete_model(db, model_id):
        raise not_found("Model", model_id)
    return {"detail": f"Model {model_id} deleted successfully"}


@router.post("/{model_id}/recalculate", response_model=RecalculationResponse)
def recalculate_model(model_id: int, db: Session = Depends(get_db)):
    """
    Run the full dependency chain: forecast -> statements -> DCF ->
    comparables -> variance. Actual rows are left untouched.

    Balance sheet imbalances come back as `warnings`; a DCF that is undefined
    for the current parameters is reported in `dcf_error`.
    """
    try:
        return recalculate.recalculate_model(db, model_id)
    except FinModelError as e:
        raise http_error(e)
