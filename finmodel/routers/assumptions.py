"""
Assumptions Router — /api/models/{id}/assumptions

Endpoints:
    GET    /api/models/{id}/assumptions  — Base assumption record
    PATCH  /api/models/{id}/assumptions  — Merge a partial edit, then recalculate
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import crud, recalculate
from ..database import get_db
from ..errors import FinModelError
from ..schemas import AssumptionPatch, AssumptionResponse, RecalculationResponse
from .common import ERROR_RESPONSES, http_error, not_found

router = APIRouter(prefix="/api/models", tags=["Assumptions"], responses=ERROR_RESPONSES)


@router.get("/{model_id}/assumptions", response_model=AssumptionResponse)
def get_assumptions(model_id: int, db: Session = Depends(get_db)):
    """Get the base assumptions of a model."""
    if not crud.get_model(db, model_id):
        raise not_found("Model", model_id)
    record = crud.get_base_assumption(db, model_id)
    if not record:
        raise not_found("Assumptions for model", model_id)
    return record


@router.patch("/{model_id}/assumptions", response_model=RecalculationResponse)
def patch_assumptions(model_id: int, patch: AssumptionPatch, db: Session = Depends(get_db)):
    """
    Apply an assumption edit and recalculate everything downstream.

    Out-of-domain values (e.g. a negative percentage) are rejected with 422
    VALIDATION_ERROR and nothing is stored. Sending null for a field resets
    it to its default.
    """
    try:
        return recalculate.recalculate_model(
            db, model_id, assumption_patch=patch.model_dump(exclude_unset=True)
        )
    except FinModelError as e:
        raise http_error(e)
