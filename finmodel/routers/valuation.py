"""
Valuation Router — DCF and comparable multiples

Endpoints:
    GET    /api/models/{id}/dcf                   — Live DCF record (inputs + outputs)
    PATCH  /api/models/{id}/dcf                   — Edit WACC inputs, recalculate
    GET    /api/models/{id}/dcf/sensitivity       — 5x5 WACC x growth price grid
    GET    /api/models/{id}/valuation-comparison  — Bull/base/bear targets
    PATCH  /api/models/{id}/valuation-comparison  — Edit multiples, recalculate

A DCF edit that makes WACC <= long-term growth is rejected with 422
DOMAIN_ERROR and the stored parameters are kept.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import crud, recalculate
from ..database import get_db
from ..errors import FinModelError
from ..schemas import (
    ComparableParametersUpdate, DCFParametersUpdate, DCFValuationResponse,
    RecalculationResponse, SensitivityResponse, ValuationComparisonResponse,
)
from .common import ERROR_RESPONSES, http_error, not_found

router = APIRouter(prefix="/api/models", tags=["Valuation"], responses=ERROR_RESPONSES)


@router.get("/{model_id}/dcf", response_model=DCFValuationResponse)
def get_dcf(model_id: int, db: Session = Depends(get_db)):
    record = crud.get_dcf_valuation(db, model_id)
    if not record:
        raise not_found("DCF valuation for model", model_id)
    return record


@router.patch("/{model_id}/dcf", response_model=RecalculationResponse)
def patch_dcf(model_id: int, data: DCFParametersUpdate, db: Session = Depends(get_db)):
    try:
        return recalculate.update_dcf_parameters(
            db, model_id, data.model_dump(exclude_unset=True)
        )
    except FinModelError as e:
        raise http_error(e)


@router.get("/{model_id}/dcf/sensitivity", response_model=SensitivityResponse)
def get_sensitivity(model_id: int, db: Session = Depends(get_db)):
    """Rows are WACC, columns long-term growth; null where WACC <= growth."""
    record = crud.get_dcf_valuation(db, model_id)
    if not record or record.sensitivity is None:
        raise not_found("Sensitivity table for model", model_id)
    return record.sensitivity


@router.get("/{model_id}/valuation-comparison", response_model=ValuationComparisonResponse)
def get_valuation_comparison(model_id: int, db: Session = Depends(get_db)):
    record = crud.get_valuation_comparison(db, model_id)
    if not record:
        raise not_found("Valuation comparison for model", model_id)
    return record


@router.patch("/{model_id}/valuation-comparison", response_model=RecalculationResponse)
def patch_valuation_comparison(
    model_id: int,
    data: ComparableParametersUpdate,
    db: Session = Depends(get_db),
):
    try:
        return recalculate.update_comparable_parameters(
            db, model_id, data.model_dump(exclude_unset=True)
        )
    except FinModelError as e:
        raise http_error(e)
