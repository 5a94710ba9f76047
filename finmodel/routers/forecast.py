"""
Forecast Router — /api/models/{id}/forecast

Endpoints:
    GET /api/models/{id}/forecast  — Period series + quarterly/annual summaries

Query Parameters:
    scenario_id: Forecast a scenario's assumptions instead of the base set
    annual: Return only the annual summaries (drop periods and quarters)
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import recalculate
from ..database import get_db
from ..errors import FinModelError
from .common import ERROR_RESPONSES, http_error

router = APIRouter(prefix="/api/models", tags=["Forecast"], responses=ERROR_RESPONSES)


@router.get("/{model_id}/forecast")
def get_forecast(
    model_id: int,
    scenario_id: Optional[int] = Query(None, description="Scenario to forecast"),
    annual: bool = Query(False, description="Annual summaries only"),
    db: Session = Depends(get_db),
):
    try:
        payload = recalculate.build_forecast(db, model_id, scenario_id=scenario_id)
    except FinModelError as e:
        raise http_error(e)
    if annual:
        payload.pop("periods")
        payload.pop("quarterly")
    return payload
