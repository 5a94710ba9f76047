"""
Scenario Router

Endpoints:
    GET    /api/models/{id}/scenarios          — List scenarios with their assumptions
    POST   /api/models/{id}/scenarios          — Create a scenario (assumptions derived by type)
    GET    /api/models/{id}/scenarios/compare  — Annual revenue / net income / cash per scenario
    DELETE /api/scenarios/{sid}                — Delete a scenario

Scenario forecasts are computed on demand and never change stored statements.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import crud, recalculate
from ..database import get_db
from ..errors import FinModelError
from ..schemas import ScenarioCreate, ScenarioResponse
from .common import ERROR_RESPONSES, http_error, not_found

router = APIRouter(prefix="/api", tags=["Scenarios"], responses=ERROR_RESPONSES)


@router.get("/models/{model_id}/scenarios", response_model=list[ScenarioResponse])
def list_scenarios(model_id: int, db: Session = Depends(get_db)):
    if not crud.get_model(db, model_id):
        raise not_found("Model", model_id)
    return crud.list_scenarios(db, model_id)


@router.post("/models/{model_id}/scenarios", response_model=ScenarioResponse, status_code=201)
def create_scenario(model_id: int, data: ScenarioCreate, db: Session = Depends(get_db)):
    """
    Create a scenario. Optimistic: growth x1.3, churn x0.6; pessimistic:
    growth x0.7, churn x1.5; base: copy of the model's base assumptions.
    """
    overrides = data.assumptions.model_dump(exclude_unset=True) if data.assumptions else None
    try:
        return recalculate.create_scenario(
            db, model_id, data.name, data.scenario_type, data.color, overrides
        )
    except FinModelError as e:
        raise http_error(e)


@router.get("/models/{model_id}/scenarios/compare")
def compare_scenarios(model_id: int, db: Session = Depends(get_db)):
    try:
        return recalculate.compare_scenarios(db, model_id)
    except FinModelError as e:
        raise http_error(e)


@router.delete("/scenarios/{scenario_id}", status_code=200)
def delete_scenario(scenario_id: int, db: Session = Depends(get_db)):
    if not crud.delete_scenario(db, scenario_id):
        raise not_found("Scenario", scenario_id)
    return {"detail": f"Scenario {scenario_id} deleted successfully"}
