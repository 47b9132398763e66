"""
Scenarios API - save, load and delete priced quotes.
"""
from fastapi import APIRouter, Depends, HTTPException

from ..engine import PricingEngine, QuoteValidationError, ScenarioData
from ..engine.summary import round_money
from ..services.scenario_repository import ScenarioRepository
from .schemas import ScenarioCreate
from .state import get_engine, get_repository

router = APIRouter(prefix="/api/scenarios", tags=["scenarios"])


def _listing(scenario: ScenarioData) -> dict:
    return {
        "scenarioId": scenario.scenario_id,
        "name": scenario.name,
        "clientName": scenario.config.client_name,
        "projectName": scenario.config.project_name,
        "createdAt": scenario.created_at,
        "updatedAt": scenario.updated_at,
        "itemCount": len(scenario.selected_items),
        "totalProjectCost": round_money(scenario.summary.total_project_cost) if scenario.summary else None,
    }


@router.get("")
async def list_scenarios(repository: ScenarioRepository = Depends(get_repository)):
    """List saved scenarios, newest first."""
    return [_listing(s) for s in repository.list()]


@router.get("/{scenario_id}")
async def get_scenario(scenario_id: str, repository: ScenarioRepository = Depends(get_repository)):
    """Get a saved scenario."""
    try:
        scenario = repository.get(scenario_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if scenario is None:
        raise HTTPException(status_code=404, detail=f"Scenario '{scenario_id}' not found")
    return scenario.to_dict()


@router.post("")
async def create_scenario(
    data: ScenarioCreate,
    engine: PricingEngine = Depends(get_engine),
    repository: ScenarioRepository = Depends(get_repository)
):
    """Price the quote and save it with its summary."""
    try:
        request = engine.request_from_dict(data.to_engine_dict())
        result = engine.calculate(request)
    except QuoteValidationError as e:
        raise HTTPException(status_code=400, detail={"errors": e.errors})
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]) if e.args else "Not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    scenario = ScenarioData(
        scenario_id=data.scenarioId,
        name=data.name,
        config=result.config,
        selected_items=result.selected_items,
        global_discount=result.global_discount,
        summary=result.summary,
        metadata=dict(data.metadata),
    )

    try:
        saved = repository.save(scenario)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return saved.to_dict()


@router.delete("/{scenario_id}")
async def delete_scenario(scenario_id: str, repository: ScenarioRepository = Depends(get_repository)):
    """Delete a saved scenario."""
    try:
        deleted = repository.delete(scenario_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Scenario '{scenario_id}' not found")
    return {"success": True, "message": f"Scenario '{scenario_id}' deleted"}
