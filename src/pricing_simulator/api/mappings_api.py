"""
Mappings API - FastAPI router for auto-add / quantity-sync mapping management.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..engine import PricingEngine
from ..engine.models import TriggerCondition
from ..services.mappings_service import MappingRecord, MappingsService
from .state import get_engine, get_mappings_service

router = APIRouter(prefix="/api/mappings", tags=["mappings"])


# Pydantic models for API
class MappingCreate(BaseModel):
    """Request model for creating a mapping."""
    service_id: str
    config_field: str
    trigger_condition: TriggerCondition = TriggerCondition.BOOLEAN
    auto_add: bool = True
    sync_quantity: bool = False
    quantity_multiplier: float = 1.0
    active: bool = True
    notes: Optional[str] = None


class MappingUpdate(BaseModel):
    """Request model for updating a mapping."""
    service_id: Optional[str] = None
    config_field: Optional[str] = None
    trigger_condition: Optional[TriggerCondition] = None
    auto_add: Optional[bool] = None
    sync_quantity: Optional[bool] = None
    quantity_multiplier: Optional[float] = None
    active: Optional[bool] = None
    notes: Optional[str] = None


class MappingResponse(BaseModel):
    """Response model for a mapping."""
    mapping_id: str
    service_id: str
    config_field: str
    trigger_condition: TriggerCondition
    auto_add: bool
    sync_quantity: bool
    quantity_multiplier: float
    active: bool
    notes: Optional[str]


class ValidationResponse(BaseModel):
    """Response model for validation."""
    valid: bool
    errors: list[str]
    warnings: list[str]


def _response(record: MappingRecord) -> MappingResponse:
    return MappingResponse(mapping_id=record.mapping_id, **record.__dict__)


# Endpoints

@router.get("", response_model=list[MappingResponse])
async def list_mappings(include_inactive: bool = True, service: MappingsService = Depends(get_mappings_service)):
    """List all service mappings."""
    records = service.list_mappings(include_inactive=include_inactive)
    return [_response(r) for r in records]


@router.get("/stats")
async def get_stats(service: MappingsService = Depends(get_mappings_service)):
    """Get mapping statistics."""
    return service.get_stats()


@router.post("/validate", response_model=ValidationResponse)
async def validate_mapping(data: MappingCreate, service: MappingsService = Depends(get_mappings_service)):
    """Validate a mapping without saving."""
    result = service.validate_mapping(MappingRecord(**data.model_dump()))
    return ValidationResponse(valid=result.valid, errors=result.errors, warnings=result.warnings)


@router.post("/compile")
async def compile_mappings(
    service: MappingsService = Depends(get_mappings_service),
    engine: PricingEngine = Depends(get_engine)
):
    """Force recompile of mappings and reload engine."""
    success, output = service.compile_mappings()
    if success:
        engine.reload_data()
    return {
        "success": success,
        "output": output
    }


@router.get("/{mapping_id}", response_model=MappingResponse)
async def get_mapping(mapping_id: str, service: MappingsService = Depends(get_mappings_service)):
    """Get a single mapping by ``service_id:config_field``."""
    record = service.get_mapping(mapping_id)
    if not record:
        raise HTTPException(status_code=404, detail=f"Mapping '{mapping_id}' not found")
    return _response(record)


@router.post("", response_model=MappingResponse)
async def create_mapping(data: MappingCreate, service: MappingsService = Depends(get_mappings_service)):
    """Create a new service mapping."""
    record = MappingRecord(**data.model_dump())

    validation = service.validate_mapping(record)
    if not validation.valid:
        raise HTTPException(status_code=400, detail={"errors": validation.errors})

    try:
        created = service.create_mapping(record)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _response(created)


@router.put("/{mapping_id}", response_model=MappingResponse)
async def update_mapping(
    mapping_id: str,
    updates: MappingUpdate,
    service: MappingsService = Depends(get_mappings_service)
):
    """Update an existing mapping."""
    # Only fields present in the request body are applied; only notes may be cleared
    update_dict = {
        k: v for k, v in updates.model_dump(exclude_unset=True).items()
        if v is not None or k == 'notes'
    }

    try:
        updated = service.update_mapping(mapping_id, update_dict)
    except ValueError as e:
        status = 404 if "not found" in str(e) else 400
        raise HTTPException(status_code=status, detail=str(e))
    return _response(updated)


@router.delete("/{mapping_id}")
async def delete_mapping(mapping_id: str, service: MappingsService = Depends(get_mappings_service)):
    """Delete a mapping."""
    try:
        service.delete_mapping(mapping_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "message": f"Mapping '{mapping_id}' deleted"}
