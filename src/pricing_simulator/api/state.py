"""
Shared API state - one engine, scenario repository and mappings service per process.

Routers receive these through ``Depends`` so tests can swap them with
``app.dependency_overrides``.
"""
from typing import Optional

from ..config.settings import get_settings
from ..engine import PricingEngine
from ..services.mappings_service import MappingsService
from ..services.scenario_repository import JsonScenarioRepository, ScenarioRepository

_engine: Optional[PricingEngine] = None
_repository: Optional[ScenarioRepository] = None
_mappings_service: Optional[MappingsService] = None


def get_engine() -> PricingEngine:
    """Get the shared pricing engine (built on first use)."""
    global _engine
    if _engine is None:
        _engine = PricingEngine(get_settings())
    return _engine


def get_repository() -> ScenarioRepository:
    """Get the shared scenario repository."""
    global _repository
    if _repository is None:
        settings = get_settings()
        _repository = JsonScenarioRepository(settings.scenarios_dir, source=settings.scenario_source)
    return _repository


def get_mappings_service() -> MappingsService:
    """Get the shared mappings service."""
    global _mappings_service
    if _mappings_service is None:
        settings = get_settings()
        _mappings_service = MappingsService(
            mappings_csv_path=settings.mappings_csv,
            compiled_json_path=settings.compiled_mappings,
            catalog_json_path=settings.catalog_json,
        )
    return _mappings_service
