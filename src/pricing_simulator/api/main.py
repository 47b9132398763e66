from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config.settings import get_settings
from ..engine import PricingEngine, QuoteValidationError
from .mappings_api import router as mappings_router
from .scenarios_api import router as scenarios_router
from .schemas import CalcRequest
from .state import get_engine

app = FastAPI(
    title="Pricing Simulator API",
    description="Quote calculation, catalog lookup and scenario storage for card services pricing",
    version=__version__
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(mappings_router)
app.include_router(scenarios_router)


@app.get("/")
async def root():
    return {"status": "online", "message": "Pricing Simulator API Active"}


@app.post("/calculate")
async def calculate_quote(req: CalcRequest, engine: PricingEngine = Depends(get_engine)):
    try:
        request = engine.request_from_dict(req.to_engine_dict())
        result = engine.calculate(request)
    except QuoteValidationError as e:
        raise HTTPException(status_code=400, detail={"errors": e.errors})
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]) if e.args else "Not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()


@app.get("/catalog")
async def get_catalog(
    search: Optional[str] = None,
    category: Optional[str] = None,
    include_inactive: bool = False,
    engine: PricingEngine = Depends(get_engine)
):
    items = engine.search_catalog(search=search, category_id=category, include_inactive=include_inactive)
    return {
        "count": len(items),
        "categories": engine.categories(),
        "items": [item.to_dict() for item in items],
    }


@app.get("/catalog/{item_id}")
async def get_catalog_item(item_id: str, engine: PricingEngine = Depends(get_engine)):
    try:
        return engine.get_item(item_id).to_dict()
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Pricing item '{item_id}' not found")


@app.get("/catalog/{item_id}/tiers")
async def preview_tiers(item_id: str, quantity: float = 1, engine: PricingEngine = Depends(get_engine)):
    if quantity < 0:
        raise HTTPException(status_code=400, detail="quantity cannot be negative")
    try:
        return engine.preview_tiers(item_id, quantity)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Pricing item '{item_id}' not found")


@app.get("/config-fields")
async def get_config_fields(engine: PricingEngine = Depends(get_engine)):
    """Declared configuration inputs, in display order."""
    return [f.to_dict() for f in engine.list_config_fields()]


@app.get("/system/status")
async def get_status(engine: PricingEngine = Depends(get_engine)):
    settings = engine.settings or get_settings()
    has_report = settings.build_report.exists()
    return {
        "engine_active": True,
        "catalog_items": len(engine.catalog),
        "mappings_loaded": engine.mapping_set.loaded,
        "mappings_count": len(engine.mapping_set),
        "catalog_last_build": settings.build_report.stat().st_mtime if has_report else None
    }
