"""
Request bodies shared by the API routers.

Field names follow the camelCase JSON the quote front end sends.
"""
from typing import Any, Optional

from pydantic import BaseModel


class ConfigPayload(BaseModel):
    """Client identification plus configuration field values."""
    clientName: str = ""
    projectName: str = ""
    preparedBy: str = ""
    configValues: dict[str, Any] = {}


class SelectedItemPayload(BaseModel):
    """A selection line; reference a catalog item by ``itemId`` or send it whole as ``item``."""
    id: Optional[str] = None
    itemId: Optional[str] = None
    item: Optional[dict[str, Any]] = None
    quantity: float = 1
    unitPrice: Optional[float] = None
    discount: float = 0
    discountType: str = "percentage"
    discountApplication: str = "total"
    isFree: bool = False
    autoAdded: bool = False


class GlobalDiscountPayload(BaseModel):
    amount: float = 0
    type: str = "percentage"
    application: str = "none"


class CalcRequest(BaseModel):
    """Request model for a quote calculation."""
    config: ConfigPayload = ConfigPayload()
    selectedItems: list[SelectedItemPayload] = []
    globalDiscount: GlobalDiscountPayload = GlobalDiscountPayload()
    applyRules: bool = True

    def to_engine_dict(self) -> dict:
        """Plain dict for ``PricingEngine.request_from_dict`` (unset ids dropped)."""
        data = self.model_dump()
        data['selectedItems'] = [s.model_dump(exclude_none=True) for s in self.selectedItems]
        return data


class ScenarioCreate(CalcRequest):
    """Request model for saving a scenario."""
    scenarioId: Optional[str] = None
    name: str = ""
    metadata: dict[str, Any] = {}
