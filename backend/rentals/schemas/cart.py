from typing import List

from pydantic import BaseModel, Field

from ..models.order import WetOrDry


class CartLineIn(BaseModel):
    unit_id: int
    qty: int = Field(default=1, ge=1)
    wet_or_dry: WetOrDry = WetOrDry.DRY


class CartUpdate(BaseModel):
    items: List[CartLineIn] = []


class CartLineRead(BaseModel):
    unit_id: int
    unit_name: str
    wet_or_dry: WetOrDry
    unit_price_cents: int
    qty: int

    model_config = {"from_attributes": True}


class CartRead(BaseModel):
    session_id: str
    items: List[CartLineRead] = []
    total_units: int = 0
    subtotal_cents: int = 0
