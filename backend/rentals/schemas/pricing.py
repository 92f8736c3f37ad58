from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from ..models.order import LocationType, PickupPreference, Surface, WetOrDry
from ..services.pricing import WAIVABLE_FEES


class ZoneOverride(BaseModel):
    zip: str = Field(min_length=3)
    flat_cents: int = Field(ge=0)


class PricingRulesBase(BaseModel):
    base_radius_miles: Decimal = Field(ge=0)
    per_mile_after_base_cents: int = Field(ge=0)
    surface_sandbag_fee_cents: int = Field(ge=0)
    deposit_per_unit_cents: int = Field(ge=0)
    generator_fee_single_cents: int = Field(ge=0)
    generator_fee_multiple_cents: int = Field(ge=0)
    same_day_pickup_fee_cents: int = Field(ge=0)
    included_cities: List[str] = []
    zone_overrides: List[ZoneOverride] = []
    residential_multiplier: Decimal = Field(default=Decimal("1"), ge=0)
    commercial_multiplier: Decimal = Field(default=Decimal("1"), ge=0)
    extra_day_pct: Decimal = Field(default=Decimal("0"), ge=0)
    apply_taxes_by_default: bool = True


class PricingRulesUpdate(BaseModel):
    base_radius_miles: Optional[Decimal] = Field(default=None, ge=0)
    per_mile_after_base_cents: Optional[int] = Field(default=None, ge=0)
    surface_sandbag_fee_cents: Optional[int] = Field(default=None, ge=0)
    deposit_per_unit_cents: Optional[int] = Field(default=None, ge=0)
    generator_fee_single_cents: Optional[int] = Field(default=None, ge=0)
    generator_fee_multiple_cents: Optional[int] = Field(default=None, ge=0)
    same_day_pickup_fee_cents: Optional[int] = Field(default=None, ge=0)
    included_cities: Optional[List[str]] = None
    zone_overrides: Optional[List[ZoneOverride]] = None
    residential_multiplier: Optional[Decimal] = Field(default=None, ge=0)
    commercial_multiplier: Optional[Decimal] = Field(default=None, ge=0)
    extra_day_pct: Optional[Decimal] = Field(default=None, ge=0)
    apply_taxes_by_default: Optional[bool] = None


class PricingRulesRead(PricingRulesBase):
    id: int

    model_config = {"from_attributes": True}


class CartItemIn(BaseModel):
    unit_id: int
    qty: int = Field(default=1, ge=1)
    wet_or_dry: WetOrDry = WetOrDry.DRY


class EventDetails(BaseModel):
    """Event fields a customer fills in at checkout."""

    event_date: date
    event_end_date: Optional[date] = None
    location_type: LocationType = LocationType.RESIDENTIAL
    surface: Surface = Surface.GRASS
    can_use_stakes: bool = True
    pickup_preference: PickupPreference = PickupPreference.NEXT_DAY
    generator_qty: int = Field(default=0, ge=0)
    tip_cents: int = Field(default=0, ge=0)


class PricingOverrides(BaseModel):
    """Admin-only adjustments; never accepted on customer order creation."""

    apply_taxes: Optional[bool] = None
    waived_fees: List[str] = []
    custom_deposit_cents: Optional[int] = Field(default=None, ge=0)

    @field_validator("waived_fees")
    def known_waivers(cls, v: List[str]) -> List[str]:
        unknown = sorted(set(v) - WAIVABLE_FEES)
        if unknown:
            raise ValueError(f"Unknown fee waiver(s): {', '.join(unknown)}")
        return sorted(set(v))


class QuoteRequest(EventDetails, PricingOverrides):
    """Preview pricing for a cart; nothing is persisted."""

    items: List[CartItemIn] = Field(min_length=1)
    city: str = ""
    zip: str = ""
    # Either a known distance or coordinates to resolve one from
    distance_miles: Optional[float] = Field(default=None, ge=0)
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)


class PriceBreakdownRead(BaseModel):
    subtotal_cents: int
    travel_fee_cents: int
    surface_fee_cents: int
    generator_fee_cents: int
    same_day_pickup_fee_cents: int
    tax_cents: int
    total_cents: int
    deposit_due_cents: int
    balance_due_cents: int
    taxable_cents: int
    travel_total_miles: float
    travel_base_radius_miles: float
    travel_chargeable_miles: float
    travel_per_mile_cents: int
    travel_is_flat_fee: bool
    travel_fee_display_name: str

    model_config = {"from_attributes": True}
