from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator

from ..models.order import (
    LocationType,
    OrderStatus,
    PickupPreference,
    Surface,
    WetOrDry,
)
from .pricing import CartItemIn, EventDetails


class CustomerIn(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    phone: Optional[str] = None


class AddressIn(BaseModel):
    line1: str = Field(min_length=1)
    line2: Optional[str] = None
    city: str = Field(min_length=1)
    state: str = Field(min_length=2)
    zip: str = Field(min_length=3)
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)


class AddressRead(BaseModel):
    line1: str
    line2: Optional[str] = None
    city: str
    state: str
    zip: str
    lat: Optional[float] = None
    lng: Optional[float] = None

    model_config = {"from_attributes": True}


class OrderCreate(EventDetails):
    # Fee waivers, tax and deposit overrides and distance belong to the admin
    # reprice path; sending them here is a validation error.
    model_config = {"extra": "forbid"}

    customer: CustomerIn
    address: AddressIn
    items: List[CartItemIn] = Field(min_length=1)
    start_window: Optional[str] = None
    end_window: Optional[str] = None


class OrderItemRead(BaseModel):
    id: int
    unit_id: int
    unit_name: str
    wet_or_dry: WetOrDry
    unit_price_cents: int
    qty: int

    model_config = {"from_attributes": True}


class DiscountCreate(BaseModel):
    name: str = Field(min_length=1)
    amount_cents: Optional[int] = Field(default=None, gt=0)
    percentage: Optional[Decimal] = Field(default=None, gt=0, le=100)

    @model_validator(mode="after")
    def one_kind(self) -> "DiscountCreate":
        if (self.amount_cents is None) == (self.percentage is None):
            raise ValueError("Provide either amount_cents or percentage")
        return self


class DiscountRead(BaseModel):
    id: int
    name: str
    amount_cents: Optional[int] = None
    percentage: Optional[Decimal] = None

    model_config = {"from_attributes": True}


class CustomFeeCreate(BaseModel):
    name: str = Field(min_length=1)
    amount_cents: int = Field(gt=0)


class CustomFeeRead(BaseModel):
    id: int
    name: str
    amount_cents: int

    model_config = {"from_attributes": True}


class OrderRead(BaseModel):
    id: int
    status: OrderStatus
    event_date: date
    event_end_date: Optional[date] = None
    start_window: Optional[str] = None
    end_window: Optional[str] = None
    location_type: LocationType
    surface: Surface
    can_use_stakes: bool
    pickup_preference: PickupPreference
    generator_qty: int
    address: Optional[AddressRead] = None
    items: List[OrderItemRead] = []
    discounts: List[DiscountRead] = []
    custom_fees: List[CustomFeeRead] = []
    subtotal_cents: int
    travel_fee_cents: int
    travel_total_miles: Optional[Decimal] = None
    surface_fee_cents: int
    generator_fee_cents: int
    same_day_pickup_fee_cents: int
    tax_cents: int
    total_cents: int
    tip_cents: int
    deposit_due_cents: int
    balance_due_cents: int
    deposit_paid_cents: int
    balance_paid_cents: int
    stripe_payment_status: str
    admin_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OrderReprice(BaseModel):
    """Admin edits to an existing order. Omitted fields keep their value."""

    event_date: Optional[date] = None
    event_end_date: Optional[date] = None
    location_type: Optional[LocationType] = None
    surface: Optional[Surface] = None
    can_use_stakes: Optional[bool] = None
    pickup_preference: Optional[PickupPreference] = None
    generator_qty: Optional[int] = Field(default=None, ge=0)
    apply_taxes: Optional[bool] = None
    items: Optional[List[CartItemIn]] = None
    waived_fees: Optional[List[str]] = None
    custom_deposit_cents: Optional[int] = Field(default=None, ge=0)
    distance_miles: Optional[float] = Field(default=None, ge=0)
    admin_message: Optional[str] = None
    # Skip customer approval and confirm directly
    confirm: bool = False
    changed_by: str = "admin"


class StatusChange(BaseModel):
    status: OrderStatus
    changed_by: str = "admin"


class ApprovalDecision(BaseModel):
    approve: bool
    reason: Optional[str] = None


class ConflictRead(BaseModel):
    order_id: Optional[int] = None
    start_date: date
    end_date: date
    status: str
    reason: str

    model_config = {"from_attributes": True}


class AvailabilityRead(BaseModel):
    unit_id: int
    is_available: bool
    requested_qty: int
    remaining_qty: int
    conflicts: List[ConflictRead] = []

    model_config = {"from_attributes": True}
