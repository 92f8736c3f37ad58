import enum
from sqlalchemy import (
    Column,
    Integer,
    ForeignKey,
    Numeric,
    String,
    Date,
    Boolean,
    Text,
    Enum as SQLAlchemyEnum,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class OrderStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    AWAITING_CUSTOMER_APPROVAL = "awaiting_customer_approval"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    VOID = "void"


class LocationType(str, enum.Enum):
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"


class Surface(str, enum.Enum):
    GRASS = "grass"
    CONCRETE = "concrete"


class PickupPreference(str, enum.Enum):
    NEXT_DAY = "next_day"
    SAME_DAY = "same_day"


class WetOrDry(str, enum.Enum):
    DRY = "dry"
    WATER = "water"


def _enum_column(enum_cls, name: str, **kwargs):
    # Persist lowercase values rather than member names
    return Column(
        SQLAlchemyEnum(
            enum_cls,
            name=name,
            values_callable=lambda enum: [e.value for e in enum],
        ),
        **kwargs,
    )


class Order(BaseModel):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    address_id = Column(Integer, ForeignKey("addresses.id"), nullable=True)
    status = _enum_column(OrderStatus, "orderstatus", nullable=False, default=OrderStatus.DRAFT)

    # Event details
    event_date = Column(Date, nullable=False)
    event_end_date = Column(Date, nullable=True)
    start_window = Column(String, nullable=True)
    end_window = Column(String, nullable=True)
    location_type = _enum_column(LocationType, "locationtype", nullable=False, default=LocationType.RESIDENTIAL)
    surface = _enum_column(Surface, "surface", nullable=False, default=Surface.GRASS)
    can_use_stakes = Column(Boolean, nullable=False, default=True)
    pickup_preference = _enum_column(
        PickupPreference, "pickuppreference", nullable=False, default=PickupPreference.NEXT_DAY
    )
    generator_qty = Column(Integer, nullable=False, default=0)
    # Null falls back to the pricing rules default
    apply_taxes = Column(Boolean, nullable=True)

    # Stored price breakdown (integer cents)
    subtotal_cents = Column(Integer, nullable=False, default=0)
    travel_fee_cents = Column(Integer, nullable=False, default=0)
    travel_total_miles = Column(Numeric(8, 2), nullable=True)
    travel_base_radius_miles = Column(Numeric(8, 2), nullable=True)
    travel_chargeable_miles = Column(Numeric(8, 2), nullable=True)
    travel_per_mile_cents = Column(Integer, nullable=True)
    travel_is_flat_fee = Column(Boolean, nullable=False, default=False)
    surface_fee_cents = Column(Integer, nullable=False, default=0)
    generator_fee_cents = Column(Integer, nullable=False, default=0)
    same_day_pickup_fee_cents = Column(Integer, nullable=False, default=0)
    tax_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False, default=0)
    tip_cents = Column(Integer, nullable=False, default=0)
    deposit_due_cents = Column(Integer, nullable=False, default=0)
    balance_due_cents = Column(Integer, nullable=False, default=0)
    custom_deposit_cents = Column(Integer, nullable=True)

    # Waivers granted by an admin
    tax_waived = Column(Boolean, nullable=False, default=False)
    tax_waive_reason = Column(String, nullable=True)
    travel_fee_waived = Column(Boolean, nullable=False, default=False)
    surface_fee_waived = Column(Boolean, nullable=False, default=False)
    same_day_pickup_fee_waived = Column(Boolean, nullable=False, default=False)
    generator_fee_waived = Column(Boolean, nullable=False, default=False)

    # Payments
    deposit_paid_cents = Column(Integer, nullable=False, default=0)
    balance_paid_cents = Column(Integer, nullable=False, default=0)
    stripe_checkout_session_id = Column(String, nullable=True)
    stripe_payment_status = Column(String, nullable=False, default="unpaid")
    stripe_payment_method_id = Column(String, nullable=True)

    admin_message = Column(Text, nullable=True)

    customer = relationship("Customer", back_populates="orders")
    address = relationship("Address")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    discounts = relationship(
        "OrderDiscount",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderDiscount.id",
    )
    custom_fees = relationship(
        "OrderCustomFee",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderCustomFee.id",
    )
    changelog = relationship(
        "OrderChangelog",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderChangelog.id",
    )

    @property
    def is_paid(self) -> bool:
        return (self.stripe_payment_status or "").lower() == "paid"


class OrderItem(BaseModel):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=False)
    unit_name = Column(String, nullable=False)
    wet_or_dry = _enum_column(WetOrDry, "wetordry", nullable=False, default=WetOrDry.DRY)
    unit_price_cents = Column(Integer, nullable=False)
    qty = Column(Integer, nullable=False, default=1)

    order = relationship("Order", back_populates="items")
