from sqlalchemy import Column, Integer, Numeric, Boolean, JSON

from .base import BaseModel


class PricingRulesRecord(BaseModel):
    """Admin-configured pricing knobs. A single row is expected."""

    __tablename__ = "pricing_rules"

    id = Column(Integer, primary_key=True, index=True)
    base_radius_miles = Column(Numeric(8, 2), nullable=False, default=20)
    per_mile_after_base_cents = Column(Integer, nullable=False, default=500)
    surface_sandbag_fee_cents = Column(Integer, nullable=False, default=0)
    deposit_per_unit_cents = Column(Integer, nullable=False, default=5000)
    generator_fee_single_cents = Column(Integer, nullable=False, default=10000)
    generator_fee_multiple_cents = Column(Integer, nullable=False, default=7500)
    same_day_pickup_fee_cents = Column(Integer, nullable=False, default=0)
    included_cities = Column(JSON, nullable=False, default=list)
    # [{"zip": "48184", "flat_cents": 2500}, ...]
    zone_overrides = Column(JSON, nullable=False, default=list)
    residential_multiplier = Column(Numeric(6, 3), nullable=False, default=1)
    commercial_multiplier = Column(Numeric(6, 3), nullable=False, default=1)
    extra_day_pct = Column(Numeric(6, 2), nullable=False, default=0)
    apply_taxes_by_default = Column(Boolean, nullable=False, default=True)
