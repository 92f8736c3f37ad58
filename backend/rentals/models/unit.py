from sqlalchemy import Column, Integer, String, Boolean

from .base import BaseModel


class Unit(BaseModel):
    """A rentable inflatable listed in the catalog."""

    __tablename__ = "units"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=True, unique=True)
    price_dry_cents = Column(Integer, nullable=False)
    # Null when the unit has no water mode
    price_water_cents = Column(Integer, nullable=True)
    quantity_available = Column(Integer, nullable=False, default=1)
    active = Column(Boolean, nullable=False, default=True)
