from sqlalchemy import Column, Integer, String, Date, ForeignKey

from .base import BaseModel


class BlackoutDate(BaseModel):
    """Admin-blocked date range, either business-wide or for a single unit."""

    __tablename__ = "blackout_dates"

    id = Column(Integer, primary_key=True, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    # Null blocks every unit
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True)
    reason = Column(String, nullable=True)
