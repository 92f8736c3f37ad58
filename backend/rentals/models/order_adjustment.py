from sqlalchemy import Column, Integer, String, Numeric, ForeignKey
from sqlalchemy.orm import relationship

from .base import BaseModel


class OrderDiscount(BaseModel):
    """Either a flat ``amount_cents`` or a ``percentage`` of the taxable base."""

    __tablename__ = "order_discounts"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    amount_cents = Column(Integer, nullable=True)
    percentage = Column(Numeric(5, 2), nullable=True)

    order = relationship("Order", back_populates="discounts")


class OrderCustomFee(BaseModel):
    __tablename__ = "order_custom_fees"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    amount_cents = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="custom_fees")
