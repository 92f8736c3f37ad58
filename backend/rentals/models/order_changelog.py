from sqlalchemy import Column, Integer, String, Text, ForeignKey
from sqlalchemy.orm import relationship

from .base import BaseModel


class OrderChangelog(BaseModel):
    __tablename__ = "order_changelog"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    field_name = Column(String, nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    # update | add | remove
    change_type = Column(String, nullable=False, default="update")
    changed_by = Column(String, nullable=True)

    order = relationship("Order", back_populates="changelog")
