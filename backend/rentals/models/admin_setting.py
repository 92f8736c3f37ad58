from sqlalchemy import Column, String, Text

from .base import BaseModel


class AdminSetting(BaseModel):
    __tablename__ = "admin_settings"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=True)
