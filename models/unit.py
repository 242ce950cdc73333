# models/unit.py
from sqlalchemy import Column, Integer, String
from .base import Base

class Unit(Base):
    """Inventory unit row. Only the columns the image functions read are mapped."""
    __tablename__ = "Units"

    unit_id = Column("UnitID", Integer, primary_key=True)
    vin = Column("VIN", String(32), nullable=True)
