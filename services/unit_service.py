# services/unit_service.py
from typing import Optional

from db import SessionLocal
from models import Unit


def lookup_vin(unit_id: int) -> Optional[str]:
    """VIN stored for an inventory unit, or None when the unit does not exist."""
    with SessionLocal() as db:
        unit = db.query(Unit).filter(Unit.unit_id == unit_id).first()
        return unit.vin if unit else None
