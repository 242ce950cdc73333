from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from models import Base, Unit
from services import unit_service as us


def test_lookup_vin(monkeypatch) -> None:
    engine = create_engine("sqlite://")
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    with Session() as db:
        db.add_all([Unit(unit_id=1, vin="1FTFW1E50PFA00001"), Unit(unit_id=2, vin=None)])
        db.commit()
    monkeypatch.setattr(us, "SessionLocal", Session)

    assert us.lookup_vin(1) == "1FTFW1E50PFA00001"
    assert us.lookup_vin(2) is None
    assert us.lookup_vin(3) is None
