import os
from datetime import date
from pathlib import Path

from dotenv import load_dotenv
import pytest

# Load environment variables for tests before any settings are read
os.environ.setdefault("PYTEST_RUN", "1")
load_dotenv(Path(__file__).resolve().parents[1] / ".env.test")

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from rentals import models  # noqa: E402
from rentals.core.config import settings  # noqa: E402
from rentals.database import Base  # noqa: E402
from rentals.services.pricing import PricingRules  # noqa: E402
from rentals.utils import redis_cache  # noqa: E402

RULE_VALUES = dict(
    base_radius_miles=10,
    per_mile_after_base_cents=150,
    surface_sandbag_fee_cents=2500,
    deposit_per_unit_cents=5000,
    generator_fee_single_cents=10000,
    generator_fee_multiple_cents=7500,
    same_day_pickup_fee_cents=3000,
    included_cities=["Wayne"],
    zone_overrides=[{"zip": "48111", "flat_cents": 4000}],
)


@pytest.fixture
def make_rules():
    def _make(**overrides) -> PricingRules:
        values = dict(RULE_VALUES)
        values.update(overrides)
        return PricingRules.from_record(values)

    return _make


@pytest.fixture
def rules(make_rules):
    return make_rules()


@pytest.fixture(autouse=True)
def no_google_key(monkeypatch):
    """Keep tests off the network unless a test sets a key explicitly."""
    monkeypatch.delenv("GOOGLE_MAPS_API_KEY", raising=False)
    monkeypatch.setattr(settings, "GOOGLE_MAPS_API_KEY", "")


@pytest.fixture
def fake_redis(monkeypatch):
    import fakeredis

    fake = fakeredis.FakeStrictRedis(decode_responses=True)
    monkeypatch.setattr(redis_cache, "get_redis_client", lambda: fake)
    return fake


@pytest.fixture
def Session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def db(Session):
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def catalog(db):
    """Two catalog units plus a configured pricing rules row."""
    castle = models.Unit(name="Castle", slug="castle", price_dry_cents=15000, price_water_cents=20000, quantity_available=1)
    combo = models.Unit(name="Combo", slug="combo", price_dry_cents=22500, price_water_cents=None, quantity_available=2)
    db.add_all([castle, combo, models.PricingRulesRecord(**RULE_VALUES)])
    db.commit()
    return {"castle": castle, "combo": combo}


@pytest.fixture
def client(Session, catalog):
    from fastapi.testclient import TestClient

    from rentals.api.dependencies import get_carts, get_db
    from rentals.main import app
    from rentals.services.cart import CartRepository, MemoryCartStorage

    def override_db():
        session = Session()
        try:
            yield session
        finally:
            session.close()

    carts = CartRepository(MemoryCartStorage())
    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_carts] = lambda: carts
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def order_payload():
    def _payload(**overrides):
        payload = {
            "event_date": date(2026, 7, 4).isoformat(),
            "customer": {"first_name": "Dana", "last_name": "Reyes", "email": "dana@example.com"},
            "address": {
                "line1": "12 Elm St",
                "city": "Canton",
                "state": "MI",
                "zip": "48187",
                # At the home base, so no travel fee
                "lat": settings.HOME_BASE_LAT,
                "lng": settings.HOME_BASE_LNG,
            },
            "items": [{"unit_id": 1, "qty": 1}],
        }
        payload.update(overrides)
        return payload

    return _payload
