import os
from datetime import datetime, timedelta, timezone

# Must be set before anything under app/ is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["INCIDENT_SOURCES"] = "nc_mecklenburg"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402

from app.db import Base, SessionLocal, engine  # noqa: E402
from app.main import app as api  # noqa: E402
from app.models import Company, CompanyMember, Incident, Truck  # noqa: E402
from app.routers.incidents import incidents_limiter, ingest_limiter  # noqa: E402

JWT_SECRET = os.environ["SUPABASE_JWT_SECRET"]
CRON_SECRET = os.environ["CRON_SECRET"]

# Uptown Charlotte yard, and an incident ~1.46 km north of it
BASE_LAT, BASE_LNG = 35.2271, -80.8431
NEAR_LAT, NEAR_LNG = 35.2400, -80.8400

OWNER_ID = "user-owner"
DRIVER_ID = "user-driver"
OTHER_DRIVER_ID = "user-driver-2"


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    incidents_limiter.reset()
    ingest_limiter.reset()
    yield
    api.dependency_overrides.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(api)


def make_token(user_id: str, secret: str = JWT_SECRET, audience: str = "authenticated") -> str:
    claims = {
        "sub": user_id,
        "aud": audience,
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    return jwt.encode(claims, secret, algorithm="HS256")


def auth_header(user_id: str) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def company(db):
    c = Company(
        name="Queen City Towing",
        base_lat=BASE_LAT,
        base_lng=BASE_LNG,
        radius_km=40.0,
        alert_enabled=True,
        alert_categories={"crash": True, "disabled": True, "hazard": False},
        alert_buffer_km=5.0,
        timezone="UTC",
    )
    db.add(c)
    db.flush()
    db.add_all(
        [
            CompanyMember(company_id=c.id, user_id=OWNER_ID, role="owner"),
            CompanyMember(company_id=c.id, user_id=DRIVER_ID, role="driver"),
            CompanyMember(company_id=c.id, user_id=OTHER_DRIVER_ID, role="driver"),
        ]
    )
    db.commit()
    return c


@pytest.fixture
def make_truck(db):
    def _make(company, name="Wrecker 1", assigned_driver_id=None, status="available"):
        truck = Truck(
            company_id=company.id,
            name=name,
            status=status,
            assigned_driver_id=assigned_driver_id,
        )
        db.add(truck)
        db.commit()
        return truck

    return _make


@pytest.fixture
def make_incident(db):
    counter = {"n": 0}

    def _make(
        lat=NEAR_LAT,
        lng=NEAR_LNG,
        category="accident",
        description="Crash on I-77 N",
        minutes_ago=5,
        source="nc_mecklenburg",
        external_id=None,
        road="I-77 N",
        occurred_at=None,
    ):
        counter["n"] += 1
        incident = Incident(
            source=source,
            external_id=external_id or f"ext-{counter['n']}",
            category=category,
            description=description,
            lat=lat,
            lng=lng,
            road=road,
            city="Charlotte",
            state="NC",
            occurred_at=occurred_at or datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
        )
        db.add(incident)
        db.commit()
        return incident

    return _make
