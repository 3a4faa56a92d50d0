from datetime import datetime, timezone

import httpx
import pytest

from app.errors import SourceFetchError
from app.main import app as api
from app.models import InAppAlert
from app.routers.alerts import get_alert_engine
from app.routers.incidents import get_sources, incidents_limiter, ingest_limiter
from app.services.alerts import AlertEngine
from app.services.sources.dot import DotFeedSource

from conftest import CRON_SECRET, DRIVER_ID, OTHER_DRIVER_ID, OWNER_ID, auth_header, make_token

CRON = {"Authorization": f"Bearer {CRON_SECRET}"}


class CannedSource(DotFeedSource):
    """DOT-shaped feed that answers from memory instead of the network."""

    def __init__(self, name, payload=None, error=None):
        super().__init__(url="https://feed.test")
        self.name = name
        self.payload = payload
        self.error = error

    async def fetch(self, client):
        if self.error:
            raise SourceFetchError(self.name, self.error)
        return self.payload


def dot_item(item_id, lat=35.24, lng=-80.84):
    return {
        "id": item_id,
        "eventType": "CRASH",
        "latitude": lat,
        "longitude": lng,
        "roadName": "I-77 N",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# --- auth -----------------------------------------------------------------


def test_nearby_requires_token(client, company):
    resp = client.get("/incidents/nearby")
    assert resp.status_code == 401
    assert resp.json()["ok"] is False


def test_nearby_rejects_bad_signature(client, company):
    token = make_token(OWNER_ID, secret="not-the-secret")
    resp = client.get("/incidents/nearby", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


def test_user_without_company_is_404(client, company):
    resp = client.get("/incidents/nearby", headers=auth_header("stranger"))
    assert resp.status_code == 404
    assert resp.json()["error"] == "No company profile found"


def test_wrong_method_is_405(client):
    assert client.post("/incidents/nearby").status_code == 405


def test_cron_endpoints_need_secret(client):
    assert client.post("/incidents/ingest").status_code == 401
    assert client.post("/alerts/run", headers={"Authorization": "Bearer nope"}).status_code == 401


# --- incidents ------------------------------------------------------------


@pytest.mark.parametrize("minutes", [0, 1441, "abc"])
def test_nearby_window_is_validated(client, company, minutes):
    resp = client.get(f"/incidents/nearby?minutes={minutes}", headers=auth_header(OWNER_ID))
    assert resp.status_code == 422


def test_nearby_returns_incidents_in_range(client, company, make_incident):
    near = make_incident()
    make_incident(lat=40.7128, lng=-74.0060)  # New York
    make_incident(minutes_ago=180)

    resp = client.get("/incidents/nearby?minutes=60", headers=auth_header(OWNER_ID))

    assert resp.status_code == 200
    body = resp.json()
    assert [i["id"] for i in body["incidents"]] == [near.id]
    assert body["incidents"][0]["distance_km"] == pytest.approx(1.46, abs=0.02)
    assert body["incidents"][0]["display_category"] == "crash"


def test_available_hides_claimed_incidents(client, company, make_truck, make_incident):
    make_truck(company)
    claimed = make_incident()
    open_one = make_incident()

    resp = client.post("/claims", json={"incident_id": claimed.id}, headers=auth_header(DRIVER_ID))
    assert resp.status_code == 201

    resp = client.get("/incidents/available", headers=auth_header(DRIVER_ID))
    assert [i["id"] for i in resp.json()["incidents"]] == [open_one.id]


def test_ingest_ok(client):
    api_sources = [CannedSource("dot", payload=[dot_item("a"), dot_item("b")])]
    api.dependency_overrides[get_sources] = lambda: api_sources

    resp = client.post("/incidents/ingest", headers=CRON)

    assert resp.status_code == 200
    assert resp.json()["inserted"] == 2


def test_ingest_partial_is_207(client):
    api_sources = [
        CannedSource("dot", payload=[dot_item("a")]),
        CannedSource("tomtom", error="HTTP 503 Service Unavailable"),
    ]
    api.dependency_overrides[get_sources] = lambda: api_sources

    resp = client.post("/incidents/ingest", headers=CRON)

    assert resp.status_code == 207
    body = resp.json()
    assert body["status"] == "partial"
    assert body["source_failures"][0]["source"] == "tomtom"


def test_ingest_all_failed_is_502(client):
    api.dependency_overrides[get_sources] = lambda: [CannedSource("dot", error="timed out")]

    resp = client.post("/incidents/ingest", headers=CRON)
    assert resp.status_code == 502


# --- alerts ---------------------------------------------------------------


def test_refresh_then_list_alerts(client, db, company, make_incident):
    make_incident()
    api.dependency_overrides[get_alert_engine] = lambda: AlertEngine(channels=[])

    resp = client.post("/alerts/refresh", headers=auth_header(OWNER_ID))
    assert resp.status_code == 200
    assert resp.json()["notified"] == 1

    again = client.post("/alerts/refresh", headers=auth_header(OWNER_ID))
    assert again.json()["notified"] == 0

    listed = client.get("/alerts", headers=auth_header(OWNER_ID)).json()
    assert len(listed["alerts"]) == 1
    assert db.query(InAppAlert).count() == 1


def test_cron_alert_run(client, company, make_incident):
    make_incident()
    engine = AlertEngine(channels=[], transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    api.dependency_overrides[get_alert_engine] = lambda: engine

    resp = client.post("/alerts/run", headers=CRON)

    assert resp.status_code == 200
    assert resp.json()["notified"] == 1


# --- claims ---------------------------------------------------------------


def test_claim_conflict_is_409(client, company, make_truck, make_incident):
    make_truck(company, name="A")
    make_truck(company, name="B")
    inc = make_incident()

    first = client.post("/claims", json={"incident_id": inc.id}, headers=auth_header(DRIVER_ID))
    second = client.post("/claims", json={"incident_id": inc.id}, headers=auth_header(OTHER_DRIVER_ID))

    assert first.status_code == 201
    assert first.json()["claim"]["driver_id"] == DRIVER_ID
    assert second.status_code == 409
    assert second.json()["error"] == "Incident has already been claimed"


def test_driver_job_lifecycle(client, company, make_truck, make_incident):
    make_truck(company)
    inc = make_incident()
    headers = auth_header(DRIVER_ID)
    client.post("/claims", json={"incident_id": inc.id}, headers=headers)

    mine = client.get("/claims/mine", headers=headers).json()["claims"]
    assert [c["incident_id"] for c in mine] == [inc.id]

    # Another driver cannot move this job
    resp = client.post(
        f"/claims/{inc.id}/status", json={"status": "en_route"}, headers=auth_header(OTHER_DRIVER_ID)
    )
    assert resp.status_code == 404

    for status in ("en_route", "on_scene"):
        resp = client.post(f"/claims/{inc.id}/status", json={"status": status}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["claim"]["status"] == status

    backwards = client.post(f"/claims/{inc.id}/status", json={"status": "en_route"}, headers=headers)
    assert backwards.status_code == 409

    done = client.post(f"/claims/{inc.id}/status", json={"status": "completed"}, headers=headers)
    assert done.json()["truck_released"] is True
    assert client.get("/claims/mine", headers=headers).json()["claims"] == []


def test_list_claims_bad_status_is_422(client, company):
    resp = client.get("/claims?status=towed", headers=auth_header(OWNER_ID))
    assert resp.status_code == 422


# --- health ---------------------------------------------------------------


def test_health_reports_checks(client, company, make_incident):
    make_incident()

    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["checks"]["database"]["connected"] is True
    assert body["checks"]["incidents_last_24h"] == 1
    assert body["checks"]["companies"] == 1
    assert body["checks"]["env"]["cron_secret"] is True


# --- rate limiting --------------------------------------------------------


def test_incident_reads_are_rate_limited(client, company, monkeypatch):
    monkeypatch.setattr(incidents_limiter, "max_requests", 2)
    headers = auth_header(OWNER_ID)

    assert client.get("/incidents/nearby", headers=headers).status_code == 200
    assert client.get("/incidents/available", headers=headers).status_code == 200

    blocked = client.get("/incidents/nearby", headers=headers)
    assert blocked.status_code == 429
    assert blocked.json() == {"ok": False, "error": "Rate limit exceeded"}

    # A different client has its own budget
    other = dict(headers, **{"X-Forwarded-For": "203.0.113.9"})
    assert client.get("/incidents/nearby", headers=other).status_code == 200


def test_ingest_is_rate_limited_before_auth(client, monkeypatch):
    monkeypatch.setattr(ingest_limiter, "max_requests", 1)
    api.dependency_overrides[get_sources] = lambda: [CannedSource("dot", payload=[dot_item("a")])]

    assert client.post("/incidents/ingest", headers=CRON).status_code == 200
    assert client.post("/incidents/ingest", headers=CRON).status_code == 429
    assert client.post("/incidents/ingest").status_code == 429


def test_refresh_skips_ids_the_dashboard_already_saw(client, company, make_incident):
    inc = make_incident()
    api.dependency_overrides[get_alert_engine] = lambda: AlertEngine(channels=[])

    resp = client.post("/alerts/refresh", json={"seen_ids": [inc.id]}, headers=auth_header(OWNER_ID))

    assert resp.status_code == 200
    assert resp.json()["notified"] == 0
