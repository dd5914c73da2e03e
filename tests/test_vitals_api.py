"""
HTTP and transaction tests for the vitals service.
"""
import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from vitals_service import main as vitals_main
from vitals_service.engine import PatientProfile, create_vital_signs, load_vital_ranges
from vitals_service.models.models import VitalAlert, VitalSigns, utc_now
from vitals_service.models.schemas import VitalSignsCreate
from vitals_service.trends import ensure_utc

PATIENT_ID = str(uuid.uuid4())
CAREGIVER_ID = str(uuid.uuid4())


def record(client, patient_id=PATIENT_ID, **vitals):
    payload = {"patientId": patient_id, "caregiverId": CAREGIVER_ID, **vitals}
    resp = client.post("/vitals", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def hours_ago(hours):
    return (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()


def test_health(vitals_client):
    resp = vitals_client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["dependencies"]["database"]["status"] == "healthy"


def test_high_heart_rate_raises_critical_alert(vitals_client):
    vital = record(vitals_client, heartRate=155)

    assert vital["isAlerted"] is True
    assert vital["alertedValues"] == ["heartRate"]

    alerts = vitals_client.get("/alerts", params={"patient_id": PATIENT_ID}).json()
    assert len(alerts) == 1
    assert alerts[0]["vitalType"] == "heartRate"
    assert alerts[0]["severity"] == "critical"
    assert alerts[0]["actualValue"] == "155"
    assert alerts[0]["vitalSignsId"] == vital["id"]
    assert alerts[0]["isAcknowledged"] is False


def test_normal_oxygen_raises_nothing(vitals_client):
    vital = record(vitals_client, oxygenSaturation=99)

    assert vital["isAlerted"] is False
    assert vital["alertedValues"] == []
    assert vitals_client.get("/alerts", params={"patient_id": PATIENT_ID}).json() == []


def test_blood_pressure_round_trips_as_object(vitals_client):
    vital = record(vitals_client, bloodPressure={"systolic": 120, "diastolic": 80}, weight=72.5)

    assert vital["bloodPressure"] == {"systolic": 120, "diastolic": 80}
    assert vital["weight"] == 72.5
    assert vital["isAlerted"] is False


def test_default_ranges_are_seeded(vitals_client):
    ranges = vitals_client.get("/ranges").json()
    assert [r["name"] for r in ranges] == ["Adult Default", "Senior Default"]
    assert all(r["isDefault"] for r in ranges)
    assert ranges[0]["heartRateMin"] == 60


@pytest.mark.parametrize(
    "vitals",
    [
        {},
        {"bloodPressure": {"systolic": 80, "diastolic": 90}},
        {"bloodPressure": {"systolic": 120}},
        {"heartRate": 250},
        {"temperature": 50},
        {"heartRate": 70, "pulse": 70},
    ],
)
def test_invalid_submissions_are_rejected(vitals_client, vitals):
    payload = {"patientId": PATIENT_ID, "caregiverId": CAREGIVER_ID, **vitals}
    assert vitals_client.post("/vitals", json=payload).status_code == 422


def test_database_failure_is_reported(vitals_client, monkeypatch):
    def failing_create(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("disk full"))

    monkeypatch.setattr(vitals_main, "create_vital_signs", failing_create)

    resp = vitals_client.post(
        "/vitals", json={"patientId": PATIENT_ID, "caregiverId": CAREGIVER_ID, "heartRate": 70}
    )

    assert resp.status_code == 500
    assert resp.json()["detail"].startswith("Database Write Failed")


def test_reading_and_alerts_are_written_together(engine, session, monkeypatch):
    load_vital_ranges(session)

    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("connection lost"))

    monkeypatch.setattr(session, "commit", failing_commit)
    payload = VitalSignsCreate(
        patient_id=uuid.uuid4(), caregiver_id=uuid.uuid4(), heart_rate=155
    )

    with pytest.raises(OperationalError):
        create_vital_signs(session, payload)

    with Session(engine) as check:
        assert check.exec(select(VitalSigns)).all() == []
        assert check.exec(select(VitalAlert)).all() == []


def test_acknowledge_alert_once(vitals_client):
    record(vitals_client, temperature=39.5)
    alert = vitals_client.get("/alerts", params={"patient_id": PATIENT_ID}).json()[0]
    body = {"acknowledgedBy": str(uuid.uuid4())}

    resp = vitals_client.post(f"/alerts/{alert['id']}/acknowledge", json=body)
    assert resp.status_code == 200
    assert resp.json()["isAcknowledged"] is True
    assert resp.json()["acknowledgedAt"] is not None

    again = vitals_client.post(f"/alerts/{alert['id']}/acknowledge", json=body)
    assert again.status_code == 409

    pending = vitals_client.get("/alerts", params={"unacknowledged_only": True}).json()
    assert pending == []


def test_acknowledge_unknown_alert_is_404(vitals_client):
    resp = vitals_client.post(
        f"/alerts/{uuid.uuid4()}/acknowledge", json={"acknowledgedBy": str(uuid.uuid4())}
    )
    assert resp.status_code == 404


def test_trends_endpoint(vitals_client):
    for hours, rate in [(30, 70), (20, 72), (10, 71), (2, 73)]:
        record(vitals_client, heartRate=rate, recordedAt=hours_ago(hours))

    resp = vitals_client.get(
        "/vitals/trends", params={"patient_id": PATIENT_ID, "vital_type": "heartRate"}
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["timeRange"] == "7d"
    assert [p["value"] for p in body["dataPoints"]] == [70.0, 72.0, 71.0, 73.0]
    assert body["averageValue"] == 71.5
    assert body["trend"] == "stable"

    day = vitals_client.get(
        "/vitals/trends",
        params={"patient_id": PATIENT_ID, "vital_type": "heartRate", "time_range": "24h"},
    ).json()
    assert len(day["dataPoints"]) == 3


def test_trends_with_unknown_vital_type_is_422(vitals_client):
    resp = vitals_client.get(
        "/vitals/trends", params={"patient_id": PATIENT_ID, "vital_type": "pulse"}
    )
    assert resp.status_code == 422


def test_history_and_latest_reading(vitals_client):
    older = record(vitals_client, heartRate=70, recordedAt=hours_ago(5))
    newer = record(vitals_client, heartRate=75, recordedAt=hours_ago(1))

    history = vitals_client.get("/vitals", params={"patient_id": PATIENT_ID}).json()
    assert [v["id"] for v in history] == [newer["id"], older["id"]]

    latest = vitals_client.get(f"/patients/{PATIENT_ID}/latest").json()
    assert latest["id"] == newer["id"]

    assert vitals_client.get(f"/patients/{uuid.uuid4()}/latest").status_code == 404


def test_notes_can_be_corrected(vitals_client):
    vital = record(vitals_client, heartRate=70)

    resp = vitals_client.patch(f"/vitals/{vital['id']}", json={"notes": "Rechecked after rest"})
    assert resp.status_code == 200
    assert resp.json()["notes"] == "Rechecked after rest"

    resp = vitals_client.patch(f"/vitals/{vital['id']}", json={"heartRate": 90})
    assert resp.status_code == 422

    assert vitals_client.patch(f"/vitals/{uuid.uuid4()}", json={"notes": "x"}).status_code == 404


def test_delete_requires_admin_and_keeps_alert_history(vitals_client, monkeypatch):
    monkeypatch.setenv("ADMIN_TOKEN", "s3cret")
    vital = record(vitals_client, heartRate=155)

    assert vitals_client.delete(f"/vitals/{vital['id']}").status_code == 403
    resp = vitals_client.delete(f"/vitals/{vital['id']}", headers={"X-Admin-Token": "s3cret"})
    assert resp.status_code == 204

    assert vitals_client.get(f"/vitals/{vital['id']}").status_code == 404
    alerts = vitals_client.get("/alerts", params={"patient_id": PATIENT_ID}).json()
    assert len(alerts) == 1
    assert alerts[0]["vitalType"] == "heartRate"
    assert alerts[0]["vitalSignsId"] is None


def test_senior_patient_is_checked_against_senior_range(vitals_client, monkeypatch):
    monkeypatch.setattr(vitals_main, "_fetch_patient_profile", lambda pid: PatientProfile(age=70))

    vital = record(vitals_client, heartRate=55)

    assert vital["isAlerted"] is False


def test_custom_range(vitals_client):
    resp = vitals_client.post(
        "/ranges",
        json={"name": "Athlete", "heartRateMin": 40, "heartRateMax": 90},
        headers={"X-User-ID": "nurse-lead"},
    )
    assert resp.status_code == 201
    assert resp.json()["createdBy"] == "nurse-lead"
    assert resp.json()["gender"] == "all"

    bad = vitals_client.post(
        "/ranges", json={"name": "Broken", "heartRateMin": 100, "heartRateMax": 60}
    )
    assert bad.status_code == 422


def test_patient_lookup_disabled_without_url(monkeypatch):
    monkeypatch.delenv("USER_SERVICE_URL", raising=False)
    assert vitals_main._fetch_patient_profile(uuid.uuid4()) is None


class FakeUserService:
    def __init__(self, response):
        self.response = response
        self.requested = []

    def __call__(self, *args, **kwargs):
        return self

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def get(self, url):
        self.requested.append(url)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def test_patient_lookup_reads_age_and_gender(monkeypatch):
    patient_id = uuid.uuid4()
    fake = FakeUserService(
        httpx.Response(200, json={"date_of_birth": "1940-01-01", "gender": "Female"})
    )
    monkeypatch.setenv("USER_SERVICE_URL", "http://users.local/users/")
    monkeypatch.setattr(vitals_main.httpx, "Client", fake)

    profile = vitals_main._fetch_patient_profile(patient_id)

    assert fake.requested == [f"http://users.local/users/{patient_id}"]
    assert profile.gender == "female"
    assert profile.age >= 80


def test_patient_lookup_failure_degrades_to_none(monkeypatch):
    monkeypatch.setenv("USER_SERVICE_URL", "http://users.local/users")
    monkeypatch.setattr(
        vitals_main.httpx, "Client", FakeUserService(httpx.ConnectError("refused"))
    )
    assert vitals_main._fetch_patient_profile(uuid.uuid4()) is None

    monkeypatch.setattr(vitals_main.httpx, "Client", FakeUserService(httpx.Response(404)))
    assert vitals_main._fetch_patient_profile(uuid.uuid4()) is None


class FakeRedis:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value

    def delete(self, key):
        self.store.pop(key, None)


def test_backdated_reading_does_not_replace_cached_latest(vitals_client, monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(vitals_main, "redis_client", fake)
    current = record(vitals_client, heartRate=70, recordedAt=hours_ago(0))

    assert vitals_client.get(f"/patients/{PATIENT_ID}/latest").json()["id"] == current["id"]
    assert f"latest:{PATIENT_ID}" in fake.store

    record(vitals_client, heartRate=90, recordedAt=hours_ago(48))
    latest = vitals_client.get(f"/patients/{PATIENT_ID}/latest").json()
    assert latest["id"] == current["id"]
    assert latest["heartRate"] == 70

    newer = record(vitals_client, heartRate=75)
    assert vitals_client.get(f"/patients/{PATIENT_ID}/latest").json()["id"] == newer["id"]


def test_timestamps_are_stored_as_aware_utc(session):
    load_vital_ranges(session)
    recorded = datetime(2026, 3, 10, 14, 0, tzinfo=timezone(timedelta(hours=2)))
    payload = VitalSignsCreate(
        patient_id=uuid.uuid4(), caregiver_id=uuid.uuid4(), heart_rate=70, recorded_at=recorded
    )

    vital = create_vital_signs(session, payload)

    assert ensure_utc(vital.recorded_at) == datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
    assert utc_now().utcoffset() == timedelta(0)
    assert VitalSigns(patient_id=uuid.uuid4(), caregiver_id=uuid.uuid4()).created_at.tzinfo



def test_engine_is_disposed_on_shutdown(monkeypatch):
    calls = []
    monkeypatch.setattr(vitals_main, "init_db", lambda: calls.append("init"))
    monkeypatch.setattr(vitals_main, "close_db_connection", lambda: calls.append("close"))

    with TestClient(vitals_main.app):
        assert calls == ["init"]

    assert calls == ["init", "close"]
