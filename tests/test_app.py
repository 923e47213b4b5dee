from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.snapshot import ZoneSnapshotStore
from services.aggregator import Aggregator
from services.ingestion import IngestionCoordinator
from services.validator import ReadingValidator
from settings import Settings, get_settings
from storage.timeseries import TimeSeriesStore

ZONES = ("zone1", "zone2", "zone3")
FIXED_NOW = datetime(2024, 6, 15, 9, 30, tzinfo=timezone.utc)
SETTINGS = Settings(
    zones=ZONES,
    required_fields=("soil_moisture", "temperature", "humidity"),
    time_zone="UTC",
    timeseries_persistence_path=None,
    persistence_workers=2,
    storage_timeout=0.05,
    log_level="INFO",
    debug=False,
)


def _zone_payload(**overrides):
    payload = {"soil": 45, "temperature": 23.5, "humidity": 61, "gas": 150, "light": 700, "motor": "ON"}
    payload.update(overrides)
    return payload


def _build_services():
    store = TimeSeriesStore(ZONES, timeout=SETTINGS.storage_timeout)
    coordinator = IngestionCoordinator(
        validator=ReadingValidator(zones=ZONES, clock=lambda: FIXED_NOW),
        snapshots=ZoneSnapshotStore(ZONES),
        timeseries=store,
        workers=2,
    )
    aggregator = Aggregator(store, clock=lambda: FIXED_NOW)
    return coordinator, aggregator


@pytest.fixture
def coordinator() -> IngestionCoordinator:
    instance, _ = _build_services()
    return instance


@pytest.fixture
def api_client() -> Iterator[tuple[TestClient, IngestionCoordinator]]:
    coordinator, aggregator = _build_services()
    app = create_app(coordinator=coordinator, aggregator=aggregator, settings=SETTINGS)
    with TestClient(app) as client:
        yield client, coordinator


def _ingest_zone2_day(client: TestClient, coordinator: IngestionCoordinator) -> None:
    for hour, temperature, humidity in ((8, 20.0, 40.0), (12, 22.0, 50.0), (16, 24.0, 60.0)):
        response = client.post(
            "/ingest",
            json={
                "zone": "zone2",
                **_zone_payload(temperature=temperature, humidity=humidity),
                "timestamp": f"2024-06-15T{hour:02d}:00:00Z",
            },
        )
        assert response.status_code == 200
    assert coordinator.wait_for_pending(timeout=5.0)


def test_ingest_then_read_zone_snapshot(api_client) -> None:
    client, _ = api_client

    response = client.post(
        "/ingest",
        json={"zone": "zone1", "soil": 42, "temperature": 25.5, "humidity": 60, "motor": "ON"},
    )

    assert response.status_code == 200
    assert response.json() == {"status": "success", "accepted": ["zone1"], "rejected": {}}

    snapshot = client.get("/snapshot/zone1")
    assert snapshot.status_code == 200
    body = snapshot.json()
    assert body["zone"] == "zone1"
    assert body["temperature"] == 25.5
    assert body["soilMoisture"] == 42.0
    assert body["humidity"] == 60.0
    assert body["gasLevel"] is None
    assert body["lightLevel"] is None
    assert body["actuatorState"] == "ON"
    assert body["timestamp"].startswith("2024-06-15T09:30:00")


def test_default_app_accepts_reading_without_gas_or_light(monkeypatch) -> None:
    monkeypatch.setenv("TIMESERIES_PERSISTENCE_PATH", "")
    monkeypatch.delenv("FARM_REQUIRED_FIELDS", raising=False)
    get_settings.cache_clear()
    try:
        with TestClient(create_app()) as client:
            response = client.post(
                "/ingest",
                json={"zone": "zone1", "soil": 42, "temperature": 25.5, "humidity": 60, "motor": "ON"},
            )
            snapshot = client.get("/snapshot/zone1").json()
    finally:
        get_settings.cache_clear()

    assert response.status_code == 200
    assert snapshot["soilMoisture"] == 42.0
    assert snapshot["gasLevel"] is None


def test_ingest_rejects_numbers_too_large_for_a_float(api_client) -> None:
    client, _ = api_client

    response = client.post(
        "/ingest",
        content=b'{"zone": "zone1", "soil": ' + b"9" * 400 + b', "temperature": 25.5, "humidity": 60}',
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["kind"] == "InvalidPayload"
    assert "soil_moisture" in response.json()["message"]


def test_ingest_multi_zone_reports_rejected_zones(api_client) -> None:
    client, _ = api_client
    broken = _zone_payload()
    del broken["humidity"]

    response = client.post(
        "/ingest",
        json={"zone1": _zone_payload(), "zone2": broken, "last_updated": "2024-06-15T09:30:00Z"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["accepted"] == ["zone1"]
    assert "missing humidity" in body["rejected"]["zone2"]
    assert client.get("/snapshot/zone2").json() is None


def test_ingest_rejects_invalid_reading(api_client) -> None:
    client, _ = api_client
    payload = _zone_payload()
    del payload["humidity"]

    response = client.post("/ingest", json={"zone": "zone1", **payload})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid payload"
    assert body["kind"] == "InvalidPayload"
    assert "missing humidity" in body["message"]
    assert client.get("/snapshot/zone1").json() is None


@pytest.mark.parametrize("content", [b"not json", b"[1, 2, 3]", b"{}"])
def test_ingest_rejects_malformed_bodies(api_client, content: bytes) -> None:
    client, _ = api_client

    response = client.post("/ingest", content=content, headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid payload"


def test_snapshot_lists_every_zone(api_client) -> None:
    client, _ = api_client

    assert client.get("/snapshot").json() == {"zone1": None, "zone2": None, "zone3": None}

    client.post("/ingest", json={"zone3": _zone_payload(temperature=30.0)})
    body = client.get("/snapshot").json()
    assert list(body) == ["zone1", "zone2", "zone3"]
    assert body["zone3"]["temperature"] == 30.0
    assert body["zone3"]["actuatorState"] == "ON"
    assert body["zone1"] is None


def test_snapshot_for_unknown_zone_is_not_found(api_client) -> None:
    client, _ = api_client

    response = client.get("/snapshot/zone9")

    assert response.status_code == 404
    assert response.json()["kind"] == "NotFound"
    assert response.json()["error"] == "Zone not found"


def test_daily_summary_for_zone(api_client) -> None:
    client, coordinator = api_client
    _ingest_zone2_day(client, coordinator)

    response = client.get("/sensor/daily/zone2", params={"date": "2024-06-15"})

    assert response.status_code == 200
    body = response.json()
    assert body["zone"] == "zone2"
    assert body["date"] == "2024-06-15"
    assert [entry["temperature"] for entry in body["data"]] == [20.0, 22.0, 24.0]
    summary = body["summary"]
    assert summary["avgTemp"] == 22.0
    assert summary["maxTemp"] == 24.0
    assert summary["minTemp"] == 20.0
    assert summary["avgHum"] == 50.0
    assert summary["totalReadings"] == 3


def test_daily_defaults_to_today_and_reports_missing_summary(api_client) -> None:
    client, _ = api_client

    body = client.get("/sensor/daily/zone1").json()

    assert body["date"] == "2024-06-15"
    assert body["data"] == []
    assert body["summary"] is None


def test_daily_for_all_zones(api_client) -> None:
    client, coordinator = api_client
    _ingest_zone2_day(client, coordinator)

    body = client.get("/sensor/daily", params={"date": "2024-06-15"}).json()

    assert body["date"] == "2024-06-15"
    assert list(body["zones"]) == list(ZONES)
    assert body["zones"]["zone2"]["summary"]["totalReadings"] == 3
    assert body["zones"]["zone1"]["summary"] is None


def test_monthly_rollup_for_zone(api_client) -> None:
    client, coordinator = api_client
    _ingest_zone2_day(client, coordinator)

    response = client.get("/sensor/monthly/zone2", params={"year": "2024", "month": "6"})

    assert response.status_code == 200
    body = response.json()
    assert (body["zone"], body["year"], body["month"]) == ("zone2", 2024, 6)
    assert len(body["data"]) == 1
    day = body["data"][0]
    assert day["date"] == "2024-06-15"
    assert day["avgTemp"] == 22.0
    assert day["readings"] == 3
    summary = body["summary"]
    assert summary["totalDays"] == 1
    assert summary["overallAvgTemp"] == 22.0
    assert summary["maxTemp"] == 24.0
    assert summary["minTemp"] == 20.0
    assert summary["totalReadings"] == 3


def test_monthly_for_all_zones_defaults_to_current_month(api_client) -> None:
    client, coordinator = api_client
    _ingest_zone2_day(client, coordinator)

    body = client.get("/sensor/monthly").json()

    assert (body["year"], body["month"]) == (2024, 6)
    assert body["zones"]["zone2"]["summary"]["totalDays"] == 1
    assert body["zones"]["zone3"]["data"] == []
    assert body["zones"]["zone3"]["summary"] is None


@pytest.mark.parametrize(
    ("path", "params", "kind"),
    [
        ("/sensor/daily/zone9", {}, "InvalidZone"),
        ("/sensor/daily/zone1", {"date": "15-06-2024"}, "InvalidDate"),
        ("/sensor/daily", {"date": "2024-02-30"}, "InvalidDate"),
        ("/sensor/monthly/zone9", {}, "InvalidZone"),
        ("/sensor/monthly/zone1", {"year": "1999", "month": "1"}, "InvalidYear"),
        ("/sensor/monthly", {"year": "abc"}, "InvalidYear"),
        ("/sensor/monthly/zone1", {"year": "2024", "month": "13"}, "InvalidMonth"),
    ],
)
def test_query_validation_errors(api_client, path: str, params: dict, kind: str) -> None:
    client, _ = api_client

    response = client.get(path, params=params)

    assert response.status_code == 400
    assert response.json()["kind"] == kind


def test_storage_unavailable_hides_details_by_default(api_client) -> None:
    client, coordinator = api_client
    lock = coordinator.timeseries._lock
    lock.acquire()
    try:
        response = client.get("/sensor/daily/zone1", params={"date": "2024-06-15"})
        health = client.get("/health")
    finally:
        lock.release()

    assert response.status_code == 503
    body = response.json()
    assert body["kind"] == "StorageUnavailable"
    assert body["message"] == "Historical data is temporarily unavailable. Please try again shortly."
    assert health.status_code == 503
    assert health.json()["status"] == "degraded"
    assert health.json()["storage"] == "unavailable"


def test_storage_unavailable_exposes_details_in_debug_mode(coordinator) -> None:
    aggregator = Aggregator(coordinator.timeseries, clock=lambda: FIXED_NOW)
    app = create_app(
        coordinator=coordinator, aggregator=aggregator, settings=replace(SETTINGS, debug=True)
    )
    with TestClient(app) as client:
        lock = coordinator.timeseries._lock
        lock.acquire()
        try:
            response = client.get("/sensor/monthly", params={"year": "2024", "month": "6"})
        finally:
            lock.release()

    assert response.status_code == 503
    assert "Timed out" in response.json()["message"]


def test_ingest_keeps_snapshot_while_storage_is_unavailable(api_client) -> None:
    client, coordinator = api_client
    lock = coordinator.timeseries._lock
    lock.acquire()
    try:
        response = client.post("/ingest", json={"zone": "zone1", **_zone_payload()})
        assert coordinator.wait_for_pending(timeout=5.0)
    finally:
        lock.release()

    assert response.status_code == 200
    assert client.get("/snapshot/zone1").json()["temperature"] == 23.5
    assert len(coordinator.timeseries) == 0


def test_health_and_root(api_client) -> None:
    client, _ = api_client

    health = client.get("/health")
    assert health.status_code == 200
    assert health.json() == {"status": "ok", "storage": "ok", "pendingWrites": 0}

    root = client.get("/")
    assert root.status_code == 200
    assert root.json()["status"] == "ok"


def test_lifespan_shuts_down_coordinator(coordinator) -> None:
    app = create_app(coordinator=coordinator, settings=SETTINGS)

    with TestClient(app) as client:
        assert coordinator.executor._shutdown is False
        assert client.get("/sensor/daily/zone1").status_code == 200

    assert coordinator.executor._shutdown is True
