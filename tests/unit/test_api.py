"""Tests for the HTTP surface."""

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from engine.locking import SingleFlightLock
from errors import StoreError
from models.events import ActionKind
from storage.events import EventWriter

from factories import at, make_event


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as c:
        yield c


@pytest.fixture
def app_writer(client, settings):
    return EventWriter(client.app.state.store, settings.events_collection)


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_ready(self, client):
        body = client.get("/ready").json()
        assert body["status"] == "ready"
        assert body["circuit_breaker"] == "closed"


class TestAggregationTrigger:
    def test_run_success(self, client, app_writer):
        app_writer.append(make_event(at(1)))
        resp = client.post("/api/v1/aggregations/run")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["state"] == "done"
        assert body["events_processed"] == 1
        assert body["slots_written"] == ["actions"]

    def test_noop_run(self, client):
        resp = client.post("/api/v1/aggregations/run")
        assert resp.status_code == 200
        assert resp.json()["events_processed"] == 0

    def test_busy(self, client, settings):
        with SingleFlightLock(client.app.state.store, settings.lock_key).hold():
            resp = client.post("/api/v1/aggregations/run")
        assert resp.status_code == 409
        assert resp.json()["error"] == "busy"

    def test_store_failure_is_500_with_code(self, client, monkeypatch):
        def broken(*args, **kwargs):
            raise StoreError("connection reset")

        monkeypatch.setattr(client.app.state.store, "scan_events", broken)
        resp = client.post("/api/v1/aggregations/run")
        assert resp.status_code == 500
        assert resp.json() == {"status": "failed", "error": "store_unavailable", "detail": "connection reset"}


class TestEventQueries:
    @pytest.fixture(autouse=True)
    def seed(self, app_writer):
        app_writer.append(make_event(at(1), ActionKind.SERVED, "Popcorn", "Lounge", "Lib298193"))
        app_writer.append(make_event(at(2), ActionKind.RAN_OUT, "Popcorn", "Lounge", "Lib298193"))
        app_writer.append(make_event(at(3), ActionKind.SERVED, "Kettle Chips", "Lounge", "Lib298192"))
        app_writer.append(make_event(at(4), ActionKind.SERVED, "Fake Broccoli", "Caldo Office", "Lib298191"))

    def test_unfiltered_newest_first(self, client):
        rows = client.get("/api/v1/events").json()
        assert [r["timestamp"] for r in rows][0].startswith("2024-05-14T04:00:00")
        assert len(rows) == 4

    def test_filters_combine(self, client):
        rows = client.get("/api/v1/events", params={"location": "Lounge", "action": "Served"}).json()
        assert {r["device"]["serialNumber"] for r in rows} == {"Lib298192", "Lib298193"}
        assert len(rows) == 2

    def test_time_range_and_order(self, client):
        params = {
            "start_time": "2024-05-14T02:00:00Z",
            "end_time": "2024-05-14T03:00:00Z",
            "order": "ascending",
        }
        rows = client.get("/api/v1/events", params=params).json()
        assert [r["dataAction"] for r in rows] == ["RanOut", "Served"]

    def test_limit(self, client):
        assert len(client.get("/api/v1/events", params={"limit": 2}).json()) == 2

    def test_invalid_action_rejected(self, client):
        assert client.get("/api/v1/events", params={"action": "Exploded"}).status_code == 422

    def test_inverted_range_rejected(self, client):
        params = {"start_time": "2024-05-14T05:00:00Z", "end_time": "2024-05-14T01:00:00Z"}
        assert client.get("/api/v1/events", params=params).status_code == 422

    def test_locations(self, client):
        rows = client.get("/api/v1/locations", params={"location": "Lounge", "serial_number": "Lib298193"}).json()
        assert len(rows) == 2
        assert all(r["location"] == "Lounge" for r in rows)


class TestQueryLimits:
    @pytest.fixture
    def capped_client(self, settings):
        with TestClient(create_app(settings.model_copy(update={"query_max_limit": 3}))) as c:
            writer = EventWriter(c.app.state.store, settings.events_collection)
            for minute in range(5):
                writer.append(make_event(at(1, minute), location="Lounge"))
            yield c

    def test_no_limit_returns_every_row(self, capped_client):
        rows = capped_client.get("/api/v1/events", params={"location": "Lounge"}).json()
        assert len(rows) == 5

    def test_locations_not_truncated(self, capped_client):
        assert len(capped_client.get("/api/v1/locations", params={"location": "Lounge"}).json()) == 5

    def test_limit_over_maximum_is_422(self, capped_client):
        resp = capped_client.get("/api/v1/events", params={"limit": 4})
        assert resp.status_code == 422
        assert resp.json()["error"] == "invalid_query"

class TestRollupEndpoints:
    def test_missing_rollup_404(self, client):
        assert client.get("/api/v1/rollups/hourly").status_code == 404

    def test_enable_then_maintained(self, client, app_writer):
        assert client.post("/api/v1/rollups/categories/enable").json() == {"enabled": True, "counts": {}}
        app_writer.append(make_event(at(1), ingredient="Popcorn"))
        client.post("/api/v1/aggregations/run")
        assert client.get("/api/v1/rollups/categories").json() == {"enabled": True, "counts": {"Popcorn": 1}}

    def test_disable(self, client):
        client.post("/api/v1/rollups/daily/enable")
        assert client.post("/api/v1/rollups/daily/disable").json()["enabled"] is False

    def test_actions_cannot_be_toggled(self, client):
        assert client.post("/api/v1/rollups/actions/disable").status_code == 400

    def test_unknown_slot(self, client):
        assert client.get("/api/v1/rollups/weekly").status_code == 422

    def test_toggle_rejected_while_run_holds_lock(self, client, settings):
        with SingleFlightLock(client.app.state.store, settings.lock_key).hold():
            enable = client.post("/api/v1/rollups/categories/enable")
        assert enable.status_code == 409
        assert enable.json()["error"] == "busy"
        assert client.get("/api/v1/rollups/categories").status_code == 404

    def test_disable_rejected_while_run_holds_lock(self, client, settings):
        client.post("/api/v1/rollups/hourly/enable")
        with SingleFlightLock(client.app.state.store, settings.lock_key).hold():
            assert client.post("/api/v1/rollups/hourly/disable").status_code == 409
        assert client.get("/api/v1/rollups/hourly").json()["enabled"] is True

    def test_actions_rollup_readable_after_run(self, client, app_writer):
        app_writer.append(make_event(at(1), ActionKind.OFFLINE))
        client.post("/api/v1/aggregations/run")
        body = client.get("/api/v1/rollups/actions").json()
        assert body["offline"] == 1
        assert body["served"] == 0


def test_metrics_after_run(client, app_writer):
    app_writer.append(make_event(at(1)))
    client.post("/api/v1/aggregations/run")
    text = client.get("/metrics").text
    assert 'aggregation_runs_total{state="done"} 1' in text
    assert "aggregation_last_events_processed 1" in text
