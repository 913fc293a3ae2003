"""End-to-end tests for the HTTP and WebSocket surface."""

import time
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from blueguard.config import Settings
from blueguard.main import create_app
from blueguard.registry import default_devices


def wave_reading(height, device_id="wave_001"):
    return {
        "device_id": device_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": {"kind": "wave", "height": height, "period": 9.0, "direction": 180.0, "energy": 40.0},
        "quality": "good",
        "battery_level": 95.0,
        "signal_strength": 88.0,
    }


@pytest.fixture
def client():
    app = create_app(Settings(AUTO_STREAM_ENABLED=False, DATABASE_URL="sqlite://"), devices=default_devices())
    with TestClient(app) as test_client:
        yield test_client


def new_device(device_id="buoy_007", **overrides):
    device = {
        "id": device_id,
        "type": "tide",
        "location": {"lat": 25.76, "lon": -80.19, "name": "Biscayne Bay"},
        "sampling_interval": 20,
        "is_active": False,
        "last_service": "2024-05-01T00:00:00Z",
    }
    device.update(overrides)
    return device


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["auto_stream"] is False
    assert body["scheduled_devices"] == 0


class TestDevices:
    def test_list_devices(self, client):
        statuses = client.get("/devices").json()

        assert [s["id"] for s in statuses] == ["wave_001", "tide_001", "weather_001", "seismic_001", "water_001"]
        assert [s["id"] for s in statuses if not s["is_online"]] == ["tide_001"]

    def test_register_then_duplicate(self, client):
        assert client.post("/devices", json=new_device()).status_code == 201
        assert client.get("/devices/buoy_007").json()["type"] == "tide"

        response = client.post("/devices", json=new_device())
        assert response.status_code == 409

    def test_register_rejects_zero_interval(self, client):
        assert client.post("/devices", json=new_device(sampling_interval=0)).status_code == 422

    def test_unknown_device(self, client):
        assert client.get("/devices/nope").status_code == 404
        assert client.patch("/devices/nope", json={"is_active": True}).status_code == 404

    def test_reconfigure(self, client):
        response = client.patch("/devices/wave_001", json={"sampling_interval": 12.5})

        assert response.status_code == 200
        assert response.json()["sampling_interval"] == 12.5

    def test_invalid_interval_keeps_config(self, client):
        response = client.patch("/devices/wave_001", json={"sampling_interval": -1})

        assert response.status_code == 422
        assert client.get("/devices/wave_001").json()["sampling_interval"] == 30

    def test_identity_cannot_be_patched(self, client):
        assert client.patch("/devices/wave_001", json={"id": "other"}).status_code == 422

    def test_service_record(self, client):
        response = client.post("/devices/tide_001/service", json={"serviced_at": "2024-06-01T00:00:00Z"})

        assert response.status_code == 200
        assert response.json()["last_service"].startswith("2024-06-01")

    def test_history(self, client):
        readings = client.get("/devices/wave_001/history", params={"hours": 6}).json()

        assert len(readings) == 100
        assert {r["data"]["kind"] for r in readings} == {"wave"}
        assert client.get("/devices/wave_001/history", params={"hours": 500}).status_code == 422

    def test_network(self, client):
        topology = client.get("/network").json()

        assert topology["total_devices"] == 5
        assert topology["online_devices"] == 4
        assert topology["network_health"] == 80.0


class TestReadings:
    def test_reading_with_alerts_is_stored(self, client):
        response = client.post("/readings", json=wave_reading(6.5))

        assert response.status_code == 200
        envelope = response.json()
        assert sorted(a["rule"]["severity"] for a in envelope["alerts"]) == ["critical", "high"]

        stored = []
        for _ in range(50):
            stored = client.get("/alerts").json()
            if len(stored) == 2:
                break
            time.sleep(0.05)
        assert sorted(a["severity"] for a in stored) == ["critical", "high"]

    def test_quiet_reading(self, client):
        assert client.post("/readings", json=wave_reading(1.0)).json()["alerts"] == []

    def test_unknown_device_reading(self, client):
        assert client.post("/readings", json=wave_reading(1.0, device_id="ghost")).status_code == 404

    def test_reading_type_must_match_device(self, client):
        reading = wave_reading(1.0)
        reading["data"] = {"kind": "tide", "level": 10.0, "flow": 0.0, "temperature": 20.0}

        response = client.post("/readings", json=reading)

        assert response.status_code == 422
        assert "wave" in response.json()["detail"]
        assert client.get("/devices").json()[0]["last_reading"] is None

    def test_out_of_order_reading_conflicts(self, client):
        latest = wave_reading(1.0)
        older = dict(latest, timestamp="2000-01-01T00:00:00Z")

        assert client.post("/readings", json=latest).status_code == 200
        assert client.post("/readings", json=older).status_code == 409
        assert client.post("/readings", json=latest).status_code == 409

    def test_unknown_variant_rejected(self, client):
        reading = wave_reading(1.0)
        reading["data"]["kind"] = "sonar"
        assert client.post("/readings", json=reading).status_code == 422

    def test_rules(self, client):
        rules = client.get("/alerts/rules").json()
        assert len(rules) == 7


class TestAnalytics:
    def test_zones(self, client):
        assert [z["id"] for z in client.get("/zones").json()] == ["zone_001", "zone_002"]

    def test_clusters_feed_proximity_incidents(self, client):
        points = [
            {"lat": 25.7617, "lon": -80.1918, "timestamp": "2024-06-01T10:00:00Z"},
            {"lat": 25.7620, "lon": -80.1915, "timestamp": "2024-06-01T10:05:00Z"},
        ]
        clusters = client.post("/analytics/clusters", json={"points": points, "k": 1}).json()

        assert len(clusters) == 1
        assert clusters[0]["point_count"] == 2

        report = client.get("/analytics/proximity", params={"lat": 25.7617, "lon": -80.1918}).json()
        assert report["risk_score"] == 60
        assert len(report["recent_incidents"]) == 2

    def test_cluster_k_must_be_positive(self, client):
        assert client.post("/analytics/clusters", json={"points": [], "k": 0}).status_code == 422

    def test_empty_cluster_request(self, client):
        assert client.post("/analytics/clusters", json={"points": []}).json() == []

    def test_proximity_radius_must_be_positive(self, client):
        response = client.get("/analytics/proximity", params={"lat": 25.0, "lon": -80.0, "radius_km": 0})
        assert response.status_code == 422

    def test_evacuation(self, client):
        report = client.get("/analytics/evacuation", params={"lat": 25.7617, "lon": -80.1918}).json()

        assert report["nearest_route"]["name"] == "Route A1A North"
        assert report["congestion"] in ("medium", "high")

    def test_heatmap_bounds_validated(self, client):
        body = {"north_east": {"lat": 25.0, "lon": -81.0}, "south_west": {"lat": 26.0, "lon": -80.0}}
        assert client.post("/analytics/heatmap", json=body).status_code == 422

    def test_heatmap(self, client):
        body = {
            "north_east": {"lat": 25.77, "lon": -80.18},
            "south_west": {"lat": 25.75, "lon": -80.20},
            "data_type": "user_activity",
        }
        points = client.post("/analytics/heatmap", json=body).json()

        assert points
        assert {p["type"] for p in points} == {"user_activity"}


class TestSensorSocket:
    def test_manual_reading_is_broadcast_then_acknowledged(self, client):
        with client.websocket_connect("/ws/sensors") as ws:
            ws.send_json({"type": "manual_reading", "reading": wave_reading(4.5)})

            broadcast = ws.receive_json()
            assert broadcast["kind"] == "reading"
            assert broadcast["payload"]["reading"]["device_id"] == "wave_001"
            assert len(broadcast["payload"]["alerts"]) == 1

            assert ws.receive_json() == {"kind": "ack", "type": "manual_reading", "alerts": 1}

    def test_config_update(self, client):
        with client.websocket_connect("/ws/sensors") as ws:
            ws.send_json({"type": "sensor_config_update", "sensorId": "tide_001", "config": {"is_active": True}})
            reply = ws.receive_json()

        assert reply["kind"] == "ack"
        assert reply["config"]["is_active"] is True

    def test_errors_are_reported_to_the_client(self, client):
        with client.websocket_connect("/ws/sensors") as ws:
            ws.send_json({"type": "sensor_config_update", "sensorId": "ghost", "config": {}})
            unknown_device = ws.receive_json()
            ws.send_json({"type": "reboot"})
            unknown_type = ws.receive_json()

        assert unknown_device["kind"] == "error"
        assert "ghost" in unknown_device["detail"]
        assert unknown_type == {"kind": "error", "type": "reboot", "detail": "Unknown message type: reboot"}

    def test_stale_manual_reading_is_refused(self, client):
        reading = wave_reading(1.0)
        with client.websocket_connect("/ws/sensors") as ws:
            ws.send_json({"type": "manual_reading", "reading": reading})
            assert ws.receive_json()["kind"] == "reading"
            assert ws.receive_json()["kind"] == "ack"

            ws.send_json({"type": "manual_reading", "reading": reading})
            reply = ws.receive_json()

        assert reply["kind"] == "error"
        assert "not newer" in reply["detail"]
