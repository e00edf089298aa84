"""
HTTP API 및 관찰 가능성 엔드포인트 테스트

이 모듈은 헬스/레디니스/메트릭 엔드포인트와 도메인 API의
상태 코드, 응답 형식, 리포트 내보내기, SSE 프레임을 테스트합니다.
"""

import asyncio
import pytest
from fastapi.testclient import TestClient

from pitguard.api.routes import sse_frames
from pitguard.main import build_settings, build_sink
from pitguard.adapters.notify import LogNotifier, SmsGatewayNotifier
from pitguard.observability.health import create_app
from pitguard.orchestrators.site_monitor import SiteMonitor
from pitguard.stream.broadcast import BroadcastChannel
from pitguard.stream.events import SensorEvent, ZonesEvent, decode
from conftest import T0, make_reading


@pytest.fixture
def monitor(sample_settings, mock_sink, clock):
    m = SiteMonitor(sample_settings, sink=mock_sink, clock=clock)
    m.seed()
    return m


@pytest.fixture
def client(sample_settings, monitor):
    return TestClient(create_app(sample_settings, monitor))


class TestHealthEndpoints:
    """헬스 체크 엔드포인트 테스트"""

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["service"] == "test-service"

    def test_ready_with_zones(self, client):
        data = client.get("/ready").json()
        assert data["status"] == "ready"
        assert data["zones"] == 3
        assert data["subscribers"] == 0
        assert data["update_loop"] is False

    def test_not_ready_without_zones(self, sample_settings):
        client = TestClient(create_app(sample_settings, SiteMonitor(sample_settings)))
        response = client.get("/ready")
        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"

    def test_metrics_endpoint(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "update_ticks_total" in response.text
        assert "uptime_seconds" in response.text

    def test_metrics_disabled(self, sample_settings, monitor):
        sample_settings.observability.metrics_enabled = False
        client = TestClient(create_app(sample_settings, monitor))
        assert client.get("/metrics").status_code == 503

    def test_info_endpoint(self, client):
        data = client.get("/info").json()
        assert data["service"] == "test-service"
        assert data["version"] == "1.0.0"
        assert data["simulation"] is False
        assert data["site"] == "Pit 1"

    def test_root_lists_endpoints(self, client):
        assert client.get("/").json()["endpoints"]["stream"] == "/api/stream"


class TestQueryEndpoints:
    """조회 API 테스트"""

    def test_predict_wire_format(self, client):
        data = client.get("/api/predict").json()
        assert data["timestamp"] == T0
        assert data["flags"] == {"barricade": False}
        assert data["evacuationRoutes"] == []
        assert {z["risk"] for z in data["zones"]} == {"medium"}
        assert "recommendedActions" in data["zones"][0]

    def test_summary(self, client):
        data = client.get("/api/predict/summary").json()
        assert data["status"] == "Safe"
        assert len(data["unstable_zones"]) == 3

    def test_risk_assessment_sorted(self, client):
        items = client.get("/api/risk-assessment").json()
        scores = [i["risk_score"] for i in items]
        assert scores == sorted(scores, reverse=True)
        assert set(items[0]) == {"zone_id", "risk_score", "workers_at_risk", "recommended_action"}

    def test_evacuation_alerts(self, client):
        items = client.get("/api/evacuation-alerts").json()
        assert {i["worker_id"] for i in items} == {"w1", "w2", "w3"}
        assert all(i["urgency"] == "Low" for i in items)

    def test_occupancy(self, client):
        items = client.get("/api/occupancy").json()
        assert [i["zoneId"] for i in items] == ["z1", "z2", "z3"]

    def test_sensors_and_stats(self, client):
        assert len(client.get("/api/sensors").json()["sensors"]) == 9
        stats = client.get("/api/sensors/stats").json()
        assert stats["total"] == 9
        assert stats["by_status"]["Active"] == 9

    def test_bootstrap(self, client):
        data = client.get("/api/bootstrap").json()
        assert set(data) == {"zones", "prediction", "alerts", "sensorStats", "sensors", "thresholds"}
        assert data["thresholds"] == {"high": 0.7, "medium": 0.4}


class TestIngestEndpoints:
    """수집 API 테스트"""

    def test_ingest_ok(self, client, monitor):
        response = client.post("/api/ingest/drone", json={"zoneId": "z1", "crackIndex": 0.6})
        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert monitor.world.crack_index["z1"] == 0.6

    def test_ingest_validation_error(self, client, monitor):
        response = client.post("/api/ingest/geotech", json={"reading": {"zoneId": "z1"}})
        assert response.status_code == 400
        assert monitor.world.latest_sensors == {}

    def test_ingest_unknown_kind(self, client):
        assert client.post("/api/ingest/lidar", json={}).status_code == 404


class TestCommandEndpoints:
    """운영 명령 API 테스트"""

    def test_thresholds_roundtrip(self, client):
        response = client.put("/api/thresholds", json={"high": 0.95, "medium": 0.9})
        assert response.status_code == 200
        assert client.get("/api/thresholds").json() == {"high": 0.95, "medium": 0.9}
        assert {z["risk"] for z in client.get("/api/predict").json()["zones"]} == {"low"}

    def test_thresholds_invalid_order(self, client):
        response = client.put("/api/thresholds", json={"high": 0.4, "medium": 0.7})
        assert response.status_code == 400
        assert client.get("/api/thresholds").json() == {"high": 0.7, "medium": 0.4}

    def test_drill(self, client):
        response = client.post("/api/drill", json={"zoneId": "z3"})
        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["alert"]["zoneId"] == "z3"
        assert data["alert"]["level"] == "high"
        alerts = client.get("/api/alerts", params={"limit": 1}).json()["alerts"]
        assert alerts[0]["id"] == data["alert"]["id"]

    def test_drill_unknown_zone(self, client):
        assert client.post("/api/drill", json={"zoneId": "nope"}).status_code == 404

    def test_drill_missing_zone(self, client):
        assert client.post("/api/drill", json={}).status_code == 400

    def test_drill_unreachable_threshold(self, client):
        client.put("/api/thresholds", json={"high": 0.99999, "medium": 0.9})
        assert client.post("/api/drill", json={"zoneId": "z3"}).status_code == 400

    def test_create_site(self, client):
        response = client.post("/api/sites", json={"name": "Bench 2", "lat": -24.5, "lng": 135.2})
        assert response.status_code == 201
        assert response.json()["probability"] == 0.05
        assert len(client.get("/api/predict").json()["zones"]) == 4

    def test_send_alert(self, client, mock_sink):
        alert = {"id": "m1", "zoneId": "z1", "level": "low", "message": "Briefing at 10:00", "timestamp": T0}
        response = client.post("/api/alerts", json={"alert": alert})
        assert response.status_code == 200
        assert client.get("/api/alerts").json()["alerts"][0]["id"] == "m1"

    def test_sensor_fault_and_maintenance(self, client):
        response = client.post("/api/sensors/z1-geophone/fault")
        assert response.status_code == 200
        assert response.json()["status"] == "Faulty"
        response = client.post("/api/sensors/z1-geophone/maintenance", json={"enabled": True})
        assert response.json()["status"] == "Maintenance"
        assert client.post("/api/sensors/nope/fault").status_code == 404


class TestReportExports:
    """리포트 내보내기 테스트"""

    def test_events_csv(self, client):
        client.post("/api/drill", json={"zoneId": "z1"})
        response = client.get("/api/events.csv", params={"zone": "z1"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.strip().split("\n")
        assert lines[0] == "event_id,timestamp,zone_id,workers_alerted,status,severity,supervisor_action"
        assert lines[1].startswith(f"Ez1-drill-{T0},2025-06-01T00:00:00.000Z,z1,")
        assert ",Ongoing,high," in lines[1]

    def test_events_json_filters(self, client):
        client.post("/api/drill", json={"zoneId": "z1"})
        assert len(client.get("/api/events").json()["events"]) == 1
        assert client.get("/api/events", params={"zone": "z2"}).json()["events"] == []
        assert client.get("/api/events", params={"from": "2030-01-01T00:00:00.000Z"}).json()["events"] == []

    def test_sensors_csv(self, client):
        lines = client.get("/api/sensors.csv").text.strip().split("\n")
        assert lines[0] == "sensor_id,type,zone_id,status,last_heartbeat,uptime_pct"
        assert len(lines) == 10
        assert lines[1].endswith(",Active,2025-06-01T00:00:00.000Z,0.0000")


class TestSseFrames:
    """SSE 프레임 테스트"""

    async def test_frames_and_heartbeat(self):
        channel = BroadcastChannel(lambda: ZonesEvent(payload=[]))
        frames = sse_frames(channel.subscribe, keepalive_sec=0.01)

        assert await frames.__anext__() == ": connected\n\n"
        assert channel.subscriber_count == 1
        first = await frames.__anext__()
        assert first.startswith("data: ") and first.endswith("\n\n")
        assert isinstance(decode(first[6:].strip()), ZonesEvent)
        assert await frames.__anext__() == ": heartbeat\n\n"

        channel.publish(SensorEvent(payload=make_reading("z1")))
        assert '"type":"sensor"' in await frames.__anext__()

        await frames.aclose()
        assert channel.subscriber_count == 0

    async def test_dropped_subscriber_ends_stream(self):
        channel = BroadcastChannel(lambda: ZonesEvent(payload=[]), queue_maxsize=2)
        frames = sse_frames(channel.subscribe, keepalive_sec=1.0)
        assert await frames.__anext__() == ": connected\n\n"
        for i in range(3):
            channel.publish(SensorEvent(payload=make_reading("z1", ts=T0 + i)))
        assert [f async for f in frames] == []
        assert channel.subscriber_count == 0

    async def test_unstarted_stream_holds_no_subscription(self):
        """첫 프레임 전에 연결이 끊기면 구독이 남지 않음"""
        channel = BroadcastChannel(lambda: ZonesEvent(payload=[]))
        frames = sse_frames(channel.subscribe, keepalive_sec=1.0)
        assert channel.subscriber_count == 0
        await frames.aclose()
        assert channel.subscriber_count == 0


class TestSettingsFromEnv:
    """환경 변수 설정 테스트"""

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("RISK_THRESHOLD_HIGH", "0.8")
        monkeypatch.setenv("SIMULATION_ENABLED", "false")
        monkeypatch.setenv("SIMULATION_SEED", "11")
        monkeypatch.setenv("SAFE_EXITS_FILE", "/tmp/exits.csv")
        s = build_settings()
        assert s.engine.risk_high == 0.8
        assert s.simulation.enabled is False
        assert s.simulation.seed == 11
        assert s.site.exits_path == "/tmp/exits.csv"

    def test_sink_selection(self, monkeypatch):
        monkeypatch.delenv("SMS_GATEWAY_URL", raising=False)
        monkeypatch.delenv("NOTIFY_ENABLED", raising=False)
        assert isinstance(build_sink(build_settings()), LogNotifier)
        monkeypatch.setenv("SMS_GATEWAY_URL", "https://sms.example.test/send")
        assert isinstance(build_sink(build_settings()), SmsGatewayNotifier)

