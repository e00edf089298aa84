"""
텔레메트리 수집 라우터 테스트
"""

import pytest

from pitguard.orchestrators.site_monitor import SiteMonitor
from pitguard.orchestrators.telemetry_pump import TelemetryPump


@pytest.fixture
def pump(sample_settings, mock_sink, clock):
    m = SiteMonitor(sample_settings, sink=mock_sink, clock=clock)
    m.seed()
    return TelemetryPump(m)


class TestTelemetryPump:
    """텔레메트리 라우팅 테스트"""

    def test_routes_by_kind(self, pump):
        assert pump.handle("drone", {"zoneId": "z3", "crackIndex": 0.4})
        assert pump.monitor.world.crack_index["z3"] == 0.4
        assert pump.accepted == 1

    def test_unknown_kind(self, pump):
        assert pump.handle("lidar", {}) is False
        assert pump.rejected == 1

    def test_invalid_payload_skipped(self, pump):
        assert pump.handle("environment", {"zoneId": "z1"}) is False
        assert pump.rejected == 1
        assert pump.monitor.world.latest_sensors == {}

    async def test_run_continues_after_rejection(self, pump):
        async def source():
            yield "worker", {"id": "w1"}
            yield "worker", {"id": "w1", "location": {"lat": -24.614, "lng": 135.125}}
            yield "drone", {"zoneId": "z1", "crackIndex": 0.2}

        await pump.run(source())
        assert (pump.accepted, pump.rejected) == (2, 1)
        assert pump.monitor.world.workers["w1"].zone_id == "z2"
