"""
규정 준수 로그 테스트
"""

import pytest

from pitguard.core.compliance import ComplianceLog
from pitguard.core.models import AlertItem, LatLng, WorkerTag
from conftest import T0


def alert(zone_id: str, ts: int = T0, level: str = "high") -> AlertItem:
    return AlertItem(id=f"{zone_id}-{ts}", zone_id=zone_id, level=level, message="m", timestamp=ts)


def worker(wid: str, zone_id):
    return WorkerTag(id=wid, location=LatLng(lat=0, lng=0), zone_id=zone_id)


@pytest.fixture
def ledger(clock):
    return ComplianceLog(clock=clock)


class TestLogAlert:
    """경보 기록 테스트"""

    def test_records_workers_in_zone(self, ledger):
        """경보 구역에 있던 작업자만 기록"""
        workers = [worker("w1", "z1"), worker("w2", "z2"), worker("w3", "z1"), worker("w4", None)]
        e = ledger.log_alert(alert("z1"), workers)
        assert e.event_id == f"Ez1-{T0}"
        assert e.workers_alerted == ["w1", "w3"]
        assert e.alert_delivery_time == {"w1": e.timestamp, "w3": e.timestamp}
        assert e.timestamp == "2025-06-01T00:00:00.000Z"
        assert e.status == "Ongoing"
        assert e.severity == "high"

    def test_newest_first(self, ledger):
        """최신 레코드가 앞에 위치"""
        ledger.log_alert(alert("z1", T0), [])
        ledger.log_alert(alert("z2", T0 + 1000), [])
        assert [e.zone_id for e in ledger.query()] == ["z2", "z1"]

    def test_records_are_immutable(self, ledger):
        """레코드는 변경 불가"""
        e = ledger.log_alert(alert("z1"), [])
        with pytest.raises(Exception):
            e.status = "Resolved"


class TestResolve:
    """해제 테스트"""

    def test_resolve_appends_shadow_record(self, ledger, clock):
        """해제 시 원본은 유지하고 Resolved 레코드를 추가"""
        original = ledger.log_alert(alert("z1"), [worker("w1", "z1")])
        clock.advance(60_000)
        resolved = ledger.resolve_zone("z1")

        assert resolved.event_id == original.event_id + "R"
        assert resolved.status == "Resolved"
        assert resolved.workers_alerted == ["w1"]
        assert resolved.timestamp == "2025-06-01T00:01:00.000Z"
        assert len(ledger) == 2
        assert ledger.query()[1] == original

    def test_resolve_without_ongoing_is_noop(self, ledger):
        """진행 중 이벤트가 없으면 아무것도 하지 않음"""
        assert ledger.resolve_zone("z1") is None
        assert len(ledger) == 0

    def test_resolve_is_idempotent(self, ledger):
        """이미 해제된 구역은 다시 해제되지 않음"""
        ledger.log_alert(alert("z1"), [])
        ledger.resolve_zone("z1")
        assert ledger.current("z1") is None
        assert ledger.resolve_zone("z1") is None
        assert len(ledger) == 2

    def test_current_returns_latest_ongoing(self, ledger):
        """새 경보 후에는 다시 Ongoing"""
        ledger.log_alert(alert("z1", T0), [])
        ledger.resolve_zone("z1")
        again = ledger.log_alert(alert("z1", T0 + 5000), [])
        assert ledger.current("z1") == again

    def test_length_never_decreases(self, ledger):
        """레코드 수는 줄어들지 않음"""
        sizes = []
        for i in range(5):
            ledger.log_alert(alert("z1", T0 + i), [])
            sizes.append(len(ledger))
            ledger.resolve_zone("z1")
            sizes.append(len(ledger))
            ledger.resolve_zone("z2")
            sizes.append(len(ledger))
        assert sizes == sorted(sizes)
        assert sizes[-1] == 10


class TestQuery:
    """조회 필터 테스트"""

    @pytest.fixture
    def populated(self, ledger, clock):
        ledger.log_alert(alert("z1", T0, "high"), [worker("w1", "z1")])
        ledger.log_alert(alert("z2", T0 + 60_000, "medium"), [worker("w2", "z2")])
        clock.advance(120_000)
        ledger.resolve_zone("z1")
        return ledger

    def test_filter_zone(self, populated):
        assert {e.zone_id for e in populated.query(zone="z1")} == {"z1"}
        assert len(populated.query(zone="z1")) == 2

    def test_filter_worker(self, populated):
        assert [e.zone_id for e in populated.query(worker="w2")] == ["z2"]

    def test_filter_status_and_severity(self, populated):
        """조건은 AND 로 결합"""
        assert [e.event_id for e in populated.query(status="Resolved")] == [f"Ez1-{T0}R"]
        assert populated.query(status="Resolved", severity="medium") == []
        assert len(populated.query(severity="high")) == 2

    def test_filter_time_range(self, populated):
        """ISO 시각 범위 (양 끝 포함)"""
        got = populated.query(from_iso="2025-06-01T00:01:00.000Z", to_iso="2025-06-01T00:01:00.000Z")
        assert [e.zone_id for e in got] == ["z2"]
        assert len(populated.query(from_iso="2025-06-01T00:00:30.000Z")) == 2

    def test_no_filters_returns_copy(self, populated):
        """결과 목록 수정이 원장에 영향 없음"""
        got = populated.query()
        got.clear()
        assert len(populated) == 3
