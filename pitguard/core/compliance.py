"""
Compliance log for PitGuard.

Append-only ledger of alert-triggered events. Resolving a zone appends
a ``Resolved`` shadow record derived from the most recent ``Ongoing``
record; existing records are never modified or removed.
"""

import threading
from typing import Callable, Iterable, List, Optional

from pitguard.common.clock import iso_from_ms, now_ms
from pitguard.core.models import AlertItem, ComplianceEvent, WorkerTag
from pitguard.observability import metrics
from pitguard.observability.logging_setup import get_logger

log = get_logger("pitguard.compliance")

# 해제 레코드 ID 접미사
RESOLVED_SUFFIX = "R"

class ComplianceLog:
    """규정 준수 이벤트 원장 (최신 순, 추가 전용)"""

    def __init__(self, clock: Callable[[], int] = now_ms):
        self._events: List[ComplianceEvent] = []
        self._lock = threading.RLock()
        self._clock = clock

    def __len__(self) -> int:
        return len(self._events)

    def log_alert(self, alert: AlertItem, workers: Iterable[WorkerTag]) -> ComplianceEvent:
        """
        경보 시점에 해당 구역에 있던 작업자를 기록합니다.

        Args:
            alert: 발송된 경보
            workers: 전체 작업자 (구역 해석 완료 상태)

        Returns:
            추가된 Ongoing 레코드
        """
        in_zone = [w.id for w in workers if w.zone_id == alert.zone_id]
        ts = iso_from_ms(alert.timestamp)
        event = ComplianceEvent(
            event_id=f"E{alert.id}",
            timestamp=ts,
            zone_id=alert.zone_id,
            workers_alerted=in_zone,
            alert_delivery_time={wid: ts for wid in in_zone},
            status="Ongoing",
            severity=alert.level,
        )
        with self._lock:
            self._events.insert(0, event)
        metrics.compliance_records.labels(status="Ongoing").inc()
        log.info(f"준수 이벤트 기록 event_id:{event.event_id} zone:{alert.zone_id} workers:{len(in_zone)}")
        return event

    def current(self, zone_id: str) -> Optional[ComplianceEvent]:
        """구역의 가장 최근 Ongoing 레코드 (해제 레코드가 뒤따르면 None)"""
        with self._lock:
            for e in self._events:
                if e.zone_id != zone_id:
                    continue
                if e.status == "Resolved":
                    return None
                return e
        return None

    def resolve_zone(self, zone_id: str) -> Optional[ComplianceEvent]:
        """
        구역의 진행 중 이벤트를 해제합니다.

        원본 레코드는 그대로 두고 Resolved 레코드를 새로 추가합니다.
        진행 중 이벤트가 없으면 아무것도 하지 않습니다.
        """
        with self._lock:
            last = self.current(zone_id)
            if last is None:
                return None
            resolved = last.model_copy(update={
                "status": "Resolved",
                "event_id": last.event_id + RESOLVED_SUFFIX,
                "timestamp": iso_from_ms(self._clock()),
            })
            self._events.insert(0, resolved)
        metrics.compliance_records.labels(status="Resolved").inc()
        log.info(f"준수 이벤트 해제 event_id:{resolved.event_id} zone:{zone_id}")
        return resolved

    def query(self,
              *,
              zone: Optional[str] = None,
              worker: Optional[str] = None,
              status: Optional[str] = None,
              severity: Optional[str] = None,
              from_iso: Optional[str] = None,
              to_iso: Optional[str] = None) -> List[ComplianceEvent]:
        """모든 조건을 AND 로 적용한 필터 결과 (최신 순)"""
        with self._lock:
            out = list(self._events)
        if zone:
            out = [e for e in out if e.zone_id == zone]
        if worker:
            out = [e for e in out if worker in e.workers_alerted]
        if status:
            out = [e for e in out if e.status == status]
        if severity:
            out = [e for e in out if e.severity == severity]
        if from_iso:
            out = [e for e in out if e.timestamp >= from_iso]
        if to_iso:
            out = [e for e in out if e.timestamp <= to_iso]
        return out
