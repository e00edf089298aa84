"""
CSV exports for PitGuard reports.

Compliance events and sensor inventory rendered as CSV text for the
report download endpoints.
"""

import csv
import io
from typing import Iterable

from pitguard.common.clock import iso_from_ms
from pitguard.core.models import ComplianceEvent, SensorSnapshot

EVENT_COLUMNS = ["event_id", "timestamp", "zone_id", "workers_alerted", "status", "severity", "supervisor_action"]
SENSOR_COLUMNS = ["sensor_id", "type", "zone_id", "status", "last_heartbeat", "uptime_pct"]

def events_csv(events: Iterable[ComplianceEvent]) -> str:
    """준수 이벤트 CSV (작업자 목록은 '|' 로 연결)"""
    buf = io.StringIO()
    w = csv.writer(buf, lineterminator="\n")
    w.writerow(EVENT_COLUMNS)
    for e in events:
        w.writerow([
            e.event_id,
            e.timestamp,
            e.zone_id,
            "|".join(e.workers_alerted),
            e.status,
            e.severity,
            e.supervisor_action or "",
        ])
    return buf.getvalue()

def sensors_csv(sensors: Iterable[SensorSnapshot]) -> str:
    buf = io.StringIO()
    w = csv.writer(buf, lineterminator="\n")
    w.writerow(SENSOR_COLUMNS)
    for s in sensors:
        w.writerow([
            s.sensor_id,
            s.type,
            s.zone_id,
            s.status,
            iso_from_ms(s.last_heartbeat),
            f"{s.uptime_pct:.4f}",
        ])
    return buf.getvalue()
