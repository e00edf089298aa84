"""
Telemetry pump for PitGuard.

Routes telemetry messages to the matching ingestion operation of the
site monitor. A payload that fails validation is logged and skipped;
it never stops the pump.
"""

from typing import AsyncIterator, Dict, Tuple

from pitguard.core import errors
from pitguard.observability.logging_setup import get_logger
from pitguard.orchestrators.site_monitor import SiteMonitor

log = get_logger("pitguard.telemetry")

class TelemetryPump:
    """텔레메트리 수집 라우터"""

    def __init__(self, monitor: SiteMonitor):
        self.monitor = monitor
        self.routes = {
            "dem": monitor.ingest_dem,
            "drone": monitor.ingest_drone,
            "geotech": monitor.ingest_geotech,
            "environment": monitor.ingest_environment,
            "worker": monitor.ingest_worker,
        }
        self.accepted = 0
        self.rejected = 0

    def handle(self, kind: str, payload: Dict) -> bool:
        """메시지 한 건을 반영합니다. 반영했으면 True."""
        route = self.routes.get(kind)
        if route is None:
            log.warning(f"알 수 없는 텔레메트리 종류: {kind}")
            self.rejected += 1
            return False
        try:
            route(payload)
        except errors.ValidationError as e:
            self.rejected += 1
            log.warning(f"텔레메트리 거부 kind:{kind} error:{e}")
            return False
        self.accepted += 1
        return True

    async def run(self, source: AsyncIterator[Tuple[str, Dict]]) -> None:
        log.info("텔레메트리 수집 시작")
        async for kind, payload in source:
            self.handle(kind, payload)
