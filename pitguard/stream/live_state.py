"""
Client-side live state for PitGuard.

Reducer that folds stream events and bootstrap snapshots into a local
view. Replace-style events (zones, prediction, occupancy, sensor health)
overwrite whole state, so replaying them is harmless; alerts are
appended once per id.
"""

from typing import Dict, List, Optional

from pitguard.core.models import (
    AlertItem, BootstrapSnapshot, PredictionOutput, RiskThresholds,
    SensorHealthSnapshot, SensorReading, WorkerTag, Zone, ZoneOccupancy,
)
from pitguard.core.occupancy import occupancy, resolve_zone
from pitguard.stream.events import (
    AlertEvent, OccupancyEvent, PredictionEvent, SensorEvent,
    SensorHealthEvent, StreamEvent, WorkerEvent, ZonesEvent,
)

class LiveState:
    """구독자 측 상태 모델"""

    def __init__(self, alerts_maxlen: int = 200):
        self.alerts_maxlen = alerts_maxlen
        self.zones: List[Zone] = []
        self.latest_sensors: Dict[str, SensorReading] = {}
        self.prediction: Optional[PredictionOutput] = None
        self.alerts: List[AlertItem] = []
        self.workers: Dict[str, WorkerTag] = {}
        self.occupancy: List[ZoneOccupancy] = []
        self.sensor_health: Optional[SensorHealthSnapshot] = None
        self.thresholds: Optional[RiskThresholds] = None
        self._alert_ids: set = set()

    def apply(self, event: StreamEvent) -> None:
        """이벤트 한 건을 반영합니다."""
        if isinstance(event, ZonesEvent):
            self._replace_zones(event.payload)
        elif isinstance(event, PredictionEvent):
            self.prediction = event.payload
            self._replace_zones(event.payload.zones)
        elif isinstance(event, SensorEvent):
            self.latest_sensors[event.payload.zone_id] = event.payload
        elif isinstance(event, AlertEvent):
            self._add_alert(event.payload)
        elif isinstance(event, WorkerEvent):
            self.workers[event.payload.id] = event.payload
        elif isinstance(event, OccupancyEvent):
            self.occupancy = list(event.payload)
        elif isinstance(event, SensorHealthEvent):
            self.sensor_health = event.payload

    def apply_bootstrap(self, snap: BootstrapSnapshot) -> None:
        """부트스트랩 전체 상태를 반영합니다 (경보는 중복 없이 병합)."""
        self.prediction = snap.prediction
        self._replace_zones(snap.prediction.zones or snap.zones)
        # 스냅샷은 최신 순이므로 오래된 것부터 넣음
        for alert in reversed(snap.alerts):
            self._add_alert(alert)
        self.sensor_health = SensorHealthSnapshot(stats=snap.sensor_stats, sensors=snap.sensors)
        self.thresholds = snap.thresholds

    def _replace_zones(self, zones: List[Zone]) -> None:
        self.zones = list(zones)
        self.occupancy = self.derived_occupancy()

    def _add_alert(self, alert: AlertItem) -> None:
        if alert.id in self._alert_ids:
            return
        self._alert_ids.add(alert.id)
        self.alerts.insert(0, alert)
        for old in self.alerts[self.alerts_maxlen:]:
            self._alert_ids.discard(old.id)
        del self.alerts[self.alerts_maxlen:]

    def derived_occupancy(self) -> List[ZoneOccupancy]:
        """현재 구역 형상 기준으로 작업자 구역을 다시 계산한 인원 집계"""
        workers = [
            w.model_copy(update={"zone_id": resolve_zone(w.location, self.zones)})
            for w in self.workers.values()
        ]
        return occupancy(self.zones, workers)
