"""
World state for PitGuard.

Single authoritative in-memory model of one site: zones and their
slope/crack inputs, the latest sensor reading per zone, safe exits,
worker tags, the live alert feed and the classification thresholds.
Every mutation goes through a method that holds the state lock, so a
reader never observes a half-applied update. ``lock`` is exposed so
the update loop can hold it across a whole tick.
"""

import threading
import uuid
from typing import Callable, Dict, Iterable, List, Optional

from pitguard.common.clock import now_ms
from pitguard.common.geo import square_around
from pitguard.core import errors, risk
from pitguard.core.models import (
    AlertItem, IngestDEM, LatLng, PredictionOutput, RiskThresholds, SafeExit,
    SensorReading, WorkerTag, Zone, ZoneOccupancy,
)
from pitguard.core.occupancy import occupancy, occupant_counts, resolve_zone
from pitguard.observability.logging_setup import get_logger

log = get_logger("pitguard.world")

DEFAULT_SITE_RADIUS_M = 60.0
NEW_SITE_PROBABILITY = 0.05

# 환경 데이터만 들어온 구역의 기준 측정값
BASELINE_READING = {
    "displacement": 1.0,
    "strain": 20.0,
    "pore_pressure": 10.0,
    "rainfall": 0.0,
    "temperature": 20.0,
    "vibration": 0.2,
}

def _poly(*pts) -> List[LatLng]:
    return [LatLng(lat=lat, lng=lng) for lat, lng in pts]

SEED_ZONES = [
    Zone(id="z1", name="North Slope", probability=0.1,
         polygon=_poly((-24.6, 135.1), (-24.61, 135.12), (-24.62, 135.09), (-24.6, 135.08))),
    Zone(id="z2", name="East Ramp", probability=0.2,
         polygon=_poly((-24.605, 135.13), (-24.615, 135.14), (-24.625, 135.12), (-24.61, 135.11))),
    Zone(id="z3", name="Haul Road Cut", probability=0.15,
         polygon=_poly((-24.59, 135.11), (-24.6, 135.15), (-24.61, 135.14), (-24.6, 135.1))),
]

SEED_EXITS = [
    SafeExit(id="e1", name="Muster Point A", type="muster", location=LatLng(lat=-24.595, lng=135.105)),
    SafeExit(id="e2", name="Muster Point B", type="muster", location=LatLng(lat=-24.615, lng=135.145)),
    SafeExit(id="e3", name="South Gate", type="gate", location=LatLng(lat=-24.625, lng=135.085)),
]

SEED_WORKERS = [
    WorkerTag(id="w1", name="Crew A-1", type="rfid", location=LatLng(lat=-24.603, lng=135.119)),
    WorkerTag(id="w2", name="Crew A-2", type="rfid", location=LatLng(lat=-24.61, lng=135.13)),
    WorkerTag(id="w3", name="Surveyor B", type="ble", location=LatLng(lat=-24.6, lng=135.112)),
]

class WorldState:
    """사이트 상태 저장소 (단일 소유자)"""

    def __init__(self,
                 thresholds: Optional[RiskThresholds] = None,
                 *,
                 clock: Callable[[], int] = now_ms,
                 alert_feed_maxlen: int = 1000):
        self.lock = threading.RLock()
        self._clock = clock
        self.alert_feed_maxlen = alert_feed_maxlen

        self.zones: List[Zone] = []
        self.zone_slope: Dict[str, float] = {}
        self.crack_index: Dict[str, float] = {}
        self.latest_sensors: Dict[str, SensorReading] = {}
        self.safe_exits: List[SafeExit] = []
        self.workers: Dict[str, WorkerTag] = {}
        self.alerts: List[AlertItem] = []
        self._thresholds = thresholds or RiskThresholds()

    # ---- 초기화 ----

    def seed(self, exits: Optional[Iterable[SafeExit]] = None) -> bool:
        """
        비어 있을 때만 기본 구역/대피 지점/작업자를 채웁니다.

        Returns:
            실제로 채웠으면 True
        """
        with self.lock:
            if self.zones:
                return False
            now = self._clock()
            self.zones = [z.model_copy(deep=True) for z in SEED_ZONES]
            self.safe_exits = list(exits) if exits else [e.model_copy(deep=True) for e in SEED_EXITS]
            self.workers = {w.id: w.model_copy(update={"last_seen": now}, deep=True) for w in SEED_WORKERS}
            self._resolve_worker_zones()
        log.info(f"기본 상태 시드 완료 zones:{len(self.zones)} exits:{len(self.safe_exits)} workers:{len(self.workers)}")
        return True

    # ---- 수집 ----

    def apply_terrain_update(self, payload: IngestDEM) -> None:
        """구역 형상/경사를 ID 기준으로 갱신하거나 추가합니다 (확률/등급은 건드리지 않음)."""
        with self.lock:
            by_id = {z.id: i for i, z in enumerate(self.zones)}
            for t in payload.zones:
                self.zone_slope[t.id] = t.slope
                if t.id in by_id:
                    i = by_id[t.id]
                    self.zones[i] = self.zones[i].model_copy(update={"name": t.name, "polygon": list(t.polygon)})
                else:
                    self.zones.append(Zone(id=t.id, name=t.name, polygon=list(t.polygon)))
                    by_id[t.id] = len(self.zones) - 1
            self._resolve_worker_zones()

    def apply_crack_index(self, zone_id: str, value: float) -> float:
        clamped = max(0.0, min(1.0, value))
        with self.lock:
            self.crack_index[zone_id] = clamped
        return clamped

    def apply_sensor_reading(self, reading: SensorReading) -> None:
        with self.lock:
            self.latest_sensors[reading.zone_id] = reading

    def apply_environmental(self, zone_id: str, rainfall: float, temperature: float, vibration: float) -> SensorReading:
        """환경 값을 기존 측정값에 병합합니다 (변위/변형/간극수압 유지)."""
        with self.lock:
            last = self.latest_sensors.get(zone_id)
            if last is None:
                last = SensorReading(timestamp=self._clock(), zone_id=zone_id, **BASELINE_READING)
            merged = last.model_copy(update={
                "rainfall": rainfall,
                "temperature": temperature,
                "vibration": vibration,
            })
            self.latest_sensors[zone_id] = merged
            return merged

    def upsert_worker(self, tag: WorkerTag) -> WorkerTag:
        """
        작업자 태그를 병합하고 lastSeen 을 갱신한 뒤 전체 작업자의 구역을 다시 계산합니다.
        """
        with self.lock:
            fields = {k: getattr(tag, k) for k in tag.model_fields_set if k != "zone_id"}
            existing = self.workers.get(tag.id)
            merged = existing.model_copy(update=fields) if existing else tag
            self.workers[tag.id] = merged.model_copy(update={"last_seen": self._clock()})
            self._resolve_worker_zones()
            return self.workers[tag.id].model_copy()

    def _resolve_worker_zones(self) -> None:
        for wid, w in self.workers.items():
            self.workers[wid] = w.model_copy(update={"zone_id": resolve_zone(w.location, self.zones)})

    # ---- 설정 ----

    @property
    def thresholds(self) -> RiskThresholds:
        return self._thresholds

    def set_thresholds(self, high: float, medium: float) -> RiskThresholds:
        """
        임계값을 원자적으로 교체합니다.

        Raises:
            InvalidConfig: 0 < medium < high < 1 이 아닌 경우 (기존 값 유지)
        """
        try:
            new = RiskThresholds(high=high, medium=medium)
        except ValueError as e:
            raise errors.InvalidConfig(str(e)) from e
        with self.lock:
            self._thresholds = new
            # 저장된 구역 등급도 새 임계값 기준으로 맞춤
            self.zones = [self._reclassified(z, new) for z in self.zones]
        log.info(f"임계값 변경 medium:{new.medium} high:{new.high}")
        return new

    @staticmethod
    def _reclassified(zone: Zone, thresholds: RiskThresholds) -> Zone:
        level = risk.classify(zone.probability, thresholds)
        return zone.model_copy(update={"risk": level, "recommended_actions": risk.actions_for_risk(level)})

    # ---- 명령 ----

    def create_site(self, name: str, lat: float, lng: float, radius_meters: Optional[float] = None) -> Zone:
        """중심점 기준 정사각형 구역을 새로 추가합니다."""
        half = radius_meters if radius_meters is not None else DEFAULT_SITE_RADIUS_M
        try:
            zone = Zone(
                id=f"site-{uuid.uuid4().hex[:8]}",
                name=name,
                polygon=list(square_around(lat, lng, half)),
                probability=NEW_SITE_PROBABILITY,
                risk="low",
            )
        except ValueError as e:
            raise errors.ValidationError(str(e)) from e
        with self.lock:
            self.zones.append(zone)
            self._resolve_worker_zones()
        log.info(f"신규 사이트 생성 id:{zone.id} name:{name}")
        return zone

    def find_zone(self, zone_id: str) -> Zone:
        with self.lock:
            for z in self.zones:
                if z.id == zone_id:
                    return z
        raise errors.NotFound(f"unknown zone: {zone_id}")

    # ---- 경보 피드 ----

    def append_alert(self, alert: AlertItem) -> None:
        with self.lock:
            self.alerts.insert(0, alert)
            del self.alerts[self.alert_feed_maxlen:]

    def last_alert(self, zone_id: str, level: str) -> Optional[AlertItem]:
        with self.lock:
            return next((a for a in self.alerts if a.zone_id == zone_id and a.level == level), None)

    # ---- 파생 뷰 ----

    def predict(self, now: Optional[int] = None) -> PredictionOutput:
        """현재 입력으로 예측을 수행하고 구역의 확률/등급을 갱신합니다."""
        with self.lock:
            out = risk.predict(
                self.zones,
                slopes=self.zone_slope,
                cracks=self.crack_index,
                sensors=self.latest_sensors,
                exits=self.safe_exits,
                thresholds=self._thresholds,
                now_ms=now if now is not None else self._clock(),
            )
            self.zones = [z.model_copy(deep=True) for z in out.zones]
            return out

    def occupancy(self) -> List[ZoneOccupancy]:
        with self.lock:
            return occupancy(self.zones, self.workers.values())

    def occupant_counts(self) -> Dict[str, int]:
        with self.lock:
            return occupant_counts(self.workers.values())

    def zones_snapshot(self) -> List[Zone]:
        with self.lock:
            return [z.model_copy(deep=True) for z in self.zones]

    def workers_snapshot(self) -> List[WorkerTag]:
        with self.lock:
            return [w.model_copy() for w in self.workers.values()]

    def sensors_snapshot(self) -> Dict[str, SensorReading]:
        with self.lock:
            return dict(self.latest_sensors)

    def recent_alerts(self, limit: Optional[int] = None) -> List[AlertItem]:
        with self.lock:
            return list(self.alerts[:limit] if limit else self.alerts)
