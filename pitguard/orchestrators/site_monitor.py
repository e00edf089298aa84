"""
Site monitor for PitGuard.

Application facade that owns the world state, compliance log, sensor
health tracker, broadcast channel and update loop, and exposes the
ingestion, query and command operations used by the HTTP layer and the
telemetry pump. Payloads are validated with pydantic before any state
is touched; a rejected payload leaves the world unchanged.

The update loop runs only while the live feed has subscribers: the
first subscriber starts it and the last one leaving stops it.
"""

import time
from typing import Any, Callable, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from pitguard.adapters.notify.log_notifier import LogNotifier
from pitguard.common.clock import now_ms
from pitguard.core import errors, risk
from pitguard.core.compliance import ComplianceLog
from pitguard.core.models import (
    AlertItem, BootstrapSnapshot, ComplianceEvent, CreateSite, DrillRequest,
    EvacuationAlert, IngestDEM, IngestDroneImagery, IngestEnvironment,
    IngestGeotech, IngestWorkerLocation, PredictionOutput, RiskAssessmentItem,
    RiskThresholds, SafeExit, SendAlertRequest, SensorReading, SensorSnapshot, SensorStats,
    UpdateThresholds, WorkerTag, Zone, ZoneOccupancy,
)
from pitguard.core.sensor_health import SensorHealthTracker, snapshot
from pitguard.observability import metrics
from pitguard.observability.logging_setup import get_logger
from pitguard.orchestrators.alert_dispatch import AlertDispatcher
from pitguard.orchestrators.update_loop import UpdateLoop
from pitguard.ports.notify import AlertSinkPort
from pitguard.settings import Settings
from pitguard.state.world import BASELINE_READING, WorldState
from pitguard.stream.broadcast import BroadcastChannel, Subscription
from pitguard.stream.events import AlertEvent, SensorHealthEvent, ZonesEvent

log = get_logger("pitguard.monitor")

M = TypeVar("M", bound=BaseModel)

# 부트스트랩 스냅샷에 포함할 최근 경보 수
BOOTSTRAP_ALERTS = 50

DRILL_CRACK_INDEX = 1.0

# 훈련 시 포화값으로 고정하는 측정 채널
DRILL_CHANNELS = {
    "displacement": risk.DISPLACEMENT_SATURATION_MM,
    "rainfall": risk.RAINFALL_SATURATION_MM_H,
    "pore_pressure": risk.PORE_PRESSURE_SATURATION_KPA,
    "vibration": risk.VIBRATION_SATURATION_MM_S,
}

class SiteMonitor:
    """사이트 감시 파사드"""

    def __init__(self,
                 settings: Optional[Settings] = None,
                 *,
                 sink: Optional[AlertSinkPort] = None,
                 clock: Callable[[], int] = now_ms,
                 rng=None):
        """
        초기화합니다.

        Args:
            settings: 서비스 설정 (None 이면 기본값)
            sink: 외부 경보 발송 어댑터 (None 이면 로그 출력)
            clock: 현재 시각 함수 (epoch ms)
            rng: 시뮬레이션 난수 생성기
        """
        self.settings = settings or Settings()
        self._clock = clock
        engine = self.settings.engine

        try:
            thresholds = RiskThresholds(high=engine.risk_high, medium=engine.risk_medium)
        except ValueError as e:
            raise errors.InvalidConfig(str(e)) from e

        self.world = WorldState(thresholds, clock=clock, alert_feed_maxlen=engine.alert_feed_maxlen)
        self.compliance = ComplianceLog(clock=clock)
        self.health = SensorHealthTracker(int(self.settings.sensor_health.heartbeat_grace_sec * 1000))
        self.dispatcher = AlertDispatcher(sink or LogNotifier(), self.settings.notify.default_destination)

        self.channel = BroadcastChannel(
            self._zones_event,
            queue_maxsize=self.settings.stream.queue_maxsize,
            on_active=self._on_active,
            on_idle=self._on_idle,
        )
        self.loop = UpdateLoop(
            self.world,
            self.compliance,
            self.health,
            self.channel.publish,
            dispatcher=self.dispatcher,
            interval_sec=engine.tick_interval_sec,
            alert_cooldown_sec=engine.alert_cooldown_sec,
            sensor_alert_cooldown_sec=engine.sensor_alert_cooldown_sec,
            simulation=self.settings.simulation,
            rng=rng,
            clock=clock,
        )
        self.start_time = time.time()

    # ---- 수명 주기 ----

    def seed(self, exits: Optional[Iterable[SafeExit]] = None) -> bool:
        """기본 상태와 구역별 센서 장치를 채웁니다 (비어 있을 때만)."""
        seeded = self.world.seed(exits)
        if seeded:
            self.health.seed_for_zones([z.id for z in self.world.zones_snapshot()], self._clock())
        return seeded

    def subscribe(self) -> Subscription:
        return self.channel.subscribe()

    def _zones_event(self) -> ZonesEvent:
        return ZonesEvent(payload=self.world.zones_snapshot())

    def _on_active(self) -> None:
        self.loop.start()

    def _on_idle(self) -> None:
        self.loop.stop()

    async def shutdown(self) -> None:
        self.loop.stop()
        await self.dispatcher.drain()
        log.info("사이트 감시 종료")

    @property
    def uptime(self) -> float:
        return time.time() - self.start_time

    # ---- 수집 ----

    def _parse(self, model: Type[M], kind: str, payload: Any) -> M:
        try:
            return model.model_validate(payload)
        except PydanticValidationError as e:
            metrics.ingest_rejected.labels(kind=kind).inc()
            log.warning(f"{kind} 페이로드 거부 errors:{e.error_count()}")
            raise errors.ValidationError(f"invalid {kind} payload: {e}") from e

    def ingest_dem(self, payload: Any) -> None:
        body = self._parse(IngestDEM, "dem", payload)
        known = {z.id for z in self.world.zones_snapshot()}
        self.world.apply_terrain_update(body)
        added = [t.id for t in body.zones if t.id not in known]
        if added:
            self.health.seed_for_zones(added, self._clock())
        self.channel.publish(self._zones_event())
        log.info(f"지형 갱신 zones:{len(body.zones)} new:{len(added)}")

    def ingest_drone(self, payload: Any) -> float:
        body = self._parse(IngestDroneImagery, "drone", payload)
        return self.world.apply_crack_index(body.zone_id, body.crack_index)

    def ingest_geotech(self, payload: Any) -> None:
        body = self._parse(IngestGeotech, "geotech", payload)
        self.world.apply_sensor_reading(body.reading)

    def ingest_environment(self, payload: Any) -> None:
        body = self._parse(IngestEnvironment, "environment", payload)
        self.world.apply_environmental(body.zone_id, body.rainfall, body.temperature, body.vibration)

    def ingest_worker(self, payload: Any) -> WorkerTag:
        body = self._parse(IngestWorkerLocation, "worker", payload)
        fields = {"id": body.id, "type": body.type, "location": body.location}
        if body.name is not None:
            fields["name"] = body.name
        return self.world.upsert_worker(WorkerTag(**fields))

    # ---- 조회 ----

    def prediction(self) -> PredictionOutput:
        return self.world.predict()

    def summary(self) -> dict:
        with self.world.lock:
            out = self.world.predict()
            sensors = self.world.sensors_snapshot()
        return risk.summarize(out, sensors)

    def evacuation_alerts(self) -> List[EvacuationAlert]:
        """모든 작업자의 맞춤 대피 안내"""
        with self.world.lock:
            out = self.world.predict()
            workers = self.world.workers_snapshot()
        return [risk.personalized_alert(w, out) for w in workers]

    def risk_assessment(self) -> List[RiskAssessmentItem]:
        with self.world.lock:
            out = self.world.predict()
            counts = self.world.occupant_counts()
        return risk.assess_risk(out, counts)

    def occupancy(self) -> List[ZoneOccupancy]:
        return self.world.occupancy()

    def alerts(self, limit: Optional[int] = None) -> List[AlertItem]:
        return self.world.recent_alerts(limit)

    def events(self, **filters) -> List[ComplianceEvent]:
        return self.compliance.query(**filters)

    def sensors(self) -> List[SensorSnapshot]:
        return self.health.snapshots()

    def sensor_stats(self) -> SensorStats:
        return self.health.stats()

    def thresholds(self) -> RiskThresholds:
        return self.world.thresholds

    def bootstrap(self) -> BootstrapSnapshot:
        """재접속 구독자용 전체 상태 (한 시점 기준)"""
        with self.world.lock:
            out = self.world.predict()
            return BootstrapSnapshot(
                zones=self.world.zones_snapshot(),
                prediction=out,
                alerts=self.world.recent_alerts(BOOTSTRAP_ALERTS),
                sensor_stats=self.health.stats(),
                sensors=self.health.snapshots(),
                thresholds=self.world.thresholds,
            )

    # ---- 명령 ----

    def create_site(self, payload: Any) -> Zone:
        body = self._parse(CreateSite, "site", payload)
        zone = self.world.create_site(body.name, body.lat, body.lng, body.radius_meters)
        self.health.seed_for_zones([zone.id], self._clock())
        self.channel.publish(self._zones_event())
        return zone

    def set_thresholds(self, payload: Any) -> RiskThresholds:
        """
        임계값을 교체합니다.

        Raises:
            ValidationError: 값이 없거나 숫자가 아닌 경우
            InvalidConfig: 0 < medium < high < 1 위반 (기존 값 유지)
        """
        body = self._parse(UpdateThresholds, "thresholds", payload)
        return self.world.set_thresholds(body.high, body.medium)

    def mock_drill(self, payload: Any) -> AlertItem:
        """
        구역을 강제로 high 로 만들고 훈련 경보를 발송합니다.

        균열 지수와 측정 채널을 포화값으로 덮어씁니다.

        Raises:
            NotFound: 알 수 없는 구역
            InvalidConfig: 포화값으로도 현재 high 임계값을 넘지 못하는 경우 (상태 변경 없음)
        """
        body = self._parse(DrillRequest, "drill", payload)
        with self.world.lock:
            zone = self.world.find_zone(body.zone_id)
            now = self._clock()
            reading = self._drill_reading(zone.id, now)
            slope = self.world.zone_slope.get(zone.id, risk.DEFAULT_SLOPE_DEG)
            p = risk.rockfall_probability(slope, DRILL_CRACK_INDEX, reading)
            if risk.classify(p, self.world.thresholds) != "high":
                log.warning(f"모의 훈련 불가 zone:{zone.id} p:{p:.4f} high:{self.world.thresholds.high}")
                raise errors.InvalidConfig(
                    f"drill cannot raise zone {zone.id} above high threshold {self.world.thresholds.high}"
                )
            self.world.apply_crack_index(zone.id, DRILL_CRACK_INDEX)
            self.world.apply_sensor_reading(reading)
            alert = AlertItem(
                id=f"{zone.id}-drill-{now}",
                zone_id=zone.id,
                level="high",
                message=f"{zone.name}: Evacuation drill, move to the nearest safe exit",
                actions=risk.actions_for_risk("high"),
                timestamp=now,
            )
            self.world.append_alert(alert)
            self.compliance.log_alert(alert, self.world.workers.values())
        metrics.alerts_emitted.labels(kind="drill").inc()
        log.warning(f"모의 훈련 실행 zone:{zone.id}")
        self.loop.emit([AlertEvent(payload=alert)])
        return alert

    def _drill_reading(self, zone_id: str, now: int) -> SensorReading:
        last = self.world.latest_sensors.get(zone_id)
        if last is None:
            last = SensorReading(timestamp=now, zone_id=zone_id, **BASELINE_READING)
        return last.model_copy(update=DRILL_CHANNELS)

    def send_alert(self, payload: Any) -> AlertItem:
        """경보를 피드에 추가하고 외부 채널로 발송합니다 (발송 결과를 기다리지 않음)."""
        body = self._parse(SendAlertRequest, "alert", payload)
        self.world.append_alert(body.alert)
        metrics.alerts_emitted.labels(kind="manual").inc()
        self.channel.publish(AlertEvent(payload=body.alert))
        self.dispatcher.submit(body.alert, body.to_phone)
        return body.alert

    def inject_sensor_fault(self, device_id: str) -> SensorSnapshot:
        """
        장치를 고장 상태로 만듭니다.

        Raises:
            NotFound: 알 수 없는 장치
        """
        t = self.health.inject_fault(device_id)
        self._publish_health([t] if t else [])
        return snapshot(self.health.get(device_id))

    def set_sensor_maintenance(self, device_id: str, enabled: bool) -> SensorSnapshot:
        t = self.health.set_maintenance(device_id, enabled)
        self._publish_health([t] if t else [])
        return snapshot(self.health.get(device_id))

    def _publish_health(self, transitions) -> None:
        with self.world.lock:
            alerts = self.loop.sensor_alerts(transitions, self._clock())
            health = SensorHealthEvent(payload=self.loop.health_snapshot())
        self.loop.emit([AlertEvent(payload=a) for a in alerts] + [health])
