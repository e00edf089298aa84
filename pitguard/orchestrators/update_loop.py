"""
Update loop for PitGuard.

Periodic driver of the live model. Each tick, under the world lock:
sensor readings -> prediction -> worker positions and occupancy ->
throttled high-risk alerts and compliance resolution -> sensor device
health. The resulting events are published after the lock is released,
in that same order, so every event of one tick reflects one consistent
world state. A failing tick is logged and the loop carries on.
"""

import asyncio
import random
from typing import Callable, Dict, List, Optional

from pitguard.common.clock import now_ms
from pitguard.core.compliance import ComplianceLog
from pitguard.core.models import AlertItem, LatLng, SensorHealthSnapshot, SensorReading, WorkerTag, Zone
from pitguard.core.sensor_health import SensorHealthTracker, Transition
from pitguard.observability import metrics
from pitguard.observability.logging_setup import get_logger
from pitguard.orchestrators.alert_dispatch import AlertDispatcher
from pitguard.settings import Simulation
from pitguard.state.world import WorldState
from pitguard.stream.events import (
    AlertEvent, OccupancyEvent, PredictionEvent, SensorEvent,
    SensorHealthEvent, StreamEvent, WorkerEvent,
)

log = get_logger("pitguard.update_loop")

# 측정값이 한 번도 없던 구역의 시뮬레이션 시작값
SIM_START = {
    "displacement": 1.0,
    "strain": 50.0,
    "pore_pressure": 20.0,
}

SENSOR_FAULT_ACTIONS = ["Dispatch technician", "Cross-check neighbouring sensors"]
SENSOR_RECOVERY_ACTIONS = ["Confirm readings against baseline"]

class UpdateLoop:
    """주기적 갱신 드라이버"""

    def __init__(self,
                 world: WorldState,
                 compliance: ComplianceLog,
                 health: SensorHealthTracker,
                 publish: Callable[[StreamEvent], int],
                 *,
                 dispatcher: Optional[AlertDispatcher] = None,
                 interval_sec: float = 4.0,
                 alert_cooldown_sec: float = 60.0,
                 sensor_alert_cooldown_sec: float = 300.0,
                 simulation: Optional[Simulation] = None,
                 rng: Optional[random.Random] = None,
                 clock: Callable[[], int] = now_ms):
        """
        초기화합니다.

        Args:
            world: 사이트 상태
            compliance: 규정 준수 로그
            health: 센서 장치 상태 추적기
            publish: 이벤트 발행 함수 (브로드캐스트 채널)
            dispatcher: 외부 경보 발송기 (None 이면 발송 안 함)
            interval_sec: 틱 간격 (초)
            alert_cooldown_sec: 같은 구역 high 경보 재발송 금지 구간
            sensor_alert_cooldown_sec: 장치별 고장/복구 경보 재발송 금지 구간
            simulation: 시뮬레이션 설정 (None 이면 비활성)
            rng: 난수 생성기 (테스트 재현용)
            clock: 현재 시각 함수 (epoch ms)
        """
        self.world = world
        self.compliance = compliance
        self.health = health
        self.publish = publish
        self.dispatcher = dispatcher
        self.interval_sec = interval_sec
        self.alert_cooldown_ms = int(alert_cooldown_sec * 1000)
        self.sensor_alert_cooldown_ms = int(sensor_alert_cooldown_sec * 1000)
        self.simulation = simulation or Simulation(enabled=False)
        self.rng = rng or random.Random(self.simulation.seed)
        self._clock = clock

        self._task: Optional[asyncio.Task] = None
        self._last_tick: Optional[int] = None
        self._sensor_alerted: Dict[str, int] = {}

    # ---- 수명 주기 ----

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """루프 태스크를 시작합니다 (이미 실행 중이면 무시)."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        log.info(f"업데이트 루프 시작 interval:{self.interval_sec}s")

    def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        log.info("업데이트 루프 정지")

    async def _run(self) -> None:
        while True:
            await self.step()
            await asyncio.sleep(self.interval_sec)

    async def step(self) -> List[StreamEvent]:
        """틱 한 번을 실행하고 결과 이벤트를 발행합니다. 실패해도 예외를 올리지 않습니다."""
        try:
            with metrics.tick_seconds.time():
                events = self.tick()
        except Exception as e:
            metrics.tick_failures.inc()
            log.exception(f"틱 처리 오류: {e}")
            return []
        self.emit(events)
        return events

    def emit(self, events: List[StreamEvent]) -> None:
        """이벤트를 순서대로 발행하고 경보는 외부 발송을 예약합니다."""
        for ev in events:
            self.publish(ev)
            if isinstance(ev, AlertEvent) and self.dispatcher:
                self.dispatcher.submit(ev.payload)

    # ---- 틱 ----

    def tick(self, now: Optional[int] = None) -> List[StreamEvent]:
        """
        상태를 한 틱 진행시킵니다 (발행은 하지 않음).

        Returns:
            센서 -> 예측 -> 작업자 -> 인원 -> 경보 -> 센서 상태 순서의 이벤트
        """
        now = now if now is not None else self._clock()
        elapsed = now - self._last_tick if self._last_tick is not None else int(self.interval_sec * 1000)

        with self.world.lock:
            sensor_events = self._advance_sensors(now)

            prediction = self.world.predict(now)
            high = [z for z in prediction.zones if z.risk == "high"]
            metrics.high_risk_zones.set(len(high))

            worker_events = self._advance_workers()
            occupancy_event = OccupancyEvent(payload=self.world.occupancy())

            alerts: List[AlertItem] = []
            for zone in prediction.zones:
                if zone.risk == "high":
                    alert = self._zone_alert(zone, now)
                    if alert:
                        alerts.append(alert)
                else:
                    self.compliance.resolve_zone(zone.id)

            alerts.extend(self._advance_health(now, elapsed))
            health_event = SensorHealthEvent(payload=self.health_snapshot())

        self._last_tick = now
        metrics.ticks_total.inc()

        events: List[StreamEvent] = []
        events.extend(sensor_events)
        events.append(PredictionEvent(payload=prediction))
        events.extend(worker_events)
        events.append(occupancy_event)
        events.extend(AlertEvent(payload=a) for a in alerts)
        events.append(health_event)
        return events

    def _advance_sensors(self, now: int) -> List[SensorEvent]:
        out: List[SensorEvent] = []
        for zone in self.world.zones:
            if self.simulation.enabled:
                reading = self._simulate_reading(zone.id, now)
                self.world.apply_sensor_reading(reading)
            else:
                reading = self.world.latest_sensors.get(zone.id)
                if reading is None:
                    continue
            out.append(SensorEvent(payload=reading))
        return out

    def _simulate_reading(self, zone_id: str, now: int) -> SensorReading:
        u = self.rng.uniform
        last = self.world.latest_sensors.get(zone_id)
        displacement = last.displacement if last else SIM_START["displacement"]
        strain = last.strain if last else SIM_START["strain"]
        pore = last.pore_pressure if last else SIM_START["pore_pressure"]
        return SensorReading(
            timestamp=now,
            zone_id=zone_id,
            displacement=max(0.0, displacement + u(-0.3, 0.8)),
            strain=max(0.0, strain + u(-3, 4)),
            pore_pressure=max(0.0, pore + u(-2, 5)),
            rainfall=max(0.0, u(0, 5)),
            temperature=20 + u(-0.5, 0.5),
            vibration=max(0.0, u(0.2, 0.6)),
        )

    def _advance_workers(self) -> List[WorkerEvent]:
        if not self.simulation.enabled:
            # 실측 모드: 직전 틱 이후 위치가 수집된 작업자만
            since = self._last_tick if self._last_tick is not None else -1
            return [WorkerEvent(payload=w.model_copy())
                    for w in self.world.workers.values() if w.last_seen > since]
        d = self.simulation.worker_drift_deg
        out: List[WorkerEvent] = []
        for w in list(self.world.workers.values()):
            loc = LatLng(
                lat=max(-90.0, min(90.0, w.location.lat + self.rng.uniform(-d, d))),
                lng=max(-180.0, min(180.0, w.location.lng + self.rng.uniform(-d, d))),
            )
            self.world.upsert_worker(WorkerTag(id=w.id, location=loc))
        # 모든 작업자 이동 후 최종 구역 기준으로 이벤트 생성
        for w in self.world.workers.values():
            out.append(WorkerEvent(payload=w.model_copy()))
        return out

    def _zone_alert(self, zone: Zone, now: int) -> Optional[AlertItem]:
        last = self.world.last_alert(zone.id, "high")
        if last is not None and now - last.timestamp < self.alert_cooldown_ms:
            return None
        alert = AlertItem(
            id=f"{zone.id}-{now}",
            zone_id=zone.id,
            level="high",
            message=f"{zone.name}: High rockfall risk ({zone.probability * 100:.1f}%)",
            actions=list(zone.recommended_actions),
            timestamp=now,
        )
        self.world.append_alert(alert)
        self.compliance.log_alert(alert, self.world.workers.values())
        metrics.alerts_emitted.labels(kind="risk").inc()
        log.warning(f"고위험 경보 zone:{zone.id} p:{zone.probability:.3f}")
        return alert

    # ---- 센서 장치 상태 ----

    def _advance_health(self, now: int, elapsed: int) -> List[AlertItem]:
        transitions: List[Transition] = []
        for device in self.health.devices():
            healthy = self._device_heartbeat(device.status, device.zone_id)
            if healthy is None:
                continue
            t = self.health.heartbeat(device.sensor_id, elapsed, now_ms=now, healthy=healthy)
            if t:
                transitions.append(t)
        transitions.extend(self.health.check_timeouts(now))
        return self.sensor_alerts(transitions, now)

    def _device_heartbeat(self, status: str, zone_id: str) -> Optional[bool]:
        """
        이번 틱의 하트비트 여부를 정합니다.

        Returns:
            True(정상 보고), False(고장 보고), None(보고 없음)
        """
        if self.simulation.enabled:
            if status == "Active":
                return self.rng.random() >= self.simulation.fault_rate
            if status in ("Faulty", "Inactive"):
                if self.rng.random() < self.simulation.recovery_rate:
                    return True
                return False if status == "Faulty" else None
            return True

        # 실측 모드: 직전 틱 이후 새 측정값이 들어온 구역의 장치만 보고
        reading = self.world.latest_sensors.get(zone_id)
        if reading is None:
            return None
        if self._last_tick is not None and reading.timestamp <= self._last_tick:
            return None
        return True

    def sensor_alerts(self, transitions: List[Transition], now: int) -> List[AlertItem]:
        """
        장치 상태 전이에서 고장/복구 경보를 만듭니다 (장치·종류별 쿨다운 적용).

        생성된 경보는 경보 피드에 추가됩니다.
        """
        out: List[AlertItem] = []
        for t in transitions:
            if t.is_fault:
                kind = "sensor_fault"
            elif t.is_recovery:
                kind = "sensor_recovery"
            else:
                continue

            key = f"{t.device.sensor_id}:{kind}"
            last = self._sensor_alerted.get(key)
            if last is not None and now - last < self.sensor_alert_cooldown_ms:
                continue
            self._sensor_alerted[key] = now

            d = t.device
            if kind == "sensor_fault":
                alert = AlertItem(
                    id=f"{d.sensor_id}-fault-{now}",
                    zone_id=d.zone_id,
                    level="medium",
                    message=f"Sensor {d.sensor_id} ({d.type}) is {t.current.lower()}",
                    actions=list(SENSOR_FAULT_ACTIONS),
                    timestamp=now,
                )
            else:
                alert = AlertItem(
                    id=f"{d.sensor_id}-recovered-{now}",
                    zone_id=d.zone_id,
                    level="low",
                    message=f"Sensor {d.sensor_id} ({d.type}) back online",
                    actions=list(SENSOR_RECOVERY_ACTIONS),
                    timestamp=now,
                )
            self.world.append_alert(alert)
            metrics.alerts_emitted.labels(kind=kind).inc()
            out.append(alert)
        return out

    def health_snapshot(self) -> SensorHealthSnapshot:
        return SensorHealthSnapshot(stats=self.health.stats(), sensors=self.health.snapshots())
