"""
Sensor device health tracking for PitGuard.

Keeps per-device status and uptime accounting from periodic heartbeats.
Active time accrues only while a device is ``Active``; a missed
heartbeat beyond the grace period marks it ``Inactive``, an explicit
fault marks it ``Faulty``, and the next healthy heartbeat restores it.
Devices under ``Maintenance`` keep that status until released.
"""

import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from pitguard.core import errors
from pitguard.core.models import DeviceStatus, SensorDevice, SensorSnapshot, SensorStats
from pitguard.observability.logging_setup import get_logger

log = get_logger("pitguard.sensor_health")

STATUSES = ("Active", "Faulty", "Inactive", "Maintenance")

# 구역별 기본 장치 구성
DEFAULT_DEVICE_TYPES = ("extensometer", "piezometer", "geophone")

@dataclass
class Transition:
    """장치 상태 전이"""
    device: SensorDevice
    previous: DeviceStatus
    current: DeviceStatus

    @property
    def is_fault(self) -> bool:
        return self.current in ("Faulty", "Inactive")

    @property
    def is_recovery(self) -> bool:
        return self.current == "Active" and self.previous in ("Faulty", "Inactive")

def snapshot(device: SensorDevice) -> SensorSnapshot:
    """장치 상태와 가동률 (active / total)"""
    return SensorSnapshot(
        sensor_id=device.sensor_id,
        type=device.type,
        zone_id=device.zone_id,
        status=device.status,
        last_heartbeat=device.last_heartbeat,
        uptime_pct=device.active_ms / device.total_ms if device.total_ms else 0.0,
    )

def stats(devices: Iterable[SensorDevice]) -> SensorStats:
    """전체 장치 수, 상태별 개수, 평균 가동률"""
    devices = list(devices)
    by_status = {s: 0 for s in STATUSES}
    for d in devices:
        by_status[d.status] += 1
    uptimes = [snapshot(d).uptime_pct for d in devices]
    return SensorStats(
        total=len(devices),
        by_status=by_status,
        average_uptime=sum(uptimes) / len(uptimes) if uptimes else 0.0,
    )

class SensorHealthTracker:
    """센서 장치 상태 추적기"""

    def __init__(self, heartbeat_grace_ms: int = 30000):
        self.heartbeat_grace_ms = heartbeat_grace_ms
        self._devices: Dict[str, SensorDevice] = {}
        self._lock = threading.RLock()

    def register(self, device: SensorDevice) -> None:
        with self._lock:
            self._devices.setdefault(device.sensor_id, device)

    def seed_for_zones(self, zone_ids: Iterable[str], now_ms: int) -> None:
        """구역마다 기본 장치를 등록합니다 (이미 있으면 유지)."""
        for zid in zone_ids:
            for kind in DEFAULT_DEVICE_TYPES:
                self.register(SensorDevice(
                    sensor_id=f"{zid}-{kind}",
                    type=kind,
                    zone_id=zid,
                    last_heartbeat=now_ms,
                ))

    def devices(self) -> List[SensorDevice]:
        with self._lock:
            return [d.model_copy() for d in self._devices.values()]

    def get(self, device_id: str) -> SensorDevice:
        with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                raise errors.NotFound(f"unknown sensor device: {device_id}")
            return device

    def _set_status(self, device: SensorDevice, status: DeviceStatus) -> Optional[Transition]:
        if device.status == status:
            return None
        t = Transition(device=device, previous=device.status, current=status)
        device.status = status
        log.info(f"센서 상태 전이 sensor:{device.sensor_id} {t.previous} -> {t.current}")
        return t

    def heartbeat(self, device_id: str, elapsed_ms: int, *, now_ms: int, healthy: bool = True) -> Optional[Transition]:
        """
        하트비트를 반영합니다.

        Args:
            device_id: 장치 ID
            elapsed_ms: 직전 하트비트 이후 경과 시간
            now_ms: 현재 시각 (epoch ms)
            healthy: False 이면 고장 보고로 처리

        Returns:
            상태가 바뀐 경우 전이 정보
        """
        with self._lock:
            device = self.get(device_id)
            device.total_ms += elapsed_ms
            if device.status == "Active":
                device.active_ms += elapsed_ms

            if device.status == "Maintenance":
                device.last_heartbeat = now_ms
                return None
            if not healthy:
                return self._set_status(device, "Faulty")

            device.last_heartbeat = now_ms
            return self._set_status(device, "Active")

    def inject_fault(self, device_id: str) -> Optional[Transition]:
        with self._lock:
            return self._set_status(self.get(device_id), "Faulty")

    def set_maintenance(self, device_id: str, enabled: bool) -> Optional[Transition]:
        with self._lock:
            device = self.get(device_id)
            if enabled:
                return self._set_status(device, "Maintenance")
            if device.status == "Maintenance":
                return self._set_status(device, "Active")
            return None

    def check_timeouts(self, now_ms: int) -> List[Transition]:
        """유예 시간 이상 하트비트가 없는 Active 장치를 Inactive 로 전환합니다."""
        out: List[Transition] = []
        with self._lock:
            for device in self._devices.values():
                if device.status == "Active" and now_ms - device.last_heartbeat > self.heartbeat_grace_ms:
                    t = self._set_status(device, "Inactive")
                    if t:
                        out.append(t)
        return out

    def snapshots(self) -> List[SensorSnapshot]:
        with self._lock:
            return [snapshot(d) for d in self._devices.values()]

    def stats(self) -> SensorStats:
        with self._lock:
            return stats(self._devices.values())
