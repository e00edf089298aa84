"""
Core domain models for PitGuard.

This module defines the core domain models using Pydantic v2
for type safety and validation. Models that travel over the live
feed use camelCase aliases on the wire; compliance and supervisor
records keep snake_case keys.
"""

from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# 위험 등급 타입 정의
RiskLevel = Literal["low", "medium", "high"]
WorkerType = Literal["rfid", "ble"]
ExitKind = Literal["muster", "gate", "safezone"]
DeviceStatus = Literal["Active", "Faulty", "Inactive", "Maintenance"]
EventStatus = Literal["Ongoing", "Resolved"]
Urgency = Literal["High", "Medium", "Low"]
RecommendedAction = Literal["Evacuate immediately", "Monitor", "Safe"]

class WireModel(BaseModel):
    """camelCase 별칭을 사용하는 전송 모델"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

class LatLng(WireModel):
    """위경도 좌표"""
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)

class Zone(WireModel):
    """감시 구역 모델"""
    id: str = Field(min_length=1)
    name: str
    polygon: List[LatLng] = Field(min_length=3)
    probability: float = 0.0
    risk: RiskLevel = "low"
    recommended_actions: List[str] = Field(default_factory=lambda: ["Routine inspection"])

class SensorReading(WireModel):
    """구역별 최신 센서 측정값"""
    timestamp: int
    zone_id: str = Field(min_length=1)
    displacement: float = Field(ge=0)   # mm
    strain: float = Field(ge=0)         # µε
    pore_pressure: float = Field(ge=0)  # kPa
    rainfall: float = Field(ge=0)       # mm/h
    temperature: float                  # °C
    vibration: float = Field(ge=0)      # mm/s

class WorkerTag(WireModel):
    """작업자 태그 모델"""
    id: str = Field(min_length=1)
    name: Optional[str] = None
    type: WorkerType = "rfid"
    last_seen: int = 0
    location: LatLng
    zone_id: Optional[str] = None

class WorkerRef(WireModel):
    id: str
    name: Optional[str] = None
    type: WorkerType

class ZoneOccupancy(WireModel):
    zone_id: str
    zone_name: str
    count: int
    workers: List[WorkerRef] = Field(default_factory=list)

class SafeExit(WireModel):
    """대피 지점 (집결지/게이트/안전지대)"""
    id: str = Field(min_length=1)
    name: str
    location: LatLng
    type: ExitKind = "muster"

class EvacuationRoute(WireModel):
    zone_id: str
    zone_name: str
    exit_id: str
    exit_name: str
    path: List[LatLng]
    distance_meters: float
    eta_minutes: float

class PredictionFlags(WireModel):
    barricade: bool

class PredictionOutput(WireModel):
    """예측 결과 모델"""
    timestamp: int
    zones: List[Zone]
    flags: PredictionFlags
    evacuation_routes: List[EvacuationRoute] = Field(default_factory=list)

    @property
    def barricade_flag(self) -> bool:
        return self.flags.barricade

class AlertItem(WireModel):
    """실시간 경보 피드 항목"""
    id: str = Field(min_length=1)
    zone_id: str = Field(min_length=1)
    level: RiskLevel
    message: str
    actions: List[str] = Field(default_factory=list)
    timestamp: int

class EvacuationAlert(BaseModel):
    """작업자별 맞춤 대피 안내"""
    worker_id: str
    message: str
    evacuation_route: List[LatLng] = Field(default_factory=list)
    urgency: Urgency
    language: str = "en"

class RiskAssessmentItem(BaseModel):
    zone_id: str
    risk_score: int
    workers_at_risk: int
    recommended_action: RecommendedAction

class ComplianceEvent(BaseModel):
    """규정 준수 로그 레코드 (불변)"""
    model_config = ConfigDict(frozen=True)

    event_id: str
    timestamp: str
    zone_id: str
    workers_alerted: List[str] = Field(default_factory=list)
    alert_delivery_time: Dict[str, str] = Field(default_factory=dict)
    supervisor_action: Optional[str] = None
    status: EventStatus
    severity: RiskLevel

class RiskThresholds(BaseModel):
    """분류 임계값 (0 < medium < high < 1)"""
    model_config = ConfigDict(frozen=True)

    high: float = 0.7
    medium: float = 0.4

    @model_validator(mode="after")
    def _check_order(self) -> "RiskThresholds":
        if not (0 < self.medium < self.high < 1):
            raise ValueError(f"thresholds must satisfy 0 < medium < high < 1 (medium={self.medium}, high={self.high})")
        return self

class SensorDevice(BaseModel):
    """센서 장치 상태 (가변)"""
    sensor_id: str
    type: str
    zone_id: str
    status: DeviceStatus = "Active"
    last_heartbeat: int = 0
    active_ms: int = 0
    total_ms: int = 0

class SensorSnapshot(BaseModel):
    sensor_id: str
    type: str
    zone_id: str
    status: DeviceStatus
    last_heartbeat: int
    uptime_pct: float

class SensorStats(BaseModel):
    total: int
    by_status: Dict[str, int]
    average_uptime: float

class SensorHealthSnapshot(BaseModel):
    stats: SensorStats
    sensors: List[SensorSnapshot]

class BootstrapSnapshot(WireModel):
    """신규/재접속 구독자를 위한 전체 상태"""
    zones: List[Zone]
    prediction: PredictionOutput
    alerts: List[AlertItem]
    sensor_stats: SensorStats
    sensors: List[SensorSnapshot]
    thresholds: RiskThresholds

# ---- 수집 페이로드 ----

class TerrainZone(WireModel):
    id: str = Field(min_length=1)
    name: str
    polygon: List[LatLng] = Field(min_length=3)
    slope: float = Field(ge=0, le=90)

class IngestDEM(WireModel):
    zones: List[TerrainZone] = Field(min_length=1)

class IngestDroneImagery(WireModel):
    zone_id: str = Field(min_length=1)
    crack_index: float

class IngestGeotech(WireModel):
    reading: SensorReading

class IngestEnvironment(WireModel):
    zone_id: str = Field(min_length=1)
    rainfall: float = Field(ge=0)
    temperature: float
    vibration: float = Field(ge=0)

class IngestWorkerLocation(WireModel):
    id: str = Field(min_length=1)
    type: WorkerType = "rfid"
    name: Optional[str] = None
    location: LatLng

class CreateSite(WireModel):
    name: str = Field(min_length=1)
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    radius_meters: Optional[float] = Field(default=None, gt=0)

class DrillRequest(WireModel):
    zone_id: str = Field(min_length=1)

class SendAlertRequest(WireModel):
    alert: AlertItem
    to_phone: Optional[str] = None

class UpdateThresholds(WireModel):
    high: float
    medium: float

class MaintenanceRequest(WireModel):
    enabled: bool = True
