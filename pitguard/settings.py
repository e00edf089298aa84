# pitguard/settings.py
from __future__ import annotations
from pydantic import BaseModel, Field

class Engine(BaseModel):
    risk_high: float = 0.7
    risk_medium: float = 0.4
    tick_interval_sec: float = 4.0
    alert_cooldown_sec: float = 60.0          # 같은 구역 high 경보 재발송 금지 구간
    sensor_alert_cooldown_sec: float = 300.0  # 장치별 고장/복구 경보 재발송 금지 구간
    alert_feed_maxlen: int = 1000

class Simulation(BaseModel):
    enabled: bool = True
    seed: int | None = None
    worker_drift_deg: float = 0.0005
    fault_rate: float = 0.01
    recovery_rate: float = 0.3

class SensorHealth(BaseModel):
    heartbeat_grace_sec: float = 30.0

class Stream(BaseModel):
    queue_maxsize: int = 256
    keepalive_sec: float = 15.0
    backoff_initial_sec: float = 1.0
    backoff_factor: float = 1.8
    backoff_max_sec: float = 30.0
    stall_grace_sec: float = 5.0

class Notify(BaseModel):
    enabled: bool = False
    gateway_url: str = ""
    token: str = ""
    default_destination: str | None = None
    timeout_sec: int = 5

class Telemetry(BaseModel):
    enabled: bool = False
    host: str = "localhost"
    port: int = 1883
    username: str | None = None
    password: str | None = None
    tls: bool = False
    client_id: str | None = None
    keepalive: int = 30
    topic: str = "pitguard/telemetry/#"

class Site(BaseModel):
    name: str = "Pit 1"
    exits_path: str | None = None

class Observability(BaseModel):
    http_port: int = 8099
    metrics_enabled: bool = True
    service_name: str = "PitGuard"
    build_version: str = "0.3.0"
    build_date: str = "2025-06-01"
    log_level: str = "INFO"

class Settings(BaseModel):
    engine: Engine = Field(default_factory=Engine)
    simulation: Simulation = Field(default_factory=Simulation)
    sensor_health: SensorHealth = Field(default_factory=SensorHealth)
    stream: Stream = Field(default_factory=Stream)
    notify: Notify = Field(default_factory=Notify)
    telemetry: Telemetry = Field(default_factory=Telemetry)
    site: Site = Field(default_factory=Site)
    observability: Observability = Field(default_factory=Observability)
