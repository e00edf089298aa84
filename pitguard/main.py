# pitguard/main.py
import os, asyncio, signal
from typing import Optional
from pitguard.settings import Settings
from pitguard.adapters.exits_file import load_safe_exits
from pitguard.adapters.mqtt_telemetry.client_async import TelemetryMqttIngestor
from pitguard.adapters.notify import LogNotifier, SmsGatewayNotifier
from pitguard.observability.logging_setup import setup_logging_dev, get_logger
from pitguard.observability.server import start_http
from pitguard.orchestrators.site_monitor import SiteMonitor
from pitguard.orchestrators.telemetry_pump import TelemetryPump
from pitguard.ports.notify import AlertSinkPort

def _b(name, default=False): return os.getenv(name, str(default)).lower() in ("1","true","yes","on")

def _opt_int(name, default): 
    v = os.getenv(name)
    return int(v) if v not in (None, "") else default

def build_settings() -> Settings:
    s = Settings()

    # 엔진
    s.engine.risk_high = float(os.getenv("RISK_THRESHOLD_HIGH", s.engine.risk_high))
    s.engine.risk_medium = float(os.getenv("RISK_THRESHOLD_MEDIUM", s.engine.risk_medium))
    s.engine.tick_interval_sec = float(os.getenv("TICK_INTERVAL_SEC", s.engine.tick_interval_sec))
    s.engine.alert_cooldown_sec = float(os.getenv("ALERT_COOLDOWN_SEC", s.engine.alert_cooldown_sec))
    s.engine.sensor_alert_cooldown_sec = float(os.getenv("SENSOR_ALERT_COOLDOWN_SEC", s.engine.sensor_alert_cooldown_sec))

    # 시뮬레이션
    s.simulation.enabled = _b("SIMULATION_ENABLED", s.simulation.enabled)
    s.simulation.seed = _opt_int("SIMULATION_SEED", s.simulation.seed)

    # 센서 상태
    s.sensor_health.heartbeat_grace_sec = float(os.getenv("HEARTBEAT_GRACE_SEC", s.sensor_health.heartbeat_grace_sec))

    # 스트림
    s.stream.queue_maxsize = int(os.getenv("STREAM_QUEUE_MAXSIZE", s.stream.queue_maxsize))
    s.stream.keepalive_sec = float(os.getenv("STREAM_KEEPALIVE_SEC", s.stream.keepalive_sec))

    # 알림
    s.notify.gateway_url = os.getenv("SMS_GATEWAY_URL", s.notify.gateway_url)
    s.notify.token = os.getenv("SMS_GATEWAY_TOKEN", s.notify.token)
    s.notify.default_destination = os.getenv("ALERT_TO_PHONE", s.notify.default_destination)
    s.notify.enabled = _b("NOTIFY_ENABLED", bool(s.notify.gateway_url))

    # 텔레메트리 MQTT
    s.telemetry.enabled = _b("TELEMETRY_ENABLED", s.telemetry.enabled)
    s.telemetry.host = os.getenv("TELEMETRY_MQTT_HOST", s.telemetry.host)
    s.telemetry.port = int(os.getenv("TELEMETRY_MQTT_PORT", s.telemetry.port))
    s.telemetry.username = os.getenv("TELEMETRY_MQTT_USERNAME", s.telemetry.username)
    s.telemetry.password = os.getenv("TELEMETRY_MQTT_PASSWORD", s.telemetry.password)
    s.telemetry.tls = _b("TELEMETRY_MQTT_TLS", s.telemetry.tls)
    s.telemetry.topic = os.getenv("TELEMETRY_TOPIC", s.telemetry.topic)

    # 사이트
    s.site.name = os.getenv("SITE_NAME", s.site.name)
    s.site.exits_path = os.getenv("SAFE_EXITS_FILE", s.site.exits_path)

    # 관측성
    s.observability.metrics_enabled = _b("METRICS_ENABLED", s.observability.metrics_enabled)
    s.observability.http_port = int(os.getenv("HTTP_PORT", s.observability.http_port))
    s.observability.log_level = os.getenv("LOG_LEVEL", s.observability.log_level)

    return s

def build_sink(s: Settings) -> AlertSinkPort:
    if s.notify.enabled and s.notify.gateway_url:
        return SmsGatewayNotifier(
            s.notify.gateway_url,
            s.notify.token,
            default_destination=s.notify.default_destination,
            timeout=s.notify.timeout_sec,
        )
    return LogNotifier()

async def main():
    s = build_settings()
    setup_logging_dev(s.observability.log_level)
    log = get_logger("pitguard.main")
    log.info(f"설정 로드 완료 site:{s.site.name}")

    monitor = SiteMonitor(s, sink=build_sink(s))

    exits = None
    if s.site.exits_path:
        exits = load_safe_exits(s.site.exits_path)
    monitor.seed(exits)
    log.info("사이트 감시 생성 완료")

    http_task = start_http(s, monitor)
    log.info(f"HTTP 서버 시작됨 port:{s.observability.http_port}")

    telemetry: Optional[TelemetryMqttIngestor] = None
    telemetry_task: Optional[asyncio.Task] = None
    if s.telemetry.enabled:
        telemetry = TelemetryMqttIngestor(
            host=s.telemetry.host,
            port=s.telemetry.port,
            topic=s.telemetry.topic,
            username=s.telemetry.username,
            password=s.telemetry.password,
            tls=s.telemetry.tls,
            client_id=s.telemetry.client_id,
            keepalive=s.telemetry.keepalive,
        )
        telemetry_task = asyncio.create_task(TelemetryPump(monitor).run(telemetry.recv()))
        log.info("텔레메트리 MQTT 수집 시작됨")

    stop = asyncio.Future()
    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try: loop.add_signal_handler(sig, lambda: (not stop.done()) and stop.set_result(True))
            except NotImplementedError: pass
    except RuntimeError: pass

    await stop
    log.info("종료 신호 수신")
    if telemetry:
        telemetry.stop()
    if telemetry_task:
        telemetry_task.cancel()
    await monitor.shutdown()
    http_task.cancel()

def run():
    asyncio.run(main())

if __name__ == "__main__":
    run()
