"""
Telemetry MQTT ingestion adapter for PitGuard.

Subscribes to the site telemetry topic tree and yields
``(kind, payload)`` pairs, where ``kind`` is the last topic segment
(``worker``, ``geotech``, ``environment``, ``drone``). Malformed
payloads are logged and skipped; a lost broker connection is retried
with backoff.
"""

import asyncio
import json
import ssl
from typing import AsyncIterator, Dict, Optional, Tuple

from aiomqtt import Client, MqttError, Will

from pitguard.common.retry import Backoff
from pitguard.observability.logging_setup import get_logger

log = get_logger("pitguard.mqtt_telemetry")

TELEMETRY_KINDS = ("worker", "geotech", "environment", "drone", "dem")

def topic_kind(topic: str) -> Optional[str]:
    """토픽 마지막 세그먼트를 수집 종류로 해석합니다."""
    kind = topic.rstrip("/").rsplit("/", 1)[-1]
    return kind if kind in TELEMETRY_KINDS else None

def decode_payload(raw: bytes) -> Optional[Dict]:
    """JSON 객체 페이로드만 허용합니다."""
    try:
        payload = json.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        log.error(f"문자열 디코딩 오류: {e}")
        return None
    except json.JSONDecodeError as e:
        log.error(f"JSON 파싱 오류: {e}")
        return None
    if not isinstance(payload, dict):
        log.error(f"JSON 객체가 아닌 페이로드: {type(payload).__name__}")
        return None
    return payload

class TelemetryMqttIngestor:
    """현장 텔레메트리 MQTT 수집 어댑터"""

    def __init__(
        self,
        host: str,
        port: int,
        topic: str,
        *,
        username: str | None = None,
        password: str | None = None,
        tls: bool = False,
        client_id: str | None = None,
        keepalive: int = 30,
        lwt_topic: str = "pitguard/state",
        lwt_payload: str = "offline",
        backoff: Backoff | None = None,
    ):
        self.host = host
        self.port = port
        self.topic = topic
        self.username = username
        self.password = password
        self.tls = tls
        self.client_id = client_id
        self.keepalive = keepalive
        self.lwt_topic = lwt_topic
        self.lwt_payload = lwt_payload
        self.backoff = backoff or Backoff(1.0, 1.8, 30.0)
        self._running = False

    def _client(self) -> Client:
        tls_context = ssl.create_default_context() if self.tls else None
        will = Will(
            topic=self.lwt_topic,
            payload=self.lwt_payload.encode("utf-8"),
            qos=1,
            retain=True,
        )
        return Client(
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            identifier=self.client_id,
            keepalive=self.keepalive,
            tls_context=tls_context,
            will=will,
        )

    async def recv(self) -> AsyncIterator[Tuple[str, Dict]]:
        self._running = True
        while self._running:
            try:
                async with self._client() as client:
                    await client.subscribe(self.topic)
                    self.backoff.reset()
                    log.info(f"MQTT 브로커 연결됨: {self.host}:{self.port} topic:{self.topic}")

                    async for message in client.messages:
                        if not self._running:
                            break
                        kind = topic_kind(message.topic.value)
                        if kind is None:
                            log.debug(f"처리하지 않는 토픽: {message.topic.value}")
                            continue
                        payload = decode_payload(message.payload)
                        if payload is not None:
                            yield kind, payload

            except MqttError as e:
                log.error(f"MQTT 오류: {e}")
                if self._running:
                    delay = self.backoff.next_delay()
                    log.info(f"{delay:.1f}초 후 재연결")
                    await asyncio.sleep(delay)

    def stop(self) -> None:
        self._running = False
        log.info("MQTT 수집 중지")
