"""
Telemetry MQTT ingestion adapter for PitGuard.

This module provides the subscriber that feeds field telemetry
(worker tags, geotech readings, environment, drone crack index)
into the ingestion operations.
"""

from .client_async import TelemetryMqttIngestor, decode_payload, topic_kind

__all__ = ["TelemetryMqttIngestor", "decode_payload", "topic_kind"]
