"""
Adapters for PitGuard hexagonal architecture.

This module contains the concrete implementations of port interfaces
that handle external I/O and infrastructure concerns.
"""

from .notify import LogNotifier, SmsGatewayNotifier
from .mqtt_telemetry.client_async import TelemetryMqttIngestor
from .sse_client import SseStreamClient
from .exits_file import load_safe_exits

__all__ = ["LogNotifier", "SmsGatewayNotifier", "TelemetryMqttIngestor", "SseStreamClient", "load_safe_exits"]
