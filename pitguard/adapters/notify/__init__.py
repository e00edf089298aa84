"""
Alert notification adapters for PitGuard.

This module provides the implementations of AlertSinkPort.
"""

from .log_notifier import LogNotifier, format_alert_text
from .sms_gateway import SmsGatewayNotifier

__all__ = ["LogNotifier", "SmsGatewayNotifier", "format_alert_text"]
