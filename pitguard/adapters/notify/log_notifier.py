"""
Log-only alert sink.

Used when no SMS gateway is configured: the alert is written to the
service log instead of being delivered.
"""

from typing import Optional

from pitguard.core.models import AlertItem
from pitguard.observability.logging_setup import get_logger

log = get_logger("pitguard.notify")

def format_alert_text(alert: AlertItem) -> str:
    """발송용 경보 문구: '<메시지>. Actions: a; b'"""
    return f"{alert.message}. Actions: {'; '.join(alert.actions)}"

class LogNotifier:
    """로그 전용 경보 싱크"""

    def __init__(self):
        self.sent = 0

    async def send(self, alert: AlertItem, destination: Optional[str] = None) -> None:
        self.sent += 1
        log.warning(f"ALERT zone:{alert.zone_id} level:{alert.level} to:{destination} text:{format_alert_text(alert)}")
