"""
Alert sink port interface.

This module defines the protocol for outbound alert delivery
(SMS gateway, pager, log sink).
"""

from typing import Optional, Protocol
from pitguard.core.models import AlertItem

class AlertSinkPort(Protocol):
    """경보 발송 포트 인터페이스"""

    async def send(self, alert: AlertItem, destination: Optional[str] = None) -> None:
        """
        경보를 외부 채널로 발송합니다.

        Args:
            alert: 발송할 경보
            destination: 수신처 (None 이면 어댑터 기본값)

        Raises:
            DeliverySinkFailure: 발송 실패
        """
        ...
