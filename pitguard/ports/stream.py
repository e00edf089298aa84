"""
Live stream port interfaces.

This module defines the protocol a client-side stream transport
must satisfy to feed the reconnecting subscriber.
"""

from typing import AsyncIterator, Protocol
from pitguard.core.models import BootstrapSnapshot

class StreamSourcePort(Protocol):
    """실시간 이벤트 수신 포트 인터페이스"""

    async def connect(self) -> AsyncIterator:
        """
        스트림에 연결하고 이벤트 이터레이터를 반환합니다.

        Raises:
            StreamDisconnect: 연결 실패 또는 끊김
        """
        ...

    async def bootstrap(self) -> BootstrapSnapshot:
        """전체 상태 스냅샷을 가져옵니다."""
        ...
