"""
Fire-and-forget alert dispatch for PitGuard.

Hands alerts to the configured sink on background tasks so the caller
(update loop tick, drill, manual send) never waits on delivery. Delivery
failures are logged and counted, never raised to the caller.
"""

import asyncio
from typing import Optional, Set

from pitguard.core import errors
from pitguard.core.models import AlertItem
from pitguard.observability import metrics
from pitguard.observability.logging_setup import get_logger
from pitguard.ports.notify import AlertSinkPort

log = get_logger("pitguard.dispatch")

class AlertDispatcher:
    """경보 비동기 발송기"""

    def __init__(self, sink: AlertSinkPort, default_destination: Optional[str] = None):
        self.sink = sink
        self.default_destination = default_destination
        self._pending: Set[asyncio.Task] = set()

    def submit(self, alert: AlertItem, destination: Optional[str] = None) -> Optional[asyncio.Task]:
        """
        발송 태스크를 예약하고 즉시 반환합니다.

        실행 중인 이벤트 루프가 없으면 발송을 건너뜁니다.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.warning(f"이벤트 루프 없음, 경보 발송 생략 alert:{alert.id}")
            return None

        task = loop.create_task(self.deliver(alert, destination or self.default_destination))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def deliver(self, alert: AlertItem, destination: Optional[str]) -> bool:
        """발송을 수행하고 성공 여부를 반환합니다 (예외를 올리지 않음)."""
        try:
            await self.sink.send(alert, destination)
        except errors.DeliverySinkFailure as e:
            metrics.notify_failures.inc()
            log.error(f"경보 발송 실패 alert:{alert.id} to:{destination} error:{e}")
            return False
        log.info(f"경보 발송됨 alert:{alert.id} to:{destination}")
        return True

    async def drain(self) -> None:
        """대기 중인 발송 태스크가 끝날 때까지 기다립니다."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._pending)
