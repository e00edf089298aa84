"""
Broadcast channel for PitGuard.

Fans every published event out to all active subscriptions, in publish
order. Each subscription owns a bounded queue; publishing never waits on
a consumer. A subscriber whose queue overflows is dropped and sees a
``StreamDisconnect`` so it can reconnect and re-bootstrap.
"""

import asyncio
from typing import Callable, List, Optional

from pitguard.core import errors
from pitguard.observability import metrics
from pitguard.observability.logging_setup import get_logger
from pitguard.stream.events import StreamEvent

log = get_logger("pitguard.broadcast")

_DROPPED = object()
_CLOSED = object()

class Subscription:
    """구독자 한 명의 이벤트 큐"""

    def __init__(self, channel: "BroadcastChannel", sid: int, maxsize: int):
        self.channel = channel
        self.id = sid
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.dropped = False

    def _offer(self, event) -> bool:
        try:
            self.queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            return False

    def _terminate(self, marker) -> None:
        """큐를 비우고 종료 표식을 넣습니다."""
        while not self.queue.empty():
            self.queue.get_nowait()
        self.queue.put_nowait(marker)

    def _drop(self) -> None:
        self.dropped = True
        self._terminate(_DROPPED)

    async def get(self) -> StreamEvent:
        """
        다음 이벤트를 기다립니다.

        Raises:
            StreamDisconnect: 큐 초과로 채널에서 제외된 경우
            StopAsyncIteration: 구독자가 스스로 닫은 경우
        """
        if self.closed:
            raise StopAsyncIteration
        item = await self.queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if item is _DROPPED:
            self.closed = True
            raise errors.StreamDisconnect(f"subscriber {self.id} lagged and was dropped")
        return item

    def __aiter__(self):
        return self

    async def __anext__(self) -> StreamEvent:
        return await self.get()

    def close(self) -> None:
        """구독을 취소하고 채널 자원을 해제합니다."""
        if self.closed:
            return
        self.closed = True
        self._terminate(_CLOSED)
        self.channel.unsubscribe(self)

class BroadcastChannel:
    """
    이벤트 팬아웃 채널.

    Args:
        snapshot: 신규 구독자에게 가장 먼저 보낼 전체 구역 상태
        queue_maxsize: 구독자별 큐 크기
        on_active: 첫 구독자가 생겼을 때 호출 (업데이트 루프 시작)
        on_idle: 마지막 구독자가 떠났을 때 호출 (업데이트 루프 정지)
    """

    def __init__(self,
                 snapshot: Callable[[], StreamEvent],
                 *,
                 queue_maxsize: int = 256,
                 on_active: Optional[Callable[[], None]] = None,
                 on_idle: Optional[Callable[[], None]] = None):
        self._snapshot = snapshot
        self.queue_maxsize = queue_maxsize
        self.on_active = on_active
        self.on_idle = on_idle
        self._subs: List[Subscription] = []
        self._next_id = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)

    def subscribe(self) -> Subscription:
        """구독을 만들고 현재 구역 스냅샷을 첫 이벤트로 넣습니다."""
        self._next_id += 1
        sub = Subscription(self, self._next_id, max(2, self.queue_maxsize))
        sub._offer(self._snapshot())

        was_idle = not self._subs
        self._subs.append(sub)
        metrics.active_subscribers.set(len(self._subs))
        log.info(f"구독자 추가 id:{sub.id} total:{len(self._subs)}")

        if was_idle and self.on_active:
            self.on_active()
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if sub not in self._subs:
            return
        self._subs.remove(sub)
        metrics.active_subscribers.set(len(self._subs))
        log.info(f"구독자 제거 id:{sub.id} total:{len(self._subs)}")

        if not self._subs and self.on_idle:
            self.on_idle()

    def publish(self, event: StreamEvent) -> int:
        """
        모든 활성 구독자에게 이벤트를 전달합니다 (대기하지 않음).

        Returns:
            전달된 구독자 수
        """
        delivered = 0
        for sub in list(self._subs):
            if sub._offer(event):
                delivered += 1
                continue
            log.warning(f"느린 구독자 제외 id:{sub.id} queue:{sub.queue.qsize()}")
            metrics.subscribers_dropped.inc()
            sub._drop()
            self.unsubscribe(sub)
        metrics.events_published.labels(type=event.type).inc()
        return delivered
