"""
Reconnecting stream subscriber for PitGuard.

Consumes the live feed through any transport that yields typed stream
events. A dropped connection is retried with exponential backoff
(reset after each successful connect). If a fresh connection stays
silent past the stall grace window, one bootstrap snapshot is pulled
and applied before live events resume.
"""

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Optional

from pitguard.common.retry import Backoff
from pitguard.core import errors
from pitguard.core.models import BootstrapSnapshot
from pitguard.observability.logging_setup import get_logger
from pitguard.ports.stream import StreamSourcePort
from pitguard.settings import Stream as StreamSettings
from pitguard.stream.events import StreamEvent
from pitguard.stream.live_state import LiveState

log = get_logger("pitguard.subscriber")

Connect = Callable[[], Awaitable[AsyncIterator[StreamEvent]]]
Bootstrap = Callable[[], Awaitable[BootstrapSnapshot]]

# 전송 계층 끊김으로 간주하는 예외
TRANSPORT_ERRORS = (errors.StreamDisconnect, ConnectionError, OSError, asyncio.TimeoutError)

class StreamSubscriber:
    """재접속/부트스트랩을 담당하는 구독 핸들러"""

    def __init__(self,
                 connect: Connect,
                 bootstrap: Bootstrap,
                 state: Optional[LiveState] = None,
                 *,
                 backoff: Optional[Backoff] = None,
                 stall_grace_sec: float = 5.0,
                 on_event: Optional[Callable[[StreamEvent], None]] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """
        초기화합니다.

        Args:
            connect: 연결 후 이벤트 비동기 이터레이터를 돌려주는 함수
            bootstrap: 전체 상태 스냅샷을 가져오는 함수
            state: 이벤트를 반영할 상태 (None 이면 새로 생성)
            backoff: 재접속 지연 정책 (기본 1초, ×1.8, 최대 30초)
            stall_grace_sec: 접속 직후 이벤트 대기 유예 시간
            on_event: 이벤트 반영 후 호출할 콜백
            sleep: 대기 함수 (테스트 주입용)
        """
        self.connect = connect
        self.bootstrap = bootstrap
        self.state = state or LiveState()
        self.backoff = backoff or Backoff(1.0, 1.8, 30.0)
        self.stall_grace_sec = stall_grace_sec
        self.on_event = on_event
        self._sleep = sleep
        self._running = False
        self._stream = None
        self.connections = 0
        self.bootstraps = 0

    @classmethod
    def for_source(cls,
                   source: StreamSourcePort,
                   settings: Optional[StreamSettings] = None,
                   **kwargs) -> "StreamSubscriber":
        """스트림 소스와 설정값으로 구독 핸들러를 생성합니다."""
        s = settings or StreamSettings()
        return cls(
            source.connect,
            source.bootstrap,
            backoff=Backoff(s.backoff_initial_sec, s.backoff_factor, s.backoff_max_sec),
            stall_grace_sec=s.stall_grace_sec,
            **kwargs,
        )

    async def run(self) -> None:
        """중지될 때까지 접속/수신/재접속을 반복합니다."""
        self._running = True
        while self._running:
            try:
                self._stream = await self.connect()
            except TRANSPORT_ERRORS as e:
                log.warning(f"스트림 연결 실패: {e}")
                await self._wait_before_reconnect()
                continue

            self.connections += 1
            self.backoff.reset()
            log.info(f"스트림 연결됨 (연결 횟수 {self.connections})")

            try:
                await self._consume(self._stream)
            except TRANSPORT_ERRORS as e:
                log.warning(f"스트림 끊김: {e}")
            finally:
                await self._close_stream()

            if self._running:
                await self._wait_before_reconnect()

    async def _consume(self, stream: AsyncIterator[StreamEvent]) -> None:
        it = stream.__aiter__()
        first = asyncio.ensure_future(it.__anext__())

        try:
            done, _ = await asyncio.wait({first}, timeout=self.stall_grace_sec)
            if not done:
                log.info(f"{self.stall_grace_sec}초 동안 이벤트 없음, 부트스트랩 스냅샷 요청")
                await self._bootstrap()
        finally:
            if not first.done() and not self._running:
                first.cancel()

        try:
            event = await first
        except StopAsyncIteration:
            return
        self._handle(event)

        while self._running:
            try:
                event = await it.__anext__()
            except StopAsyncIteration:
                return
            self._handle(event)

    async def _bootstrap(self) -> None:
        try:
            snap = await self.bootstrap()
        except TRANSPORT_ERRORS as e:
            log.warning(f"부트스트랩 실패: {e}")
            return
        self.bootstraps += 1
        self.state.apply_bootstrap(snap)

    def _handle(self, event: StreamEvent) -> None:
        self.state.apply(event)
        if self.on_event:
            self.on_event(event)

    async def _wait_before_reconnect(self) -> None:
        if not self._running:
            return
        delay = self.backoff.next_delay()
        log.info(f"{delay:.1f}초 후 재접속")
        await self._sleep(delay)

    async def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        if hasattr(stream, "aclose"):
            await stream.aclose()
        elif hasattr(stream, "close"):
            stream.close()

    def stop(self) -> None:
        """수신을 중지합니다. 닫을 수 있는 스트림이면 즉시 닫습니다."""
        self._running = False
        if self._stream is not None and hasattr(self._stream, "close"):
            self._stream.close()
