"""
Server-Sent Events client for PitGuard.

This module reads the live feed of a remote PitGuard service over
``GET /api/stream`` and fetches ``GET /api/bootstrap`` snapshots. It is
the transport used by ``StreamSubscriber``: every transport failure is
raised as ``StreamDisconnect`` so the subscriber can back off and
reconnect.
"""

import asyncio
import aiohttp
from typing import List, Optional

from pitguard.core import errors
from pitguard.core.models import BootstrapSnapshot
from pitguard.observability.logging_setup import get_logger
from pitguard.stream.events import StreamEvent, decode

log = get_logger("pitguard.sse_client")

class SseEventStream:
    """SSE 응답 하나를 이벤트 비동기 이터레이터로 감쌉니다."""

    def __init__(self, session: aiohttp.ClientSession, response: aiohttp.ClientResponse):
        self.session = session
        self.response = response
        self._data: List[str] = []

    def __aiter__(self):
        return self

    async def __anext__(self) -> StreamEvent:
        while True:
            try:
                raw = await self.response.content.readline()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise errors.StreamDisconnect(f"stream read failed: {e}") from e
            if not raw:
                raise errors.StreamDisconnect("stream closed by server")

            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if line.startswith(":"):
                # 주석 (connected / heartbeat)
                continue
            if line.startswith("data:"):
                self._data.append(line[5:].lstrip())
                continue
            if line == "" and self._data:
                payload, self._data = "\n".join(self._data), []
                try:
                    return decode(payload)
                except ValueError as e:
                    log.warning(f"알 수 없는 이벤트 무시: {e}")

    def close(self) -> None:
        self.response.close()

    async def aclose(self) -> None:
        self.response.close()
        await self.session.close()

class SseStreamClient:
    """원격 PitGuard 실시간 피드 클라이언트"""

    def __init__(self, base_url: str, *, timeout: int = 10, token: Optional[str] = None):
        """
        초기화합니다.

        Args:
            base_url: 서비스 기본 URL (예: http://localhost:8099)
            timeout: 연결/부트스트랩 요청 타임아웃 (초)
            token: 인증 토큰 (Bearer)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {"Authorization": f"Bearer {token}"} if token else {}

    async def connect(self) -> SseEventStream:
        """
        스트림에 연결합니다.

        Raises:
            StreamDisconnect: 연결 실패
        """
        session = aiohttp.ClientSession(
            headers={**self.headers, "Accept": "text/event-stream"},
            timeout=aiohttp.ClientTimeout(total=None, sock_connect=self.timeout),
        )
        try:
            response = await session.get(f"{self.base_url}/api/stream")
            response.raise_for_status()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            await session.close()
            raise errors.StreamDisconnect(f"connect failed: {e}") from e
        log.info(f"SSE 스트림 연결됨 url:{self.base_url}")
        return SseEventStream(session, response)

    async def bootstrap(self) -> BootstrapSnapshot:
        """
        전체 상태 스냅샷을 가져옵니다.

        Raises:
            StreamDisconnect: 요청 실패
        """
        try:
            async with aiohttp.ClientSession(
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as session:
                async with session.get(f"{self.base_url}/api/bootstrap") as response:
                    response.raise_for_status()
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise errors.StreamDisconnect(f"bootstrap failed: {e}") from e
        return BootstrapSnapshot.model_validate(data)
