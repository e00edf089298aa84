"""
Retry utilities for PitGuard.

This module provides retry and backoff utilities used by the
notification sink and the reconnecting stream subscriber.
"""

import asyncio
import random
from typing import Callable, Awaitable, TypeVar

T = TypeVar('T')

class Backoff:
    """
    재접속 지연 계산기.

    initial 에서 시작해 factor 배씩 늘어나며 max_delay 에서 멈춥니다.
    연결에 성공하면 reset() 으로 초기값으로 되돌립니다.
    """

    def __init__(self, initial: float = 1.0, factor: float = 1.8, max_delay: float = 30.0):
        self.initial = initial
        self.factor = factor
        self.max_delay = max_delay
        self.current = initial

    def next_delay(self) -> float:
        """이번 대기 시간을 반환하고 다음 값을 준비합니다."""
        delay = self.current
        self.current = min(self.max_delay, self.current * self.factor)
        return delay

    def reset(self) -> None:
        self.current = self.initial

async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    jitter: bool = True
) -> T:
    """
    지수 백오프와 함께 함수를 재시도합니다.

    Args:
        func: 재시도할 비동기 함수
        max_retries: 최대 재시도 횟수
        base_delay: 기본 지연 시간 (초)
        max_delay: 최대 지연 시간 (초)
        jitter: 지터 적용 여부

    Returns:
        함수 실행 결과

    Raises:
        마지막 시도에서 발생한 예외
    """
    last_exception = None

    for attempt in range(1, max_retries + 2):  # 최초 1회 + max_retries
        try:
            return await func()
        except Exception as e:
            last_exception = e

            if attempt > max_retries:
                break

            delay = min(max_delay, base_delay * (2 ** (attempt - 1)))
            if jitter:
                delay = delay * (0.5 + random.random() * 0.5)

            await asyncio.sleep(delay)

    raise last_exception
