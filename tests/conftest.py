"""
테스트 설정 및 픽스처

이 모듈은 pytest 설정과 공통 픽스처를 제공합니다.
"""

import pytest
import asyncio
import tempfile
import os
from unittest.mock import AsyncMock
from pitguard.settings import Settings
from pitguard.core.models import LatLng, SensorReading

# 2025-06-01T00:00:00Z
T0 = 1748736000000


class FakeClock:
    """테스트용 고정 시계 (epoch ms)"""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock():
    """테스트용 시계"""
    return FakeClock()


@pytest.fixture
def temp_file_path():
    """임시 파일 경로"""
    with tempfile.NamedTemporaryFile(delete=False) as f:
        temp_path = f.name
    yield temp_path
    # 테스트 후 파일 정리
    if os.path.exists(temp_path):
        os.unlink(temp_path)


@pytest.fixture
def sample_settings():
    """테스트용 설정 (시뮬레이션 비활성)"""
    settings = Settings()
    settings.observability.service_name = "test-service"
    settings.observability.build_version = "1.0.0"
    settings.observability.log_level = "INFO"
    settings.observability.http_port = 8080
    settings.simulation.enabled = False
    return settings


@pytest.fixture
def mock_sink():
    """테스트용 경보 발송 싱크"""
    sink = AsyncMock()
    sink.send = AsyncMock(return_value=None)
    return sink


@pytest.fixture
def square():
    """테스트용 정사각형 폴리곤 (경도 135.0~135.1, 위도 -24.7~-24.6)"""
    return [
        LatLng(lat=-24.7, lng=135.0),
        LatLng(lat=-24.7, lng=135.1),
        LatLng(lat=-24.6, lng=135.1),
        LatLng(lat=-24.6, lng=135.0),
    ]


def make_reading(zone_id: str, ts: int = T0, **overrides) -> SensorReading:
    """기준값 측정값을 만들고 일부 채널을 덮어씁니다."""
    values = dict(
        displacement=2.0,
        strain=20.0,
        pore_pressure=10.0,
        rainfall=0.0,
        temperature=20.0,
        vibration=0.5,
    )
    values.update(overrides)
    return SensorReading(timestamp=ts, zone_id=zone_id, **values)


@pytest.fixture
def reading_factory():
    """측정값 생성 함수"""
    return make_reading


# pytest 설정
def pytest_configure(config):
    """pytest 설정"""
    config.addinivalue_line(
        "markers", "asyncio: 비동기 테스트 마커"
    )
    config.addinivalue_line(
        "markers", "slow: 느린 테스트 마커"
    )
    config.addinivalue_line(
        "markers", "integration: 통합 테스트 마커"
    )


def pytest_collection_modifyitems(config, items):
    """테스트 아이템 수정"""
    for item in items:
        # 비동기 테스트에 asyncio 마커 추가
        if asyncio.iscoroutinefunction(getattr(item, "function", None)):
            item.add_marker(pytest.mark.asyncio)

        # 통합 테스트 마커 추가
        if "integration" in item.name:
            item.add_marker(pytest.mark.integration)
