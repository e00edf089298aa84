"""
HTTP server runner for PitGuard.

This module wraps uvicorn so the API can run as a task inside the
service event loop, next to the telemetry pump.
"""

import asyncio
import uvicorn
from pitguard.observability.health import create_app
from pitguard.observability.logging_setup import get_logger
from pitguard.orchestrators.site_monitor import SiteMonitor
from pitguard.settings import Settings

log = get_logger("pitguard.observability")

def build_server(settings: Settings, monitor: SiteMonitor, host: str = "0.0.0.0", port: int = None) -> uvicorn.Server:
    """
    uvicorn 서버를 구성합니다.

    Args:
        settings: 애플리케이션 설정
        monitor: 사이트 감시 파사드
        host: 바인딩할 호스트
        port: 바인딩할 포트 (None이면 설정에서 가져옴)
    """
    if port is None:
        port = settings.observability.http_port

    app = create_app(settings, monitor)
    log.info(f"HTTP 서버 구성 host:{host} port:{port}")
    return uvicorn.Server(uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level=settings.observability.log_level.lower(),
        access_log=True,
    ))

def start_http(settings: Settings, monitor: SiteMonitor) -> asyncio.Task:
    """HTTP 서버를 백그라운드 태스크로 시작합니다."""
    return asyncio.create_task(build_server(settings, monitor).serve())
