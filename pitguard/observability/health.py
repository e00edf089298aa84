"""
HTTP endpoints for PitGuard observability.

This module builds the FastAPI application: health, readiness,
metrics and info endpoints for operational visibility, plus the
domain API router.
"""

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response, JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
import time
from pitguard.api.routes import build_router
from pitguard.orchestrators.site_monitor import SiteMonitor
from pitguard.observability import metrics as m
from pitguard.observability.logging_setup import get_logger
from pitguard.settings import Settings

log = get_logger("pitguard.http")

def create_app(settings: Settings, monitor: SiteMonitor) -> FastAPI:
    """FastAPI 애플리케이션을 생성합니다."""
    app = FastAPI(
        title=settings.observability.service_name,
        version=settings.observability.build_version,
        description="PitGuard Rockfall Hazard Monitoring Service"
    )

    @app.get("/health")
    async def health():
        """헬스 체크 엔드포인트"""
        return JSONResponse({
            "status": "ok",
            "service": settings.observability.service_name,
            "timestamp": time.time()
        })

    @app.get("/ready")
    async def ready():
        """레디니스 체크 엔드포인트 (구역이 하나 이상 있어야 준비 완료)"""
        zones = len(monitor.world.zones_snapshot())
        if not zones:
            return JSONResponse({
                "status": "not_ready",
                "service": settings.observability.service_name,
                "zones": 0,
            }, status_code=503)
        return JSONResponse({
            "status": "ready",
            "service": settings.observability.service_name,
            "zones": zones,
            "subscribers": monitor.channel.subscriber_count,
            "update_loop": monitor.loop.running,
            "timestamp": time.time()
        })

    @app.get("/metrics")
    async def metrics():
        """Prometheus 메트릭 엔드포인트"""
        if not settings.observability.metrics_enabled:
            raise HTTPException(status_code=503, detail="Metrics disabled")

        m.uptime_seconds.set(monitor.uptime)
        return Response(
            generate_latest(),
            media_type=CONTENT_TYPE_LATEST
        )

    @app.get("/info")
    async def info():
        """서비스 정보 엔드포인트"""
        return JSONResponse({
            "service": settings.observability.service_name,
            "version": settings.observability.build_version,
            "build_date": settings.observability.build_date,
            "site": settings.site.name,
            "uptime_seconds": int(monitor.uptime),
            "metrics_enabled": settings.observability.metrics_enabled,
            "simulation": settings.simulation.enabled,
            "log_level": settings.observability.log_level
        })

    @app.get("/")
    async def root():
        """루트 엔드포인트"""
        return JSONResponse({
            "service": settings.observability.service_name,
            "version": settings.observability.build_version,
            "endpoints": {
                "health": "/health",
                "ready": "/ready",
                "metrics": "/metrics",
                "info": "/info",
                "stream": "/api/stream",
                "predict": "/api/predict",
                "bootstrap": "/api/bootstrap"
            }
        })

    app.include_router(build_router(monitor, settings))
    return app
