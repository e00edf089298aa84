"""
HTTP API for PitGuard.

This module exposes the site monitor over FastAPI: ingestion,
prediction and supervisor queries, operator commands, report exports
and the Server-Sent Events live feed. Domain errors map to 400
(validation, invalid thresholds) and 404 (unknown zone or device).
"""

import asyncio
from typing import AsyncIterator, Callable, Optional

from fastapi import APIRouter, Body, HTTPException, Query
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

from pitguard.api.exports import events_csv, sensors_csv
from pitguard.core import errors
from pitguard.core.models import MaintenanceRequest
from pitguard.observability.logging_setup import get_logger
from pitguard.orchestrators.site_monitor import SiteMonitor
from pitguard.settings import Settings
from pitguard.stream.broadcast import Subscription
from pitguard.stream.events import encode

log = get_logger("pitguard.api")

OK = {"ok": True}

def _http_error(e: errors.PitGuardError) -> HTTPException:
    if isinstance(e, errors.NotFound):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))

async def sse_frames(subscribe: Callable[[], Subscription], keepalive_sec: float) -> AsyncIterator[str]:
    """
    구독을 SSE 프레임으로 변환합니다.

    구독은 첫 프레임을 보낼 때 생성합니다.
    이벤트가 keepalive_sec 동안 없으면 heartbeat 주석을 보냅니다.
    클라이언트가 끊기면 구독을 해제합니다.
    """
    sub = subscribe()
    try:
        yield ": connected\n\n"
        while True:
            try:
                event = await asyncio.wait_for(sub.get(), timeout=keepalive_sec)
            except asyncio.TimeoutError:
                yield ": heartbeat\n\n"
                continue
            except StopAsyncIteration:
                return
            except errors.StreamDisconnect as e:
                log.warning(f"SSE 구독 종료 id:{sub.id} reason:{e}")
                return
            yield f"data: {encode(event)}\n\n"
    finally:
        sub.close()

def build_router(monitor: SiteMonitor, settings: Settings) -> APIRouter:
    """도메인 API 라우터를 생성합니다."""
    router = APIRouter(prefix="/api")

    # ---- 실시간 스트림 ----

    @router.get("/stream")
    async def stream():
        """Server-Sent Events 실시간 피드"""
        return StreamingResponse(
            sse_frames(monitor.subscribe, settings.stream.keepalive_sec),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    # ---- 예측/조회 ----

    @router.get("/predict")
    async def predict():
        return JSONResponse(monitor.prediction().wire())

    @router.get("/predict/summary")
    async def predict_summary():
        return JSONResponse(monitor.summary())

    @router.get("/evacuation-alerts")
    async def evacuation_alerts():
        return JSONResponse([a.model_dump(mode="json") for a in monitor.evacuation_alerts()])

    @router.get("/risk-assessment")
    async def risk_assessment():
        return JSONResponse([i.model_dump(mode="json") for i in monitor.risk_assessment()])

    @router.get("/occupancy")
    async def occupancy():
        return JSONResponse([o.wire() for o in monitor.occupancy()])

    @router.get("/alerts")
    async def list_alerts(limit: Optional[int] = Query(default=None, ge=1)):
        return JSONResponse({"alerts": [a.wire() for a in monitor.alerts(limit)]})

    def _events(zone, worker, status, severity, from_, to):
        return monitor.events(zone=zone, worker=worker, status=status, severity=severity,
                              from_iso=from_, to_iso=to)

    @router.get("/events")
    async def list_events(zone: Optional[str] = None,
                          worker: Optional[str] = None,
                          status: Optional[str] = None,
                          severity: Optional[str] = None,
                          from_: Optional[str] = Query(default=None, alias="from"),
                          to: Optional[str] = None):
        events = _events(zone, worker, status, severity, from_, to)
        return JSONResponse({"events": [e.model_dump(mode="json") for e in events]})

    @router.get("/events.csv")
    async def export_events(zone: Optional[str] = None,
                            worker: Optional[str] = None,
                            status: Optional[str] = None,
                            severity: Optional[str] = None,
                            from_: Optional[str] = Query(default=None, alias="from"),
                            to: Optional[str] = None):
        return PlainTextResponse(
            events_csv(_events(zone, worker, status, severity, from_, to)),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="events.csv"'},
        )

    @router.get("/sensors")
    async def list_sensors():
        return JSONResponse({"sensors": [s.model_dump(mode="json") for s in monitor.sensors()]})

    @router.get("/sensors/stats")
    async def sensor_stats():
        return JSONResponse(monitor.sensor_stats().model_dump(mode="json"))

    @router.get("/sensors.csv")
    async def export_sensors():
        return PlainTextResponse(
            sensors_csv(monitor.sensors()),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="sensors.csv"'},
        )

    @router.get("/thresholds")
    async def get_thresholds():
        return JSONResponse(monitor.thresholds().model_dump())

    @router.get("/bootstrap")
    async def bootstrap():
        return JSONResponse(monitor.bootstrap().wire())

    # ---- 수집 ----

    @router.post("/ingest/{kind}")
    async def ingest(kind: str, payload: dict = Body(default={})):
        routes = {
            "dem": monitor.ingest_dem,
            "drone": monitor.ingest_drone,
            "geotech": monitor.ingest_geotech,
            "environment": monitor.ingest_environment,
            "worker": monitor.ingest_worker,
        }
        handler = routes.get(kind)
        if handler is None:
            raise HTTPException(status_code=404, detail=f"unknown ingestion kind: {kind}")
        try:
            handler(payload)
        except errors.ValidationError as e:
            raise _http_error(e)
        return OK

    # ---- 명령 ----

    @router.post("/sites")
    async def create_site(payload: dict = Body(default={})):
        try:
            zone = monitor.create_site(payload)
        except errors.ValidationError as e:
            raise _http_error(e)
        return JSONResponse(zone.wire(), status_code=201)

    @router.put("/thresholds")
    async def put_thresholds(payload: dict = Body(default={})):
        try:
            t = monitor.set_thresholds(payload)
        except (errors.ValidationError, errors.InvalidConfig) as e:
            raise _http_error(e)
        return JSONResponse(t.model_dump())

    @router.post("/drill")
    async def drill(payload: dict = Body(default={})):
        try:
            alert = monitor.mock_drill(payload)
        except (errors.ValidationError, errors.NotFound, errors.InvalidConfig) as e:
            raise _http_error(e)
        return JSONResponse({"ok": True, "alert": alert.wire()})

    @router.post("/alerts")
    async def send_alert(payload: dict = Body(default={})):
        try:
            monitor.send_alert(payload)
        except errors.ValidationError as e:
            raise _http_error(e)
        return OK

    @router.post("/sensors/{sensor_id}/fault")
    async def sensor_fault(sensor_id: str):
        try:
            snap = monitor.inject_sensor_fault(sensor_id)
        except errors.NotFound as e:
            raise _http_error(e)
        return JSONResponse(snap.model_dump(mode="json"))

    @router.post("/sensors/{sensor_id}/maintenance")
    async def sensor_maintenance(sensor_id: str, payload: dict = Body(default={})):
        try:
            body = MaintenanceRequest.model_validate(payload)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        try:
            snap = monitor.set_sensor_maintenance(sensor_id, body.enabled)
        except errors.NotFound as e:
            raise _http_error(e)
        return JSONResponse(snap.model_dump(mode="json"))

    return router
