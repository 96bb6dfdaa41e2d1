"""REST endpoints over the ErrorService.

Handlers that touch the service are plain ``def`` functions: FastAPI runs
them in its thread pool, so the service lock never blocks the event loop.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

import structlog
from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from errwatch.api.schemas import (
    BatchReportResponse,
    ClearedResponse,
    ErrorIn,
    ErrorResponse,
    HealthResponse,
    RecordedResponse,
)
from errwatch.environment import UserAgentEnvironment
from errwatch.models.errors import RawError, Severity
from errwatch.service import ErrorService

_log = structlog.get_logger(component="api.routes")

router = APIRouter()


def _service(request: Request) -> ErrorService:
    return request.app.state.service


def _error(status_code: int, error: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=error, detail=detail).model_dump())


@router.get("/health", response_model=HealthResponse)
def health(request: Request) -> HealthResponse:
    from errwatch import __version__

    service = _service(request)
    return HealthResponse(
        status="ok",
        version=__version__,
        stored_records=len(service.records()),
        unresolved_alerts=len(service.alerts(resolved=False)),
    )


@router.post("/errors", response_model=RecordedResponse, status_code=201)
def record_error(body: ErrorIn, request: Request) -> RecordedResponse:
    service = _service(request)
    user_agent = body.user_agent or request.headers.get("user-agent")
    environment = UserAgentEnvironment(user_agent, page_path=body.page_path) if user_agent else None

    raw: Any = body.code if body.code else RawError(name=body.name, message=body.message, stack_trace=body.stack_trace)
    context = dict(body.context)
    if body.code and body.message:
        context.setdefault("detail", body.message)

    result = service.ingest(raw, context=context, environment=environment)
    return RecordedResponse(
        record_id=result.record.record_id,
        kind=result.record.kind,
        severity=result.record.severity.value,
        duplicate=result.duplicate,
    )


@router.get("/errors")
def list_errors(request: Request, severity: Severity | None = None) -> dict[str, Any]:
    records = _service(request).records(severity)
    return {"total": len(records), "records": [r.to_dict() for r in records]}


@router.delete("/errors", response_model=ClearedResponse)
def clear_errors(request: Request, severity: Severity | None = None) -> ClearedResponse:
    service = _service(request)
    if severity is not None:
        return ClearedResponse(removed=service.clear_by_severity(severity))
    return ClearedResponse(removed=service.clear())


@router.get("/stats")
def get_stats(request: Request, recent: int = Query(default=8, ge=0, le=100)) -> dict[str, Any]:
    return _service(request).stats(recent).to_dict()


@router.get("/stats/categories")
def get_category_stats(
    request: Request,
    range_ms: int = Query(default=24 * 60 * 60 * 1000, gt=0),
) -> dict[str, Any]:
    return asdict(_service(request).category_stats(range_ms))


@router.get("/trend")
def get_trend(
    request: Request,
    interval_ms: int = Query(default=60 * 60 * 1000, gt=0),
    range_ms: int = Query(default=24 * 60 * 60 * 1000, gt=0),
) -> Any:
    try:
        series = _service(request).trend(interval_ms, range_ms)
    except ValueError as exc:
        return _error(400, "INVALID_TREND_RANGE", str(exc))
    return {**asdict(series), "total": series.total}


@router.get("/alerts")
def list_alerts(
    request: Request,
    level: Severity | None = None,
    resolved: bool | None = None,
    since: int | None = Query(default=None, ge=0),
) -> dict[str, Any]:
    alerts = _service(request).alerts(level=level, resolved=resolved, since=since)
    return {"total": len(alerts), "alerts": [a.to_dict() for a in alerts]}


@router.post("/alerts/{alert_id}/resolve")
def resolve_alert(alert_id: str, request: Request) -> Any:
    alert = _service(request).resolve_alert(alert_id)
    if alert is None:
        return _error(404, "ALERT_NOT_FOUND", f"No alert with id {alert_id!r}")
    return alert.to_dict()


@router.delete("/alerts", response_model=ClearedResponse)
def clear_alerts(request: Request) -> ClearedResponse:
    return ClearedResponse(removed=_service(request).clear_alerts())


@router.post("/reports/batch", response_model=BatchReportResponse)
async def batch_report(request: Request, limit: int = Query(default=10, ge=1, le=100)) -> BatchReportResponse:
    sent = await _service(request).batch_report(limit)
    _log.info("batch_report_requested", limit=limit, sent=sent)
    return BatchReportResponse(sent=sent)
