"""FastAPI surface: provider callbacks, job management and run inspection."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
import json
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from config import get_server_settings
from core import Job, Run, SourceKind
from orchestrator.registry import JobCreate, JobUpdate
from utils.exceptions import (
    BadRequestError,
    ForbiddenError,
    MentionFlowError,
    NotFoundError,
    PersistenceError,
    ProviderError,
)
from utils.logger import get_logger
from webapp.runtime import get_service


logger = get_logger(__name__)

ERROR_STATUS = (
    (NotFoundError, 404),
    (ForbiddenError, 403),
    (BadRequestError, 400),
    (ProviderError, 502),
    (PersistenceError, 500),
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    service = get_service()
    await service.start()
    try:
        yield
    finally:
        await service.shutdown()


app = FastAPI(title="MentionFlow API", lifespan=lifespan)


def _status_for(exc: MentionFlowError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


@app.exception_handler(MentionFlowError)
async def _handle_mentionflow_error(_: Request, exc: MentionFlowError) -> JSONResponse:
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error("request failed status=%s error=%s", status_code, exc)
    return JSONResponse(status_code=status_code, content={"error": exc.message, "details": exc.details})


def _tenant(value: Optional[str]) -> str:
    text = str(value or "").strip()
    if not text:
        raise HTTPException(status_code=401, detail="X-Tenant-Id header is required")
    return text


class JobPayload(BaseModel):
    brand_id: str
    name: str
    source_kind: SourceKind
    config: Dict[str, Any] = Field(default_factory=dict)
    schedule_cron: Optional[str] = None
    is_active: bool = True

    @field_validator("brand_id", "name")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("value is required")
        return text


def _job_out(job: Job) -> Dict[str, Any]:
    return job.model_dump(mode="json")


def _run_out(run: Run) -> Dict[str, Any]:
    return run.model_dump(mode="json")


@app.get("/api/health")
def health() -> Dict[str, Any]:
    service = get_service()
    return {
        "ok": True,
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "provider": service.provider.name,
        "enrichment_enabled": service.fan_out is not None,
        "enrichment_queue_depth": service.queue.size(),
        "enrichment_dropped": service.queue.dropped,
    }


@app.post(get_server_settings().webhook_path)
async def provider_callback(request: Request) -> Dict[str, Any]:
    try:
        raw = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise BadRequestError("Invalid webhook payload: body is not JSON") from exc
    outcome = await get_service().gateway.handle_payload(raw)
    return outcome.model_dump(mode="json", exclude_none=True)


@app.post("/api/jobs")
async def create_job(payload: JobPayload, x_tenant_id: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    tenant_id = _tenant(x_tenant_id)
    job = await get_service().registry.create(tenant_id, JobCreate(**payload.model_dump()))
    return {"job": _job_out(job)}


@app.get("/api/jobs")
async def list_jobs(
    brand_id: Optional[str] = None,
    x_tenant_id: Optional[str] = Header(default=None),
) -> Dict[str, List[Dict[str, Any]]]:
    tenant_id = _tenant(x_tenant_id)
    jobs = await get_service().registry.list(tenant_id, brand_id)
    return {"jobs": [_job_out(job) for job in jobs]}


@app.get("/api/jobs/stats")
async def job_stats(x_tenant_id: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    tenant_id = _tenant(x_tenant_id)
    return {"stats": await get_service().registry.stats(tenant_id)}


@app.get("/api/jobs/{job_id}")
async def get_job(job_id: str, x_tenant_id: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    tenant_id = _tenant(x_tenant_id)
    job = await get_service().registry.find(job_id, tenant_id)
    return {"job": _job_out(job)}


@app.patch("/api/jobs/{job_id}")
async def update_job(
    job_id: str,
    payload: JobUpdate,
    x_tenant_id: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    tenant_id = _tenant(x_tenant_id)
    job = await get_service().registry.update(job_id, tenant_id, payload)
    return {"job": _job_out(job)}


@app.delete("/api/jobs/{job_id}")
async def delete_job(job_id: str, x_tenant_id: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    tenant_id = _tenant(x_tenant_id)
    await get_service().registry.delete(job_id, tenant_id)
    return {"ok": True, "job_id": job_id}


@app.post("/api/jobs/{job_id}/toggle")
async def toggle_job(job_id: str, x_tenant_id: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    tenant_id = _tenant(x_tenant_id)
    job = await get_service().registry.toggle_active(job_id, tenant_id)
    return {"job": _job_out(job)}


@app.post("/api/jobs/{job_id}/trigger")
async def trigger_job(job_id: str, x_tenant_id: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    tenant_id = _tenant(x_tenant_id)
    run = await get_service().registry.trigger(job_id, tenant_id)
    return {"run": _run_out(run)}


@app.get("/api/jobs/{job_id}/runs")
async def list_job_runs(
    job_id: str,
    limit: int = 10,
    x_tenant_id: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    tenant_id = _tenant(x_tenant_id)
    runs = await get_service().registry.list_runs(job_id, tenant_id, limit=max(1, min(limit, 100)))
    return {"runs": [_run_out(run) for run in runs]}


@app.post("/api/runs/reconcile")
async def reconcile_runs(older_than_seconds: int = 0) -> Dict[str, Any]:
    older_than = timedelta(seconds=older_than_seconds) if older_than_seconds > 0 else None
    results = await get_service().gateway.reconcile_stale_runs(older_than)
    return {"results": [{"run_id": item.run_id, "action": item.action, "detail": item.detail} for item in results]}
