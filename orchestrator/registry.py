"""Job registry: tenant-scoped CRUD and the run trigger."""

from __future__ import annotations

from datetime import timedelta
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from config import Settings, get_settings
from core import INTERNAL_KINDS, Job, Run, RunStatus, SourceKind, parse_source_config, utcnow
from scrapers import BaseScrapingProvider
from storage import MentionStore
from utils.exceptions import (
    BadRequestError,
    ForbiddenError,
    MentionFlowError,
    NotFoundError,
    PersistenceError,
    ProviderError,
)
from utils.logger import emit_event


logger = logging.getLogger(__name__)

START_FAILURE_PREFIX = "Failed to start scraper run"


class JobCreate(BaseModel):
    brand_id: str
    name: str = Field(min_length=1)
    source_kind: SourceKind
    config: Dict[str, Any] = Field(default_factory=dict)
    schedule_cron: Optional[str] = None
    is_active: bool = True


class JobUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    config: Optional[Dict[str, Any]] = None
    schedule_cron: Optional[str] = None
    is_active: Optional[bool] = None


class JobRegistry:
    """Owns job definitions and starts runs against the scraping provider."""

    def __init__(
        self,
        *,
        store: MentionStore,
        provider: BaseScrapingProvider,
        settings: Optional[Settings] = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._settings = settings or get_settings()

    @property
    def callback_url(self) -> str:
        return self._settings.callback_url

    # ---- CRUD ----

    async def create(self, tenant_id: str, payload: JobCreate) -> Job:
        if payload.source_kind in INTERNAL_KINDS:
            raise BadRequestError(f"Source kind {payload.source_kind.value} cannot be scheduled directly")
        parse_source_config(payload.source_kind, payload.config)

        existing = await self._store.find_job(tenant_id, payload.brand_id, payload.source_kind)
        if existing is not None:
            raise BadRequestError(
                f"A scraper job for {payload.source_kind.value} already exists for this brand",
                {"job_id": existing.id},
            )

        job = Job(
            tenant_id=tenant_id,
            brand_id=payload.brand_id,
            name=payload.name,
            source_kind=payload.source_kind,
            config=payload.config,
            schedule_cron=payload.schedule_cron or self._settings.pipeline.default_schedule_cron,
            is_active=payload.is_active,
        )
        created = await self._store.insert_job(job)
        emit_event("job.created", job_id=created.id, tenant_id=tenant_id, source_kind=created.source_kind.value)
        return created

    async def list(self, tenant_id: str, brand_id: Optional[str] = None) -> List[Job]:
        return await self._store.list_jobs(tenant_id, brand_id)

    async def find(self, job_id: str, tenant_id: str) -> Job:
        job = await self._store.get_job(job_id)
        # another tenant's job is reported as missing
        if job is None or job.tenant_id != tenant_id:
            raise NotFoundError("Scraper job not found", {"job_id": job_id})
        return job

    async def update(self, job_id: str, tenant_id: str, payload: JobUpdate) -> Job:
        job = await self.find(job_id, tenant_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        if "config" in changes:
            parse_source_config(job.source_kind, changes["config"])
        if not changes:
            return job
        return await self._store.update_job(job.id, **changes)

    async def toggle_active(self, job_id: str, tenant_id: str) -> Job:
        job = await self.find(job_id, tenant_id)
        updated = await self._store.update_job(job.id, is_active=not job.is_active)
        emit_event("job.toggled", job_id=job.id, tenant_id=tenant_id, is_active=updated.is_active)
        return updated

    async def delete(self, job_id: str, tenant_id: str) -> None:
        job = await self.find(job_id, tenant_id)
        await self._store.delete_job(job.id)
        emit_event("job.deleted", job_id=job.id, tenant_id=tenant_id)

    async def list_runs(self, job_id: str, tenant_id: str, limit: int = 10) -> List[Run]:
        job = await self.find(job_id, tenant_id)
        return await self._store.list_runs(tenant_id=tenant_id, job_id=job.id, limit=limit)

    async def stats(self, tenant_id: str) -> Dict[str, int]:
        jobs = await self._store.list_jobs(tenant_id)
        since = utcnow() - timedelta(hours=24)
        recent = await self._store.list_runs(tenant_id=tenant_id, started_after=since)
        return {
            "total_jobs": len(jobs),
            "active_jobs": sum(1 for job in jobs if job.is_active),
            "runs_last_24h": len(recent),
            "failed_runs_last_24h": sum(1 for run in recent if run.status == RunStatus.FAILED),
        }

    # ---- trigger ----

    async def trigger(self, job_id: str, tenant_id: str, *, manual: bool = True) -> Run:
        """
        Start one external run for an active job.

        The run row is written as ``scheduled`` before the provider is called
        and moved to ``running`` once the provider hands back its run id. A
        provider rejection marks the run failed and is re-raised.
        """
        job = await self.find(job_id, tenant_id)
        if not job.is_active:
            raise ForbiddenError("Cannot trigger inactive job", {"job_id": job.id})

        callback_url = self.callback_url
        run = await self._store.insert_run(
            Run(
                job_id=job.id,
                tenant_id=tenant_id,
                status=RunStatus.SCHEDULED,
                started_at=utcnow(),
                metadata={"triggered_manually": manual, "webhook_url": callback_url},
            )
        )
        emit_event("run.scheduled", run_id=run.id, job_id=job.id, tenant_id=tenant_id, source_kind=job.source_kind.value)

        try:
            provider_run = await self._provider.start(job.source_kind, job.config, callback_url)
        except Exception as exc:
            await self._mark_start_failed(run, exc)
            if isinstance(exc, MentionFlowError):
                raise
            raise ProviderError(f"{START_FAILURE_PREFIX}: {exc}", provider=self._provider.name) from exc

        try:
            run = await self._store.update_run(
                run.id,
                status=RunStatus.RUNNING,
                external_run_id=provider_run.id,
                metadata_patch={
                    "external_run_id": provider_run.id,
                    "actor_id": provider_run.actor_id,
                    "provider": self._provider.name,
                },
            )
        except Exception as exc:
            await self._abort_orphan(provider_run.id, run)
            raise PersistenceError(
                "Failed to record started run",
                {"run_id": run.id, "external_run_id": provider_run.id, "error": str(exc)},
            ) from exc

        try:
            await self._store.update_job(job.id, last_run_at=utcnow())
        except Exception as exc:
            logger.warning("job stamp failed job_id=%s error=%s", job.id, exc)

        emit_event("run.started", run_id=run.id, job_id=job.id, external_run_id=provider_run.id)
        return run

    async def _mark_start_failed(self, run: Run, exc: Exception) -> None:
        reason = exc.message if isinstance(exc, MentionFlowError) else str(exc)
        try:
            await self._store.update_run(
                run.id,
                status=RunStatus.FAILED,
                finished_at=utcnow(),
                error_message=f"{START_FAILURE_PREFIX}: {reason}",
            )
        except Exception as update_exc:
            logger.error("could not mark run failed run_id=%s error=%s", run.id, update_exc)
        emit_event("run.start_failed", level=logging.ERROR, run_id=run.id, job_id=run.job_id, error=reason)

    async def _abort_orphan(self, external_run_id: str, run: Run) -> None:
        try:
            await self._provider.abort(external_run_id)
        except Exception as abort_exc:
            logger.error("orphan abort failed external_run_id=%s error=%s", external_run_id, abort_exc)
            emit_event(
                "run.orphan_abort_failed",
                level=logging.ERROR,
                run_id=run.id,
                external_run_id=external_run_id,
                error=abort_exc,
            )
            return
        emit_event("run.orphan_aborted", level=logging.WARNING, run_id=run.id, external_run_id=external_run_id)
