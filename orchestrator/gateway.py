"""Completion gateway: provider callbacks drive runs to their terminal state."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from config import Settings, get_settings
from core import (
    BrandContext,
    CallbackEvent,
    CallbackEventKind,
    CallbackOutcome,
    Job,
    Run,
    RunStatus,
    utcnow,
)
from pipeline import EnrichmentFanOut, IngestionWriter
from scrapers import BaseScrapingProvider
from storage import MentionStore
from utils.exceptions import BadRequestError, MentionFlowError
from utils.logger import emit_event
from .chaining import DependentRunChainer, needs_chaining


logger = logging.getLogger(__name__)

APIFY_EVENT_TYPES: Dict[str, CallbackEventKind] = {
    "ACTOR.RUN.SUCCEEDED": CallbackEventKind.SUCCEEDED,
    "ACTOR.RUN.FAILED": CallbackEventKind.FAILED,
    "ACTOR.RUN.ABORTED": CallbackEventKind.ABORTED,
    "ACTOR.RUN.TIMED_OUT": CallbackEventKind.TIMED_OUT,
    "ACTOR.RUN.TIMED-OUT": CallbackEventKind.TIMED_OUT,
}

PROVIDER_TERMINAL_STATES: Dict[str, CallbackEventKind] = {
    "SUCCEEDED": CallbackEventKind.SUCCEEDED,
    "FAILED": CallbackEventKind.FAILED,
    "ABORTED": CallbackEventKind.ABORTED,
    "TIMED-OUT": CallbackEventKind.TIMED_OUT,
    "TIMED_OUT": CallbackEventKind.TIMED_OUT,
}

RECONCILE_FAILURE_PREFIX = "Run reconciliation failed"


def _event_kind(value: Any) -> CallbackEventKind:
    text = str(value or "").strip().lower().replace("-", "_")
    try:
        return CallbackEventKind(text)
    except ValueError as exc:
        raise BadRequestError(f"Unsupported event kind: {value}") from exc


def parse_callback_payload(raw: Any) -> Optional[CallbackEvent]:
    """
    Build a CallbackEvent from a callback body.

    Accepts the canonical ``{eventKind, externalRunHandle, timestamp}`` shape
    and the Apify webhook shape ``{eventType, eventData: {actorRunId}}``.
    Returns None for well-formed Apify events of a type we do not act on.
    Raises BadRequestError for anything structurally invalid.
    """
    if not isinstance(raw, dict):
        raise BadRequestError("Invalid webhook payload: expected a JSON object")

    if "eventType" in raw or "eventData" in raw:
        event_type = str(raw.get("eventType") or "").strip().upper()
        data = raw.get("eventData") if isinstance(raw.get("eventData"), dict) else {}
        handle = data.get("actorRunId")
        if not event_type or not handle:
            raise BadRequestError("Invalid webhook payload: eventType and eventData.actorRunId are required")
        kind = APIFY_EVENT_TYPES.get(event_type)
        if kind is None:
            logger.warning("unhandled webhook event type event_type=%s run=%s", event_type, handle)
            return None
        fields = {"event_kind": kind, "external_run_id": handle, "timestamp": raw.get("createdAt")}
    else:
        if not raw.get("eventKind") or not raw.get("externalRunHandle"):
            raise BadRequestError("Invalid callback payload: eventKind and externalRunHandle are required")
        fields = {
            "event_kind": _event_kind(raw.get("eventKind")),
            "external_run_id": raw.get("externalRunHandle"),
            "timestamp": raw.get("timestamp"),
        }

    try:
        return CallbackEvent(**fields)
    except ValidationError as exc:
        raise BadRequestError(
            "Invalid callback payload",
            {"errors": [err.get("msg", "") for err in exc.errors()]},
        ) from exc


@dataclass
class ReconcileResult:
    run_id: str
    action: str
    detail: str = ""


class CompletionGateway:
    """Applies completion events to runs and hands succeeded runs to ingestion."""

    def __init__(
        self,
        *,
        store: MentionStore,
        provider: BaseScrapingProvider,
        writer: IngestionWriter,
        fan_out: Optional[EnrichmentFanOut] = None,
        chainer: Optional[DependentRunChainer] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._provider = provider
        self._writer = writer
        self._fan_out = fan_out
        self._chainer = chainer or DependentRunChainer(
            store=store,
            provider=provider,
            callback_url=self._settings.callback_url,
            settings=self._settings.pipeline,
        )

    async def handle_payload(self, raw: Any) -> CallbackOutcome:
        event = parse_callback_payload(raw)
        if event is None:
            return CallbackOutcome(status="ignored", message="Unhandled event type")
        return await self.handle_callback(event)

    async def handle_callback(self, event: CallbackEvent) -> CallbackOutcome:
        """
        Move the run to its terminal state and, on success, ingest its data.

        Unknown runs are ignored without any write. Replaying the same event
        only refreshes receipt metadata, and data is re-ingested only when no
        earlier pass finished; a conflicting terminal event keeps the first
        status. Ingestion failures are recorded on the run and never
        raised, so the provider sees a delivered callback either way.
        """
        run = await self._store.find_run_by_external_id(event.external_run_id)
        if run is None:
            emit_event("callback.ignored", external_run_id=event.external_run_id, event_kind=event.event_kind.value)
            return CallbackOutcome(status="ignored", message="Scraper run not found")

        target = event.event_kind.terminal_status
        received_at = utcnow()
        receipt = {
            "webhook_received": True,
            "webhook_event": event.event_kind.value,
            "webhook_received_at": received_at.isoformat(),
        }

        if run.status.is_terminal and run.status != target:
            await self._store.update_run(
                run.id,
                metadata_patch={
                    "conflicting_webhook_event": event.event_kind.value,
                    "conflicting_webhook_received_at": received_at.isoformat(),
                },
            )
            emit_event(
                "callback.conflict",
                level=logging.WARNING,
                run_id=run.id,
                current=run.status.value,
                event_kind=event.event_kind.value,
            )
            return CallbackOutcome(
                status="ignored",
                message=f"Run already {run.status.value}",
                run_id=run.id,
                run_status=run.status,
            )

        changes: Dict[str, Any] = {}
        if run.status != target:
            changes["status"] = target
            changes["finished_at"] = event.timestamp or received_at
            if target == RunStatus.FAILED:
                changes["error_message"] = f"Scraper run {event.event_kind.value}"
        run = await self._store.update_run(run.id, metadata_patch=receipt, **changes)
        emit_event(
            "callback.received",
            run_id=run.id,
            event_kind=event.event_kind.value,
            run_status=run.status.value,
            duplicate=not changes,
        )

        if target != RunStatus.COMPLETED:
            return CallbackOutcome(
                status="processed",
                message="Run marked failed",
                run_id=run.id,
                run_status=run.status,
            )

        if not changes and run.metadata.get("data_processed"):
            return CallbackOutcome(
                status="processed",
                message="Run data already processed",
                run_id=run.id,
                run_status=run.status,
                inserted=0,
            )

        return await self._process_completed(run)

    async def _process_completed(self, run: Run) -> CallbackOutcome:
        try:
            job = await self._store.get_job(run.job_id)
            if job is None:
                raise BadRequestError(f"Job {run.job_id} for run {run.id} no longer exists")

            if needs_chaining(run, job):
                child = await self._chainer.chain(run, job)
                message = f"Dependent run {child.id} started" if child else "Dependent phase not started"
                return CallbackOutcome(status="processed", message=message, run_id=run.id, run_status=run.status)

            result = await self._writer.process_run(run, job)
            await self._store.update_run(
                run.id,
                metadata_patch={"data_processed": True, "data_processed_at": utcnow().isoformat()},
            )
        except Exception as exc:
            reason = exc.message if isinstance(exc, MentionFlowError) else str(exc)
            logger.error("run data processing failed run_id=%s error=%s", run.id, reason)
            await self._record_processing_error(run, reason)
            return CallbackOutcome(
                status="processed",
                message=f"Data processing failed: {reason}",
                run_id=run.id,
                run_status=run.status,
            )

        await self._schedule_enrichment(run, job, result.inserted)
        return CallbackOutcome(
            status="processed",
            message="Webhook processed successfully",
            run_id=run.id,
            run_status=run.status,
            inserted=result.processed,
        )

    async def _record_processing_error(self, run: Run, reason: str) -> None:
        try:
            await self._store.update_run(
                run.id,
                metadata_patch={
                    "data_processing_error": reason,
                    "data_processing_failed_at": utcnow().isoformat(),
                },
            )
        except Exception as exc:
            logger.error("could not record processing error run_id=%s error=%s", run.id, exc)
        emit_event("ingestion.failed", level=logging.ERROR, run_id=run.id, error=reason)

    async def _schedule_enrichment(self, run: Run, job: Job, inserted: List[Any]) -> None:
        if self._fan_out is None or not inserted:
            return
        try:
            brand = await self._store.get_brand(job.brand_id)
        except Exception as exc:
            logger.warning("brand lookup failed brand_id=%s error=%s", job.brand_id, exc)
            brand = None
        context = BrandContext(
            tenant_id=run.tenant_id,
            brand_id=job.brand_id,
            brand_name=brand.name if brand else None,
            industry_id=brand.industry_id if brand else None,
        )
        self._fan_out.fan_out(inserted, context, run_id=run.id)

    # ---- reconciliation ----

    async def reconcile_stale_runs(self, older_than: Optional[timedelta] = None) -> List[ReconcileResult]:
        """
        Resolve runs stuck in ``running`` whose callback never arrived.

        Terminal provider states are replayed through ``handle_callback``;
        runs the provider still reports as active are left alone; a failed
        status lookup marks the run failed.
        """
        if older_than is None:
            older_than = timedelta(seconds=self._settings.pipeline.stale_run_timeout_seconds)
        cutoff = utcnow() - older_than
        stale = await self._store.list_runs(status=RunStatus.RUNNING, started_before=cutoff)

        results: List[ReconcileResult] = []
        for run in stale:
            results.append(await self._reconcile_one(run))
        emit_event(
            "reconcile.completed",
            checked=len(results),
            replayed=sum(1 for item in results if item.action == "replayed"),
            failed=sum(1 for item in results if item.action == "failed"),
        )
        return results

    async def _reconcile_one(self, run: Run) -> ReconcileResult:
        if not run.external_run_id:
            return await self._fail_reconcile(run, "missing external run id")
        try:
            provider_run = await self._provider.status(run.external_run_id)
        except Exception as exc:
            reason = exc.message if isinstance(exc, MentionFlowError) else str(exc)
            return await self._fail_reconcile(run, reason)

        kind = PROVIDER_TERMINAL_STATES.get(provider_run.status.upper())
        if kind is None:
            return ReconcileResult(run_id=run.id, action="still_running", detail=provider_run.status)

        outcome = await self.handle_callback(
            CallbackEvent(
                event_kind=kind,
                external_run_id=run.external_run_id,
                timestamp=provider_run.finished_at,
            )
        )
        return ReconcileResult(run_id=run.id, action="replayed", detail=outcome.message)

    async def _fail_reconcile(self, run: Run, reason: str) -> ReconcileResult:
        message = f"{RECONCILE_FAILURE_PREFIX}: {reason}"
        await self._store.update_run(
            run.id,
            status=RunStatus.FAILED,
            finished_at=utcnow(),
            error_message=message,
        )
        emit_event("reconcile.run_failed", level=logging.WARNING, run_id=run.id, error=reason)
        return ReconcileResult(run_id=run.id, action="failed", detail=message)
