"""Idempotent mention ingestion and run counters."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import List, Optional, Sequence

from config import PipelineSettings, get_pipeline_settings
from core import Job, Mention, MentionCandidate, Run
from scrapers import BaseScrapingProvider
from storage import MentionStore
from utils.exceptions import BadRequestError
from utils.logger import emit_event
from .normalize import normalize


logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Counters of one ingestion pass plus the rows that were new."""

    found: int
    inserted: List[Mention] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.inserted)

    @property
    def failed(self) -> int:
        return max(0, self.found - self.processed)


class IngestionWriter:
    """Writes normalized mentions once and records run counters."""

    def __init__(
        self,
        *,
        store: MentionStore,
        provider: BaseScrapingProvider,
        settings: Optional[PipelineSettings] = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._settings = settings or get_pipeline_settings()

    async def ingest(self, run: Run, candidates: Sequence[MentionCandidate]) -> IngestResult:
        """
        Upsert ``candidates`` and overwrite the run counters.

        Rows whose (tenant, kind, source id) already exists are refreshed and
        not reported as inserted, so a replayed pass inserts nothing.
        """
        inserted = await self._store.upsert_mentions(list(candidates)) if candidates else []
        result = IngestResult(found=len(candidates), inserted=inserted)

        await self._store.update_run(
            run.id,
            items_found=result.found,
            items_processed=result.processed,
            items_failed=result.failed,
        )
        emit_event(
            "ingestion.completed",
            run_id=run.id,
            tenant_id=run.tenant_id,
            found=result.found,
            processed=result.processed,
            failed=result.failed,
        )
        return result

    async def process_run(self, run: Run, job: Job) -> IngestResult:
        """Fetch the run's dataset, normalize it and ingest it."""
        if not run.external_run_id:
            raise BadRequestError(f"Run {run.id} has no external run id", {"run_id": run.id})

        raw_items = await self._provider.fetch_dataset(run.external_run_id, limit=self._settings.dataset_limit)
        logger.info("dataset fetched run_id=%s items=%s", run.id, len(raw_items))
        if not raw_items:
            logger.warning("empty dataset run_id=%s external_run_id=%s", run.id, run.external_run_id)

        candidates = normalize(raw_items, run, job)
        return await self.ingest(run, candidates)
