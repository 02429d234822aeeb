"""Second-phase runs for sources whose nested content needs its own scrape."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from config import PipelineSettings, get_pipeline_settings
from core import DEPENDENT_PHASES, Job, Run, RunStatus, SourceKind, utcnow
from scrapers import BaseScrapingProvider
from storage import MentionStore
from utils.exceptions import MentionFlowError
from utils.logger import emit_event


logger = logging.getLogger(__name__)

INSTAGRAM_POST_URL = "https://www.instagram.com/p/{}/"


def needs_chaining(run: Run, job: Job) -> bool:
    """First-phase run of a kind that has a dependent phase."""
    return job.source_kind in DEPENDENT_PHASES and not run.is_dependent_phase


def extract_references(items: Sequence[Any], limit: int) -> List[str]:
    """Post URLs from a first-phase dataset, de-duplicated, at most ``limit``."""
    references: List[str] = []
    seen = set()
    for item in items:
        if len(references) >= limit:
            break
        if not isinstance(item, dict):
            continue
        url = str(item.get("url") or "").strip()
        if not url and item.get("shortCode"):
            url = INSTAGRAM_POST_URL.format(str(item["shortCode"]).strip())
        if not url or url in seen:
            continue
        seen.add(url)
        references.append(url)
    return references


class DependentRunChainer:
    """Starts the dependent run and links it to its parent."""

    def __init__(
        self,
        *,
        store: MentionStore,
        provider: BaseScrapingProvider,
        callback_url: str,
        settings: Optional[PipelineSettings] = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._callback_url = callback_url
        self._settings = settings or get_pipeline_settings()

    def _reference_limit(self, job: Job) -> int:
        override = job.config.get("max_comment_posts")
        try:
            return max(1, int(override)) if override else self._settings.max_dependent_references
        except (TypeError, ValueError):
            return self._settings.max_dependent_references

    async def chain(self, parent: Run, job: Job) -> Optional[Run]:
        """
        Start the dependent phase for a completed parent run.

        Returns the child run, or None when chaining was skipped or failed.
        Failures are written to the parent's metadata; the parent stays
        completed.
        """
        if parent.metadata.get("chained_run_id"):
            logger.info("run already chained run_id=%s child=%s", parent.id, parent.metadata["chained_run_id"])
            return None

        dependent_kind = DEPENDENT_PHASES[job.source_kind]
        try:
            items = await self._provider.fetch_dataset(parent.external_run_id, limit=self._settings.dataset_limit)
        except Exception as exc:
            await self._record_failure(parent, f"Failed to fetch first-phase dataset: {exc}")
            return None

        references = extract_references(items, self._reference_limit(job))
        await self._store.update_run(parent.id, items_found=len(items))
        if not references:
            await self._record_failure(parent, "No references found for dependent phase")
            return None

        child_config = {
            "directUrls": references,
            "resultsLimit": self._settings.comments_per_reference,
        }
        try:
            provider_run = await self._provider.start(dependent_kind, child_config, self._callback_url)
        except Exception as exc:
            reason = exc.message if isinstance(exc, MentionFlowError) else str(exc)
            await self._record_failure(parent, f"Failed to start dependent run: {reason}")
            return None

        child = await self._store.insert_run(
            Run(
                job_id=job.id,
                tenant_id=parent.tenant_id,
                status=RunStatus.RUNNING,
                external_run_id=provider_run.id,
                started_at=utcnow(),
                metadata=self._child_metadata(parent, dependent_kind, provider_run.actor_id, len(references)),
            )
        )
        await self._store.update_run(
            parent.id,
            metadata_patch={"chained_run_id": child.id, "chained_at": utcnow().isoformat()},
        )
        emit_event(
            "run.chained",
            parent_run_id=parent.id,
            child_run_id=child.id,
            source_kind=dependent_kind.value,
            references=len(references),
        )
        return child

    def _child_metadata(
        self,
        parent: Run,
        kind: SourceKind,
        actor_id: Optional[str],
        reference_count: int,
    ) -> Dict[str, Any]:
        return {
            "is_dependent_phase": True,
            "parent_run_id": parent.id,
            "source_kind": kind.value,
            "phase": 2,
            "reference_count": reference_count,
            "webhook_url": self._callback_url,
            "actor_id": actor_id,
        }

    async def _record_failure(self, parent: Run, message: str) -> None:
        await self._store.update_run(
            parent.id,
            metadata_patch={"chaining_error": message, "chaining_failed_at": utcnow().isoformat()},
        )
        emit_event("run.chaining_failed", level=logging.WARNING, run_id=parent.id, error=message)
