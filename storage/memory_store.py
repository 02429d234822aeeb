"""In-memory store used by tests and single-process deployments."""

from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Optional, Sequence, Tuple

from core import (
    Brand,
    DiscoveredTag,
    IndustryTagTemplate,
    Job,
    Mention,
    MentionCandidate,
    MentionTag,
    MentionTopic,
    Run,
    RunStatus,
    SentimentAnalysis,
    SourceKind,
    TagCategory,
    TagIntent,
    check_transition,
    utcnow,
)
from utils.exceptions import PersistenceError
from .base import MentionStore


DEFAULT_CATEGORIES: Tuple[Tuple[str, str], ...] = (
    ("neutral", "Neutral"),
    ("complaint", "Complaint"),
    ("praise", "Praise"),
    ("question", "Question"),
    ("suggestion", "Suggestion"),
)

DEFAULT_INTENTS: Tuple[Tuple[str, str], ...] = (
    ("general_feedback", "General feedback"),
    ("support_request", "Support request"),
    ("purchase_intent", "Purchase intent"),
    ("recommendation", "Recommendation"),
    ("churn_risk", "Churn risk"),
)

# columns a mention upsert refreshes on an existing row
_MENTION_REFRESH_FIELDS = (
    "source_url",
    "title",
    "content",
    "author",
    "author_url",
    "author_followers",
    "published_at",
    "language",
    "metadata",
)


def _started_sort_key(run: Run) -> datetime:
    return run.started_at or run.created_at


class InMemoryMentionStore(MentionStore):
    """Thread-safe dict-backed store. Returns copies, never live rows."""

    def __init__(self, *, seed_defaults: bool = True) -> None:
        self._jobs: Dict[str, Job] = {}
        self._runs: Dict[str, Run] = {}
        self._runs_by_external: Dict[str, str] = {}
        self._mentions: Dict[str, Mention] = {}
        self._mention_keys: Dict[tuple, str] = {}
        self._sentiments: Dict[str, SentimentAnalysis] = {}
        self._categories: Dict[str, TagCategory] = {}
        self._intents: Dict[str, TagIntent] = {}
        self._mention_tags: Dict[tuple, MentionTag] = {}
        self._topics: Dict[tuple, MentionTopic] = {}
        self._discovered: Dict[tuple, DiscoveredTag] = {}
        self._brands: Dict[str, Brand] = {}
        self._templates: List[IndustryTagTemplate] = []
        self._lock = Lock()
        self.write_count = 0

        if seed_defaults:
            for order, (name, display) in enumerate(DEFAULT_CATEGORIES):
                category = TagCategory(name=name, display_name=display, sort_order=order)
                self._categories[category.id] = category
            for name, display in DEFAULT_INTENTS:
                intent = TagIntent(name=name, display_name=display)
                self._intents[intent.id] = intent

    def _touch(self) -> None:
        self.write_count += 1

    # ---- seeding helpers for collaborator-owned rows ----

    def put_brand(self, brand: Brand) -> None:
        with self._lock:
            self._brands[brand.id] = brand.model_copy(deep=True)

    def put_industry_template(self, template: IndustryTagTemplate) -> None:
        with self._lock:
            self._templates.append(template.model_copy(deep=True))

    # ---- jobs ----

    async def insert_job(self, job: Job) -> Job:
        with self._lock:
            if job.id in self._jobs:
                raise PersistenceError(f"Job {job.id} already exists")
            self._jobs[job.id] = job.model_copy(deep=True)
            self._touch()
            return job.model_copy(deep=True)

    async def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    async def find_job(self, tenant_id: str, brand_id: str, source_kind: SourceKind) -> Optional[Job]:
        with self._lock:
            for job in self._jobs.values():
                if job.tenant_id == tenant_id and job.brand_id == brand_id and job.source_kind == source_kind:
                    return job.model_copy(deep=True)
            return None

    async def list_jobs(self, tenant_id: str, brand_id: Optional[str] = None) -> List[Job]:
        with self._lock:
            jobs = [
                job.model_copy(deep=True)
                for job in self._jobs.values()
                if job.tenant_id == tenant_id and (brand_id is None or job.brand_id == brand_id)
            ]
        jobs.sort(key=lambda item: item.created_at, reverse=True)
        return jobs

    async def update_job(self, job_id: str, **changes: Any) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise PersistenceError(f"Job {job_id} not found for update")
            data = job.model_dump()
            data.update(changes)
            data["updated_at"] = utcnow()
            updated = Job.model_validate(data)
            self._jobs[job_id] = updated
            self._touch()
            return updated.model_copy(deep=True)

    async def delete_job(self, job_id: str) -> bool:
        with self._lock:
            removed = self._jobs.pop(job_id, None)
            if removed is not None:
                self._touch()
            return removed is not None

    # ---- runs ----

    async def insert_run(self, run: Run) -> Run:
        with self._lock:
            if run.id in self._runs:
                raise PersistenceError(f"Run {run.id} already exists")
            self._runs[run.id] = run.model_copy(deep=True)
            if run.external_run_id:
                self._runs_by_external[run.external_run_id] = run.id
            self._touch()
            return run.model_copy(deep=True)

    async def get_run(self, run_id: str) -> Optional[Run]:
        with self._lock:
            run = self._runs.get(run_id)
            return run.model_copy(deep=True) if run else None

    async def find_run_by_external_id(self, external_run_id: str) -> Optional[Run]:
        with self._lock:
            run_id = self._runs_by_external.get(external_run_id)
            run = self._runs.get(run_id) if run_id else None
            return run.model_copy(deep=True) if run else None

    async def update_run(
        self,
        run_id: str,
        *,
        metadata_patch: Optional[Dict[str, Any]] = None,
        **changes: Any,
    ) -> Run:
        with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                raise PersistenceError(f"Run {run_id} not found for update")
            if "status" in changes:
                check_transition(run.status, RunStatus(changes["status"]))
            data = run.model_dump()
            data.update(changes)
            if metadata_patch:
                merged = dict(run.metadata)
                merged.update(metadata_patch)
                data["metadata"] = merged
            data["updated_at"] = utcnow()
            updated = Run.model_validate(data)
            self._runs[run_id] = updated
            if updated.external_run_id:
                self._runs_by_external[updated.external_run_id] = run_id
            self._touch()
            return updated.model_copy(deep=True)

    async def list_runs(
        self,
        *,
        tenant_id: Optional[str] = None,
        job_id: Optional[str] = None,
        status: Optional[RunStatus] = None,
        started_after: Optional[datetime] = None,
        started_before: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[Run]:
        with self._lock:
            runs = [run.model_copy(deep=True) for run in self._runs.values()]

        selected: List[Run] = []
        for run in runs:
            if tenant_id is not None and run.tenant_id != tenant_id:
                continue
            if job_id is not None and run.job_id != job_id:
                continue
            if status is not None and run.status != status:
                continue
            if started_after is not None and (run.started_at is None or run.started_at < started_after):
                continue
            if started_before is not None and (run.started_at is None or run.started_at >= started_before):
                continue
            selected.append(run)

        selected.sort(key=_started_sort_key, reverse=True)
        if limit is not None:
            selected = selected[: max(0, int(limit))]
        return selected

    # ---- mentions ----

    async def upsert_mentions(self, candidates: Sequence[MentionCandidate]) -> List[Mention]:
        inserted: List[Mention] = []
        with self._lock:
            for candidate in candidates:
                key = candidate.dedup_key
                existing_id = self._mention_keys.get(key)
                if existing_id is not None:
                    existing = self._mentions[existing_id]
                    refreshed = existing.model_copy(
                        update={
                            **{name: getattr(candidate, name) for name in _MENTION_REFRESH_FIELDS},
                            "updated_at": utcnow(),
                        },
                        deep=True,
                    )
                    self._mentions[existing_id] = refreshed
                    continue
                mention = Mention(**candidate.model_dump())
                self._mentions[mention.id] = mention
                self._mention_keys[key] = mention.id
                inserted.append(mention.model_copy(deep=True))
            if candidates:
                self._touch()
        return inserted

    async def get_mention(self, mention_id: str) -> Optional[Mention]:
        with self._lock:
            mention = self._mentions.get(mention_id)
            return mention.model_copy(deep=True) if mention else None

    async def list_mentions(self, tenant_id: str, run_id: Optional[str] = None) -> List[Mention]:
        with self._lock:
            return [
                item.model_copy(deep=True)
                for item in self._mentions.values()
                if item.tenant_id == tenant_id and (run_id is None or item.run_id == run_id)
            ]

    # ---- sentiment ----

    async def get_sentiment(self, mention_id: str) -> Optional[SentimentAnalysis]:
        with self._lock:
            analysis = self._sentiments.get(mention_id)
            return analysis.model_copy(deep=True) if analysis else None

    async def insert_sentiment(self, analysis: SentimentAnalysis) -> Optional[SentimentAnalysis]:
        with self._lock:
            if analysis.mention_id in self._sentiments:
                return None
            self._sentiments[analysis.mention_id] = analysis.model_copy(deep=True)
            self._touch()
            return analysis.model_copy(deep=True)

    # ---- tagging ----

    async def list_categories(self, tenant_id: str) -> List[TagCategory]:
        with self._lock:
            rows = [
                item.model_copy(deep=True)
                for item in self._categories.values()
                if item.is_active and item.tenant_id in (None, tenant_id)
            ]
        rows.sort(key=lambda item: (item.sort_order, item.name))
        return rows

    async def list_intents(self, tenant_id: str) -> List[TagIntent]:
        with self._lock:
            rows = [
                item.model_copy(deep=True)
                for item in self._intents.values()
                if item.is_active and item.tenant_id in (None, tenant_id)
            ]
        rows.sort(key=lambda item: item.name)
        return rows

    async def insert_category(self, category: TagCategory) -> TagCategory:
        with self._lock:
            self._categories[category.id] = category.model_copy(deep=True)
            self._touch()
            return category.model_copy(deep=True)

    async def insert_intent(self, intent: TagIntent) -> TagIntent:
        with self._lock:
            self._intents[intent.id] = intent.model_copy(deep=True)
            self._touch()
            return intent.model_copy(deep=True)

    async def list_mention_tags(self, mention_id: str) -> List[MentionTag]:
        with self._lock:
            return [tag.model_copy(deep=True) for key, tag in self._mention_tags.items() if key[0] == mention_id]

    async def upsert_mention_tag(self, tag: MentionTag) -> MentionTag:
        key = (tag.mention_id, tag.category_id, tag.intent_id)
        with self._lock:
            existing = self._mention_tags.get(key)
            if existing is not None:
                stored = tag.model_copy(update={"id": existing.id, "created_at": existing.created_at, "updated_at": utcnow()})
            else:
                stored = tag.model_copy(deep=True)
            self._mention_tags[key] = stored
            self._touch()
            return stored.model_copy(deep=True)

    async def upsert_mention_topics(self, topics: Sequence[MentionTopic]) -> List[MentionTopic]:
        stored: List[MentionTopic] = []
        with self._lock:
            for topic in topics:
                key = (topic.mention_id, topic.topic)
                existing = self._topics.get(key)
                row = topic.model_copy(update={"id": existing.id}) if existing else topic.model_copy(deep=True)
                self._topics[key] = row
                stored.append(row.model_copy(deep=True))
            if topics:
                self._touch()
        return stored

    async def list_mention_topics(self, mention_id: str) -> List[MentionTopic]:
        with self._lock:
            return [topic.model_copy(deep=True) for key, topic in self._topics.items() if key[0] == mention_id]

    async def upsert_discovered_tag(self, tag: DiscoveredTag) -> DiscoveredTag:
        key = (tag.tenant_id, tag.tag_name, tag.tag_type)
        with self._lock:
            existing = self._discovered.get(key)
            if existing is not None:
                row = existing.model_copy(
                    update={"frequency_count": existing.frequency_count + 1, "last_used_at": utcnow()}
                )
            else:
                row = tag.model_copy(deep=True)
            self._discovered[key] = row
            self._touch()
            return row.model_copy(deep=True)

    async def list_discovered_tags(self, tenant_id: str) -> List[DiscoveredTag]:
        with self._lock:
            return [tag.model_copy(deep=True) for tag in self._discovered.values() if tag.tenant_id == tenant_id]

    # ---- brand / industry ----

    async def get_brand(self, brand_id: str) -> Optional[Brand]:
        with self._lock:
            brand = self._brands.get(brand_id)
            return brand.model_copy(deep=True) if brand else None

    async def list_industry_templates(self, industry_id: str) -> List[IndustryTagTemplate]:
        with self._lock:
            return [item.model_copy(deep=True) for item in self._templates if item.industry_id == industry_id]
