"""
Store Interface
Typed async operations over the relational rows the pipeline touches
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

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
)


class MentionStore(ABC):
    """
    Relational store abstraction.

    Implementations must honour the uniqueness keys:
    - Mention: (tenant_id, source_kind, source_id)
    - SentimentAnalysis: mention_id
    - MentionTag: (mention_id, category_id, intent_id)
    - MentionTopic: (mention_id, topic)
    - DiscoveredTag: (tenant_id, tag_name, tag_type)

    Failures surface as PersistenceError.
    """

    # ---- jobs ----

    @abstractmethod
    async def insert_job(self, job: Job) -> Job:
        pass

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[Job]:
        pass

    @abstractmethod
    async def find_job(self, tenant_id: str, brand_id: str, source_kind: SourceKind) -> Optional[Job]:
        pass

    @abstractmethod
    async def list_jobs(self, tenant_id: str, brand_id: Optional[str] = None) -> List[Job]:
        """Newest first."""
        pass

    @abstractmethod
    async def update_job(self, job_id: str, **changes: Any) -> Job:
        pass

    @abstractmethod
    async def delete_job(self, job_id: str) -> bool:
        pass

    # ---- runs ----

    @abstractmethod
    async def insert_run(self, run: Run) -> Run:
        pass

    @abstractmethod
    async def get_run(self, run_id: str) -> Optional[Run]:
        pass

    @abstractmethod
    async def find_run_by_external_id(self, external_run_id: str) -> Optional[Run]:
        pass

    @abstractmethod
    async def update_run(
        self,
        run_id: str,
        *,
        metadata_patch: Optional[Dict[str, Any]] = None,
        **changes: Any,
    ) -> Run:
        """
        Conditional update.

        ``metadata_patch`` is merged into the stored metadata bag. A status
        change that would move the run backwards raises StateTransitionError.
        """
        pass

    @abstractmethod
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
        """Range query, most recently started first."""
        pass

    # ---- mentions ----

    @abstractmethod
    async def upsert_mentions(self, candidates: Sequence[MentionCandidate]) -> List[Mention]:
        """
        Insert-or-update on the mention uniqueness key.

        Existing rows get their content refreshed and keep their id. Only the
        rows that did not exist before are returned.
        """
        pass

    @abstractmethod
    async def get_mention(self, mention_id: str) -> Optional[Mention]:
        pass

    @abstractmethod
    async def list_mentions(self, tenant_id: str, run_id: Optional[str] = None) -> List[Mention]:
        pass

    # ---- sentiment ----

    @abstractmethod
    async def get_sentiment(self, mention_id: str) -> Optional[SentimentAnalysis]:
        pass

    @abstractmethod
    async def insert_sentiment(self, analysis: SentimentAnalysis) -> Optional[SentimentAnalysis]:
        """Insert if absent. Returns None when the mention already had one."""
        pass

    # ---- tagging ----

    @abstractmethod
    async def list_categories(self, tenant_id: str) -> List[TagCategory]:
        """Active global + tenant categories, by sort order."""
        pass

    @abstractmethod
    async def list_intents(self, tenant_id: str) -> List[TagIntent]:
        """Active global + tenant intents, by name."""
        pass

    @abstractmethod
    async def insert_category(self, category: TagCategory) -> TagCategory:
        pass

    @abstractmethod
    async def insert_intent(self, intent: TagIntent) -> TagIntent:
        pass

    @abstractmethod
    async def list_mention_tags(self, mention_id: str) -> List[MentionTag]:
        pass

    @abstractmethod
    async def upsert_mention_tag(self, tag: MentionTag) -> MentionTag:
        pass

    @abstractmethod
    async def upsert_mention_topics(self, topics: Sequence[MentionTopic]) -> List[MentionTopic]:
        pass

    @abstractmethod
    async def list_mention_topics(self, mention_id: str) -> List[MentionTopic]:
        pass

    @abstractmethod
    async def upsert_discovered_tag(self, tag: DiscoveredTag) -> DiscoveredTag:
        """Re-discovery of the same (tenant, name, type) bumps frequency_count."""
        pass

    @abstractmethod
    async def list_discovered_tags(self, tenant_id: str) -> List[DiscoveredTag]:
        pass

    # ---- brand / industry (read side, seeded by collaborators) ----

    @abstractmethod
    async def get_brand(self, brand_id: str) -> Optional[Brand]:
        pass

    @abstractmethod
    async def list_industry_templates(self, industry_id: str) -> List[IndustryTagTemplate]:
        pass
