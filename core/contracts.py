"""Canonical data contracts for jobs, runs, mentions and enrichment rows."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from utils.exceptions import StateTransitionError
from .source_configs import SourceConfig, SourceKind, parse_source_config


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


SentimentLabel = Literal["positive", "negative", "neutral"]
Priority = Literal["low", "medium", "high"]


class RunStatus(str, Enum):
    """Lifecycle of one external run. Moves forward only."""

    SCHEDULED = "scheduled"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)

    def can_transition_to(self, target: "RunStatus") -> bool:
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS: Dict[RunStatus, frozenset] = {
    RunStatus.SCHEDULED: frozenset(
        {RunStatus.SCHEDULED, RunStatus.RUNNING, RunStatus.COMPLETED, RunStatus.FAILED}
    ),
    RunStatus.RUNNING: frozenset({RunStatus.RUNNING, RunStatus.COMPLETED, RunStatus.FAILED}),
    RunStatus.COMPLETED: frozenset({RunStatus.COMPLETED}),
    RunStatus.FAILED: frozenset({RunStatus.FAILED}),
}


def check_transition(current: RunStatus, target: RunStatus) -> None:
    """Raise StateTransitionError unless ``current -> target`` is allowed."""
    if not current.can_transition_to(target):
        raise StateTransitionError(
            f"Run cannot move from {current.value} to {target.value}",
            current=current.value,
            target=target.value,
        )


class CallbackEventKind(str, Enum):
    """Completion signals sent by the scraping provider."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"
    TIMED_OUT = "timed_out"

    @property
    def terminal_status(self) -> RunStatus:
        if self is CallbackEventKind.SUCCEEDED:
            return RunStatus.COMPLETED
        return RunStatus.FAILED


class Job(BaseModel):
    """Recurring collection configuration owned by a tenant."""

    id: str = Field(default_factory=new_id)
    tenant_id: str
    brand_id: str
    name: str
    source_kind: SourceKind
    config: Dict[str, Any] = Field(default_factory=dict)
    schedule_cron: str = "0 */6 * * *"
    is_active: bool = True
    last_run_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _validate_config(self) -> "Job":
        parse_source_config(self.source_kind, self.config)
        return self

    def typed_config(self) -> SourceConfig:
        return parse_source_config(self.source_kind, self.config)


class Run(BaseModel):
    """One execution attempt of a Job against the scraping provider."""

    id: str = Field(default_factory=new_id)
    job_id: str
    tenant_id: str
    status: RunStatus = RunStatus.SCHEDULED
    external_run_id: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    items_found: int = 0
    items_processed: int = 0
    items_failed: int = 0
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_dependent_phase(self) -> bool:
        return bool(self.metadata.get("is_dependent_phase"))


class MentionCandidate(BaseModel):
    """Normalized mention not yet persisted."""

    tenant_id: str
    brand_id: str
    run_id: str
    source_kind: SourceKind
    source_id: str
    source_url: Optional[str] = None
    title: Optional[str] = None
    content: str
    author: Optional[str] = None
    author_url: Optional[str] = None
    author_followers: Optional[int] = None
    published_at: Optional[datetime] = None
    language: str = "en"
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def dedup_key(self) -> tuple:
        return (self.tenant_id, self.source_kind.value, self.source_id)


class Mention(MentionCandidate):
    """Persisted mention. Unique on (tenant_id, source_kind, source_id)."""

    id: str = Field(default_factory=new_id)
    scraped_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SentimentAnalysis(BaseModel):
    """At most one per mention, never overwritten."""

    id: str = Field(default_factory=new_id)
    mention_id: str
    tenant_id: str
    sentiment: SentimentLabel
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: Optional[str] = None
    ai_model: str
    ai_provider: str = "openai"
    analysis_version: str = "1.0"
    created_at: datetime = Field(default_factory=utcnow)


class TagCategory(BaseModel):
    id: str = Field(default_factory=new_id)
    tenant_id: Optional[str] = None
    name: str
    display_name: str = ""
    description: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0


class TagIntent(BaseModel):
    id: str = Field(default_factory=new_id)
    tenant_id: Optional[str] = None
    name: str
    display_name: str = ""
    description: Optional[str] = None
    is_active: bool = True


class MentionTag(BaseModel):
    """One per (mention, category, intent)."""

    id: str = Field(default_factory=new_id)
    mention_id: str
    tenant_id: str
    category_id: str
    intent_id: str
    priority: Priority = "medium"
    urgency_score: float = Field(default=0.5, ge=0.0, le=1.0)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    ai_model: str
    ai_provider: str = "openai"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class MentionTopic(BaseModel):
    id: str = Field(default_factory=new_id)
    mention_id: str
    topic: str
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    created_at: datetime = Field(default_factory=utcnow)


class DiscoveredTag(BaseModel):
    """Tag name proposed by the AI provider that is not in the catalogue yet."""

    id: str = Field(default_factory=new_id)
    tenant_id: str
    tag_name: str
    tag_type: Literal["topic", "category", "intent"]
    frequency_count: int = 1
    confidence_score: float = 0.7
    is_approved: bool = False
    created_by_ai: bool = True
    first_discovered_at: datetime = Field(default_factory=utcnow)
    last_used_at: datetime = Field(default_factory=utcnow)


class Brand(BaseModel):
    id: str
    tenant_id: str
    name: str
    industry_id: Optional[str] = None


class IndustryTagTemplate(BaseModel):
    id: str = Field(default_factory=new_id)
    industry_id: str
    category: str
    topics: List[str] = Field(default_factory=list)
    intents: List[str] = Field(default_factory=list)
    ai_prompt_context: Optional[str] = None


class BrandContext(BaseModel):
    """What enrichment needs to know about the brand behind a batch."""

    tenant_id: str
    brand_id: str
    brand_name: Optional[str] = None
    industry_id: Optional[str] = None


class ProviderRun(BaseModel):
    """Scraping provider's view of a run."""

    id: str
    actor_id: Optional[str] = None
    status: str = "READY"
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in {"SUCCEEDED", "FAILED", "ABORTED", "TIMED-OUT", "TIMED_OUT"}


class SentimentJudgment(BaseModel):
    sentiment: SentimentLabel = "neutral"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: Optional[str] = None
    model: Optional[str] = None


class TopicJudgment(BaseModel):
    name: str
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class TagJudgment(BaseModel):
    category: str = "neutral"
    intent: str = "general_feedback"
    topics: List[TopicJudgment] = Field(default_factory=list)
    priority: Priority = "medium"
    urgency_score: float = Field(default=0.5, ge=0.0, le=1.0)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: Optional[str] = None
    model: Optional[str] = None


class CallbackEvent(BaseModel):
    """Completion signal for one external run."""

    event_kind: CallbackEventKind
    external_run_id: str
    timestamp: Optional[datetime] = None

    @field_validator("external_run_id", mode="before")
    @classmethod
    def _non_empty_text(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("external run id is required")
        return text


class CallbackOutcome(BaseModel):
    status: Literal["ignored", "processed"]
    message: str = ""
    run_id: Optional[str] = None
    run_status: Optional[RunStatus] = None
    inserted: Optional[int] = None
