"""Core contracts and shared types."""

from .contracts import (
    Brand,
    BrandContext,
    CallbackEvent,
    CallbackEventKind,
    CallbackOutcome,
    DiscoveredTag,
    IndustryTagTemplate,
    Job,
    Mention,
    MentionCandidate,
    MentionTag,
    MentionTopic,
    ProviderRun,
    Run,
    RunStatus,
    SentimentAnalysis,
    SentimentJudgment,
    TagCategory,
    TagIntent,
    TagJudgment,
    TopicJudgment,
    check_transition,
    new_id,
    utcnow,
)
from .source_configs import (
    DEPENDENT_PHASES,
    INTERNAL_KINDS,
    SourceConfig,
    SourceKind,
    has_dependent_phase,
    parse_source_config,
)

__all__ = [
    "Brand",
    "BrandContext",
    "CallbackEvent",
    "CallbackEventKind",
    "CallbackOutcome",
    "DEPENDENT_PHASES",
    "DiscoveredTag",
    "INTERNAL_KINDS",
    "IndustryTagTemplate",
    "Job",
    "Mention",
    "MentionCandidate",
    "MentionTag",
    "MentionTopic",
    "ProviderRun",
    "Run",
    "RunStatus",
    "SentimentAnalysis",
    "SentimentJudgment",
    "SourceConfig",
    "SourceKind",
    "TagCategory",
    "TagIntent",
    "TagJudgment",
    "TopicJudgment",
    "check_transition",
    "has_dependent_phase",
    "new_id",
    "parse_source_config",
    "utcnow",
]
