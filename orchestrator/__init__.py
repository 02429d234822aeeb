"""Run orchestration: registry, completion gateway, chaining and the enrichment queue."""

from .chaining import DependentRunChainer, extract_references, needs_chaining
from .gateway import CompletionGateway, ReconcileResult, parse_callback_payload
from .queue import EnrichmentQueue, WorkItem
from .registry import JobCreate, JobRegistry, JobUpdate
from .service import MentionFlowService, build_default_service

__all__ = [
    "CompletionGateway",
    "DependentRunChainer",
    "EnrichmentQueue",
    "JobCreate",
    "JobRegistry",
    "JobUpdate",
    "MentionFlowService",
    "ReconcileResult",
    "WorkItem",
    "build_default_service",
    "extract_references",
    "needs_chaining",
    "parse_callback_payload",
]
