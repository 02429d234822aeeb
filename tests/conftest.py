"""Shared fakes and fixtures: in-memory store, scripted scraping and AI providers."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import pytest

from config import ApifySettings, EnrichmentSettings, PipelineSettings, ServerSettings, Settings
from core import (
    ProviderRun,
    SentimentJudgment,
    SourceKind,
    TagCategory,
    TagIntent,
    TagJudgment,
    TopicJudgment,
)
from intelligence import BaseAIProvider
from orchestrator import EnrichmentQueue, MentionFlowService
from scrapers import BaseScrapingProvider
from storage import InMemoryMentionStore
from utils.exceptions import ProviderError


TENANT = "tenant_1"
BRAND = "brand_1"
CALLBACK_URL = "https://hooks.example.com/api/webhooks/apify"


class FakeScrapingProvider(BaseScrapingProvider):
    """Hands out R1, R2, ... and serves datasets from a dict."""

    def __init__(self) -> None:
        super().__init__()
        self.started: List[Dict[str, Any]] = []
        self.aborted: List[str] = []
        self.datasets: Dict[str, List[Any]] = {}
        self.statuses: Dict[str, str] = {}
        self.start_error: Optional[Exception] = None
        self.dataset_error: Optional[Exception] = None
        self.status_error: Optional[Exception] = None
        self.fetches: List[str] = []

    @property
    def name(self) -> str:
        return "fake"

    async def start(self, source_kind, config, callback_url=None) -> ProviderRun:
        if self.start_error is not None:
            raise self.start_error
        handle = f"R{len(self.started) + 1}"
        self.started.append(
            {"source_kind": SourceKind(source_kind), "config": dict(config), "callback_url": callback_url}
        )
        return ProviderRun(id=handle, actor_id=f"fake/{SourceKind(source_kind).value}", status="RUNNING")

    async def status(self, run_handle: str) -> ProviderRun:
        if self.status_error is not None:
            raise self.status_error
        return ProviderRun(id=run_handle, status=self.statuses.get(run_handle, "RUNNING"))

    async def fetch_dataset(self, run_handle: str, limit: int = 1000) -> List[Dict[str, Any]]:
        self.fetches.append(run_handle)
        if self.dataset_error is not None:
            raise self.dataset_error
        return list(self.datasets.get(run_handle, []))[:limit]

    async def abort(self, run_handle: str) -> ProviderRun:
        self.aborted.append(run_handle)
        return ProviderRun(id=run_handle, status="ABORTED")


class FakeAIProvider(BaseAIProvider):
    """Fixed judgments; texts listed in ``fail_on`` raise ProviderError."""

    def __init__(self) -> None:
        self.fail_on = set()
        self.sentiment_calls: List[str] = []
        self.tag_calls: List[str] = []
        self.tag_reply = TagJudgment(
            category="praise",
            intent="recommendation",
            topics=[TopicJudgment(name="service", confidence=0.8)],
            priority="low",
            urgency_score=0.2,
            confidence=0.9,
        )

    @property
    def provider_name(self) -> str:
        return "fake-ai"

    @property
    def sentiment_model(self) -> str:
        return "fake-sentiment"

    @property
    def tagging_model(self) -> str:
        return "fake-tagging"

    async def judge_sentiment(self, text: str, context=None) -> SentimentJudgment:
        self.sentiment_calls.append(text)
        if text in self.fail_on:
            raise ProviderError("AI request failed: boom", provider=self.provider_name)
        return SentimentJudgment(sentiment="positive", confidence=0.9, reasoning="upbeat")

    async def judge_tags(
        self,
        text: str,
        industry_context: str,
        categories: Sequence[TagCategory],
        intents: Sequence[TagIntent],
        context=None,
    ) -> TagJudgment:
        self.tag_calls.append(text)
        if text in self.fail_on:
            raise ProviderError("AI request failed: boom", provider=self.provider_name)
        return self.tag_reply.model_copy(deep=True)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        apify=ApifySettings(token="test-token"),
        enrichment=EnrichmentSettings(sentiment_delay_seconds=0, tagging_delay_seconds=0, workers=1),
        pipeline=PipelineSettings(),
        server=ServerSettings(api_base_url="https://hooks.example.com"),
    )


@pytest.fixture
def store() -> InMemoryMentionStore:
    return InMemoryMentionStore()


@pytest.fixture
def provider() -> FakeScrapingProvider:
    return FakeScrapingProvider()


@pytest.fixture
def ai() -> FakeAIProvider:
    return FakeAIProvider()


@pytest.fixture
def service(settings, store, provider, ai) -> MentionFlowService:
    return MentionFlowService(
        provider=provider,
        ai=ai,
        store=store,
        queue=EnrichmentQueue(maxsize=10, workers=1),
        settings=settings,
    )
