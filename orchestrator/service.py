"""Service wiring for the collection pipeline."""

from __future__ import annotations

import logging
from typing import Optional

from config import Settings, get_settings
from intelligence import BaseAIProvider
from pipeline import EnrichmentFanOut, IngestionWriter
from scrapers import BaseScrapingProvider
from storage import InMemoryMentionStore, MentionStore
from .chaining import DependentRunChainer
from .gateway import CompletionGateway
from .queue import EnrichmentQueue
from .registry import JobRegistry


logger = logging.getLogger(__name__)


class MentionFlowService:
    """Holds one registry, gateway and enrichment queue over a shared store."""

    def __init__(
        self,
        *,
        provider: BaseScrapingProvider,
        ai: Optional[BaseAIProvider] = None,
        store: Optional[MentionStore] = None,
        queue: Optional[EnrichmentQueue] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store or InMemoryMentionStore()
        self.provider = provider
        self.ai = ai
        self.queue = queue or EnrichmentQueue(
            maxsize=self.settings.enrichment.queue_maxsize,
            workers=self.settings.enrichment.workers,
        )

        self.registry = JobRegistry(store=self.store, provider=provider, settings=self.settings)
        self.writer = IngestionWriter(store=self.store, provider=provider, settings=self.settings.pipeline)
        self.fan_out = (
            EnrichmentFanOut(store=self.store, ai=ai, queue=self.queue, settings=self.settings.enrichment)
            if ai is not None
            else None
        )
        if self.fan_out is None:
            logger.warning("no AI provider configured; enrichment is disabled")
        self.chainer = DependentRunChainer(
            store=self.store,
            provider=provider,
            callback_url=self.settings.callback_url,
            settings=self.settings.pipeline,
        )
        self.gateway = CompletionGateway(
            store=self.store,
            provider=provider,
            writer=self.writer,
            fan_out=self.fan_out,
            chainer=self.chainer,
            settings=self.settings,
        )

    async def start(self) -> None:
        self.queue.start()

    async def shutdown(self) -> None:
        await self.queue.stop()
        await self.provider.close()
        if self.ai is not None:
            await self.ai.aclose()


def build_default_service(settings: Optional[Settings] = None) -> MentionFlowService:
    """Production wiring: Apify provider plus the configured LLM judge."""
    from intelligence import LLMJudge
    from scrapers import ApifyProvider

    settings = settings or get_settings()
    llm = settings.llm
    api_key = llm.deepseek_api_key if llm.provider.lower() == "deepseek" else llm.openai_api_key
    ai: Optional[BaseAIProvider] = LLMJudge() if api_key else None
    return MentionFlowService(provider=ApifyProvider(), ai=ai, settings=settings)
