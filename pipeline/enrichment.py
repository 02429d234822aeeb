"""Background sentiment and tagging over newly inserted mentions."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from config import EnrichmentSettings, get_enrichment_settings
from core import (
    BrandContext,
    DiscoveredTag,
    Mention,
    MentionTag,
    MentionTopic,
    SentimentAnalysis,
    TagCategory,
    TagIntent,
)
from intelligence import BaseAIProvider, resolve_prompt_context
from storage import MentionStore
from utils.logger import emit_event

if TYPE_CHECKING:
    from orchestrator.queue import EnrichmentQueue


logger = logging.getLogger(__name__)

FALLBACK_CATEGORY = "neutral"
FALLBACK_INTENT = "general_feedback"
DISCOVERED_TAG_CONFIDENCE = 0.7
ANALYSIS_VERSION = "1.0"


@dataclass
class EnrichmentReport:
    task: str
    total: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0


def _mention_context(mention: Mention, brand: BrandContext) -> Dict[str, Any]:
    return {
        "source_type": mention.source_kind.value,
        "brand_name": brand.brand_name,
        "author": mention.author,
        "author_followers": mention.author_followers,
        "published_at": (mention.published_at or mention.scraped_at).isoformat(),
        "language": mention.language,
        "source_url": mention.source_url,
    }


class SentimentEnricher:
    """Adds one SentimentAnalysis per mention that has none."""

    def __init__(self, *, store: MentionStore, ai: BaseAIProvider, delay_seconds: float = 0.1) -> None:
        self._store = store
        self._ai = ai
        self._delay = max(0.0, float(delay_seconds))

    async def run(self, mentions: Sequence[Mention], brand: BrandContext) -> EnrichmentReport:
        report = EnrichmentReport(task="sentiment", total=len(mentions))
        called = False
        for mention in mentions:
            if await self._store.get_sentiment(mention.id) is not None:
                report.skipped += 1
                continue
            if called and self._delay:
                await asyncio.sleep(self._delay)
            called = True
            try:
                judgment = await self._ai.judge_sentiment(
                    mention.content,
                    {key: value for key, value in _mention_context(mention, brand).items()
                     if key in ("source_type", "brand_name", "author")},
                )
                stored = await self._store.insert_sentiment(
                    SentimentAnalysis(
                        mention_id=mention.id,
                        tenant_id=mention.tenant_id,
                        sentiment=judgment.sentiment,
                        confidence=judgment.confidence,
                        reasoning=judgment.reasoning,
                        ai_model=judgment.model or self._ai.sentiment_model,
                        ai_provider=self._ai.provider_name,
                        analysis_version=ANALYSIS_VERSION,
                    )
                )
            except Exception as exc:
                report.failed += 1
                logger.error("sentiment failed mention_id=%s error=%s", mention.id, exc)
                continue
            if stored is None:
                report.skipped += 1
            else:
                report.succeeded += 1
        return report


class TagEnricher:
    """Tags each untagged mention with a category/intent pair and topics."""

    def __init__(self, *, store: MentionStore, ai: BaseAIProvider, delay_seconds: float = 0.5) -> None:
        self._store = store
        self._ai = ai
        self._delay = max(0.0, float(delay_seconds))

    async def run(self, mentions: Sequence[Mention], brand: BrandContext) -> EnrichmentReport:
        report = EnrichmentReport(task="tagging", total=len(mentions))
        if not mentions:
            return report

        industry_context = await resolve_prompt_context(self._store, brand.industry_id)
        categories = await self._store.list_categories(brand.tenant_id)
        intents = await self._store.list_intents(brand.tenant_id)

        called = False
        for mention in mentions:
            if await self._store.list_mention_tags(mention.id):
                report.skipped += 1
                continue
            if called and self._delay:
                await asyncio.sleep(self._delay)
            called = True
            try:
                await self._tag_one(mention, brand, industry_context, categories, intents)
            except Exception as exc:
                report.failed += 1
                logger.error("tagging failed mention_id=%s error=%s", mention.id, exc)
                continue
            report.succeeded += 1
        return report

    async def _tag_one(
        self,
        mention: Mention,
        brand: BrandContext,
        industry_context: str,
        categories: List[TagCategory],
        intents: List[TagIntent],
    ) -> MentionTag:
        judgment = await self._ai.judge_tags(
            mention.content or mention.title or "",
            industry_context,
            categories,
            intents,
            _mention_context(mention, brand),
        )
        category = await self._resolve_category(judgment.category, mention.tenant_id, categories)
        intent = await self._resolve_intent(judgment.intent, mention.tenant_id, intents)

        tag = await self._store.upsert_mention_tag(
            MentionTag(
                mention_id=mention.id,
                tenant_id=mention.tenant_id,
                category_id=category.id,
                intent_id=intent.id,
                priority=judgment.priority,
                urgency_score=judgment.urgency_score,
                confidence=judgment.confidence,
                ai_model=judgment.model or self._ai.tagging_model,
                ai_provider=self._ai.provider_name,
            )
        )

        if judgment.topics:
            try:
                await self._store.upsert_mention_topics(
                    [
                        MentionTopic(mention_id=mention.id, topic=topic.name, confidence=topic.confidence)
                        for topic in judgment.topics
                    ]
                )
            except Exception as exc:
                # the tag itself is stored; topics are secondary
                logger.warning("topic upsert failed mention_id=%s error=%s", mention.id, exc)

        logger.debug(
            "mention tagged mention_id=%s category=%s intent=%s priority=%s",
            mention.id,
            category.name,
            intent.name,
            judgment.priority,
        )
        return tag

    async def _discover(self, tenant_id: str, name: str, tag_type: str) -> None:
        await self._store.upsert_discovered_tag(
            DiscoveredTag(
                tenant_id=tenant_id,
                tag_name=name,
                tag_type=tag_type,
                confidence_score=DISCOVERED_TAG_CONFIDENCE,
            )
        )
        emit_event("tagging.discovered", tenant_id=tenant_id, tag_type=tag_type, tag_name=name)

    async def _resolve_category(self, name: str, tenant_id: str, categories: List[TagCategory]) -> TagCategory:
        found = _by_name(categories, name)
        if found is not None:
            return found
        await self._discover(tenant_id, name, "category")
        fallback = _by_name(categories, FALLBACK_CATEGORY)
        if fallback is None:
            fallback = await self._store.insert_category(
                TagCategory(name=FALLBACK_CATEGORY, display_name="Neutral")
            )
            categories.append(fallback)
        return fallback

    async def _resolve_intent(self, name: str, tenant_id: str, intents: List[TagIntent]) -> TagIntent:
        found = _by_name(intents, name)
        if found is not None:
            return found
        await self._discover(tenant_id, name, "intent")
        fallback = _by_name(intents, FALLBACK_INTENT)
        if fallback is None:
            fallback = await self._store.insert_intent(
                TagIntent(name=FALLBACK_INTENT, display_name="General feedback")
            )
            intents.append(fallback)
        return fallback


def _by_name(rows: Sequence[Any], name: str) -> Optional[Any]:
    wanted = (name or "").strip().lower()
    for row in rows:
        if row.name.lower() == wanted:
            return row
    return None


class EnrichmentFanOut:
    """
    Schedules sentiment and tagging as two independent queue items.

    ``fan_out`` never awaits AI calls; tests await ``queue.join()``.
    """

    def __init__(
        self,
        *,
        store: MentionStore,
        ai: BaseAIProvider,
        queue: "EnrichmentQueue",
        settings: Optional[EnrichmentSettings] = None,
    ) -> None:
        settings = settings or get_enrichment_settings()
        self.queue = queue
        self.sentiment = SentimentEnricher(store=store, ai=ai, delay_seconds=settings.sentiment_delay_seconds)
        self.tagging = TagEnricher(store=store, ai=ai, delay_seconds=settings.tagging_delay_seconds)

    def fan_out(self, mentions: Sequence[Mention], brand: BrandContext, *, run_id: Optional[str] = None) -> int:
        """Queue both enrichment tasks; returns how many were accepted."""
        if not mentions:
            return 0
        from orchestrator.queue import WorkItem

        batch = list(mentions)
        accepted = 0
        for name, enricher in (("sentiment", self.sentiment), ("tagging", self.tagging)):
            item = WorkItem(
                name=name,
                handler=_reporting(enricher, batch, brand, run_id),
                run_id=run_id,
                size=len(batch),
            )
            if self.queue.enqueue(item):
                accepted += 1
        emit_event("enrichment.scheduled", run_id=run_id, mentions=len(batch), tasks=accepted)
        return accepted


def _reporting(enricher: Any, mentions: List[Mention], brand: BrandContext, run_id: Optional[str]):
    async def handler() -> EnrichmentReport:
        report = await enricher.run(mentions, brand)
        emit_event(
            f"enrichment.{report.task}.completed",
            run_id=run_id,
            tenant_id=brand.tenant_id,
            total=report.total,
            succeeded=report.succeeded,
            skipped=report.skipped,
            failed=report.failed,
        )
        return report

    return handler
