from __future__ import annotations

import pytest

from core import BrandContext, IndustryTagTemplate, MentionCandidate, SourceKind
from orchestrator.queue import EnrichmentQueue, WorkItem
from pipeline import EnrichmentFanOut, SentimentEnricher, TagEnricher


TENANT = "tenant_1"
BRAND = BrandContext(tenant_id=TENANT, brand_id="brand_1", brand_name="Acme Coffee")


async def _mentions(store, count: int = 5):
    return await store.upsert_mentions(
        [
            MentionCandidate(
                tenant_id=TENANT,
                brand_id="brand_1",
                run_id="run_1",
                source_kind=SourceKind.GOOGLE_REVIEWS,
                source_id=f"rev-{index}",
                content=f"mention {index}",
            )
            for index in range(1, count + 1)
        ]
    )


@pytest.mark.asyncio
async def test_one_failing_mention_does_not_stop_the_batch(store, ai) -> None:
    mentions = await _mentions(store)
    ai.fail_on = {"mention 3"}

    report = await SentimentEnricher(store=store, ai=ai, delay_seconds=0).run(mentions, BRAND)

    assert (report.total, report.succeeded, report.failed) == (5, 4, 1)
    assert ai.sentiment_calls == [f"mention {index}" for index in range(1, 6)]
    analysed = [m.content for m in mentions if await store.get_sentiment(m.id) is not None]
    assert analysed == ["mention 1", "mention 2", "mention 4", "mention 5"]

    row = await store.get_sentiment(mentions[0].id)
    assert row.ai_provider == "fake-ai"
    assert row.ai_model == "fake-sentiment"
    assert row.confidence == 0.9


@pytest.mark.asyncio
async def test_one_failing_mention_does_not_stop_tagging(store, ai) -> None:
    mentions = await _mentions(store)
    ai.fail_on = {"mention 3"}

    report = await TagEnricher(store=store, ai=ai, delay_seconds=0).run(mentions, BRAND)

    assert (report.total, report.succeeded, report.failed) == (5, 4, 1)
    assert ai.tag_calls == [f"mention {index}" for index in range(1, 6)]
    tag_counts = {m.content: len(await store.list_mention_tags(m.id)) for m in mentions}
    assert tag_counts == {
        "mention 1": 1,
        "mention 2": 1,
        "mention 3": 0,
        "mention 4": 1,
        "mention 5": 1,
    }


@pytest.mark.asyncio
async def test_sentiment_is_never_overwritten(store, ai) -> None:
    mentions = await _mentions(store, 2)
    enricher = SentimentEnricher(store=store, ai=ai, delay_seconds=0)

    await enricher.run(mentions, BRAND)
    second = await enricher.run(mentions, BRAND)

    assert second.skipped == 2
    assert len(ai.sentiment_calls) == 2


@pytest.mark.asyncio
async def test_tagging_uses_catalogue_and_stores_topics(store, ai) -> None:
    [mention] = await _mentions(store, 1)

    report = await TagEnricher(store=store, ai=ai, delay_seconds=0).run([mention], BRAND)

    assert report.succeeded == 1
    [tag] = await store.list_mention_tags(mention.id)
    categories = {c.id: c.name for c in await store.list_categories(TENANT)}
    intents = {i.id: i.name for i in await store.list_intents(TENANT)}
    assert categories[tag.category_id] == "praise"
    assert intents[tag.intent_id] == "recommendation"
    assert tag.priority == "low"
    assert [t.topic for t in await store.list_mention_topics(mention.id)] == ["service"]
    assert await store.list_discovered_tags(TENANT) == []


@pytest.mark.asyncio
async def test_unknown_category_falls_back_and_is_discovered(store, ai) -> None:
    mentions = await _mentions(store, 2)
    ai.tag_reply = ai.tag_reply.model_copy(update={"category": "shipping_delay", "intent": "support_request"})

    report = await TagEnricher(store=store, ai=ai, delay_seconds=0).run(mentions, BRAND)

    assert report.succeeded == 2
    categories = {c.id: c.name for c in await store.list_categories(TENANT)}
    for mention in mentions:
        [tag] = await store.list_mention_tags(mention.id)
        assert categories[tag.category_id] == "neutral"

    [discovered] = await store.list_discovered_tags(TENANT)
    assert discovered.tag_name == "shipping_delay"
    assert discovered.tag_type == "category"
    assert discovered.frequency_count == 2
    assert discovered.confidence_score == 0.7


@pytest.mark.asyncio
async def test_missing_fallback_category_is_created(ai) -> None:
    from storage import InMemoryMentionStore

    store = InMemoryMentionStore(seed_defaults=False)
    [mention] = await _mentions(store, 1)

    await TagEnricher(store=store, ai=ai, delay_seconds=0).run([mention], BRAND)

    names = {c.name for c in await store.list_categories(TENANT)}
    assert names == {"neutral"}
    assert {i.name for i in await store.list_intents(TENANT)} == {"general_feedback"}
    assert len(await store.list_mention_tags(mention.id)) == 1


@pytest.mark.asyncio
async def test_industry_context_reaches_the_judge(store, ai, monkeypatch) -> None:
    [mention] = await _mentions(store, 1)
    store.put_industry_template(
        IndustryTagTemplate(
            industry_id="hospitality",
            category="service",
            topics=["check-in", "breakfast"],
            intents=["booking"],
            ai_prompt_context="Focus on guest experience.",
        )
    )
    seen = {}
    original = ai.judge_tags

    async def _capture(text, industry_context, categories, intents, context=None):
        seen["industry_context"] = industry_context
        return await original(text, industry_context, categories, intents, context)

    monkeypatch.setattr(ai, "judge_tags", _capture)
    brand = BRAND.model_copy(update={"industry_id": "hospitality"})

    await TagEnricher(store=store, ai=ai, delay_seconds=0).run([mention], brand)

    assert seen["industry_context"].startswith("Focus on guest experience.")
    assert "check-in, breakfast" in seen["industry_context"]


@pytest.mark.asyncio
async def test_fan_out_queues_both_tasks(store, ai, settings) -> None:
    mentions = await _mentions(store, 3)
    queue = EnrichmentQueue(maxsize=5, workers=2)
    fan_out = EnrichmentFanOut(store=store, ai=ai, queue=queue, settings=settings.enrichment)

    accepted = fan_out.fan_out(mentions, BRAND, run_id="run_1")
    await queue.join()

    assert accepted == 2
    assert queue.completed == 2
    for mention in mentions:
        assert await store.get_sentiment(mention.id) is not None
        assert len(await store.list_mention_tags(mention.id)) == 1
    assert fan_out.fan_out([], BRAND) == 0

    await queue.stop()


@pytest.mark.asyncio
async def test_full_queue_drops_instead_of_blocking() -> None:
    queue = EnrichmentQueue(maxsize=1, workers=1)

    async def _noop():
        return None

    assert queue.enqueue(WorkItem(name="sentiment", handler=_noop, run_id="r1", size=1)) is True
    assert queue.enqueue(WorkItem(name="tagging", handler=_noop, run_id="r1", size=1)) is False
    assert queue.dropped == 1

    await queue.join()
    assert queue.completed == 1
    await queue.stop()


@pytest.mark.asyncio
async def test_worker_survives_failing_task() -> None:
    queue = EnrichmentQueue(maxsize=5, workers=1)

    async def _boom():
        raise RuntimeError("lost connection")

    async def _ok():
        return "done"

    queue.enqueue(WorkItem(name="sentiment", handler=_boom))
    queue.enqueue(WorkItem(name="tagging", handler=_ok))
    await queue.join()

    assert (queue.completed, queue.failed) == (1, 1)
    await queue.stop()
