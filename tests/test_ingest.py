from __future__ import annotations

import pytest

from core import Job, Run, RunStatus, SourceKind
from pipeline import IngestionWriter
from pipeline.normalize import normalize
from utils.exceptions import BadRequestError


async def _seed(store) -> tuple:
    job = await store.insert_job(
        Job(
            tenant_id="t1",
            brand_id="b1",
            name="Reviews",
            source_kind=SourceKind.GOOGLE_REVIEWS,
            config={"placeIds": ["ChIJ123"]},
        )
    )
    run = await store.insert_run(
        Run(job_id=job.id, tenant_id="t1", status=RunStatus.COMPLETED, external_run_id="R1")
    )
    return job, run


@pytest.mark.asyncio
async def test_same_item_twice_is_stored_once(store, provider, settings) -> None:
    job, run = await _seed(store)
    writer = IngestionWriter(store=store, provider=provider, settings=settings.pipeline)
    raw = [{"reviewId": "rev-1", "text": "Friendly staff", "name": "Ana"}]

    first = await writer.ingest(run, normalize(raw, run, job))
    second = await writer.ingest(run, normalize(raw, run, job))

    assert first.processed == 1
    assert second.processed == 0
    assert second.failed == 1
    mentions = await store.list_mentions("t1")
    assert len(mentions) == 1
    assert mentions[0].source_id == "rev-1"


@pytest.mark.asyncio
async def test_counters_are_written_to_run(store, provider, settings) -> None:
    job, run = await _seed(store)
    writer = IngestionWriter(store=store, provider=provider, settings=settings.pipeline)
    raw = [
        {"reviewId": "a", "text": "one"},
        {"reviewId": "b", "text": "two"},
        {"reviewId": "a", "text": "one again"},
    ]

    result = await writer.ingest(run, normalize(raw, run, job))

    assert (result.found, result.processed, result.failed) == (3, 2, 1)
    stored = await store.get_run(run.id)
    assert (stored.items_found, stored.items_processed, stored.items_failed) == (3, 2, 1)


@pytest.mark.asyncio
async def test_duplicate_refreshes_existing_content(store, provider, settings) -> None:
    job, run = await _seed(store)
    writer = IngestionWriter(store=store, provider=provider, settings=settings.pipeline)

    await writer.ingest(run, normalize([{"reviewId": "a", "text": "draft"}], run, job))
    await writer.ingest(run, normalize([{"reviewId": "a", "text": "edited review"}], run, job))

    mentions = await store.list_mentions("t1")
    assert [m.content for m in mentions] == ["edited review"]


@pytest.mark.asyncio
async def test_process_run_reads_provider_dataset(store, provider, settings) -> None:
    job, run = await _seed(store)
    provider.datasets["R1"] = [{"reviewId": "a", "text": "fetched"}]
    writer = IngestionWriter(store=store, provider=provider, settings=settings.pipeline)

    result = await writer.process_run(run, job)

    assert provider.fetches == ["R1"]
    assert [m.source_id for m in result.inserted] == ["a"]


@pytest.mark.asyncio
async def test_process_run_requires_external_handle(store, provider, settings) -> None:
    job, _ = await _seed(store)
    orphan = await store.insert_run(Run(job_id=job.id, tenant_id="t1", status=RunStatus.COMPLETED))
    writer = IngestionWriter(store=store, provider=provider, settings=settings.pipeline)

    with pytest.raises(BadRequestError):
        await writer.process_run(orphan, job)
