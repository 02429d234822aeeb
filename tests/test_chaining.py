from __future__ import annotations

import pytest

from core import RunStatus, SourceKind
from orchestrator import JobCreate, extract_references


TENANT = "tenant_1"


def _succeeded(handle: str) -> dict:
    return {"eventType": "ACTOR.RUN.SUCCEEDED", "eventData": {"actorRunId": handle}}


async def _instagram_run(service, **config):
    job = await service.registry.create(
        TENANT,
        JobCreate(
            brand_id="brand_1",
            name="Instagram",
            source_kind=SourceKind.INSTAGRAM,
            config={"usernames": ["acme"], **config},
        ),
    )
    run = await service.registry.trigger(job.id, TENANT)
    return job, run


def test_extract_references_dedupes_and_caps() -> None:
    items = [
        {"url": "https://www.instagram.com/p/abc/"},
        {"shortCode": "def"},
        {"url": "https://www.instagram.com/p/abc/", "shortCode": "abc"},
        {"caption": "no link"},
        "junk",
        {"shortCode": "ghi"},
    ]

    assert extract_references(items, 10) == [
        "https://www.instagram.com/p/abc/",
        "https://www.instagram.com/p/def/",
        "https://www.instagram.com/p/ghi/",
    ]
    assert extract_references(items, 1) == ["https://www.instagram.com/p/abc/"]


@pytest.mark.asyncio
async def test_first_phase_completion_starts_dependent_run(service, store, provider) -> None:
    _, parent = await _instagram_run(service)
    provider.datasets["R1"] = [
        {"shortCode": "abc", "url": "https://www.instagram.com/p/abc/", "caption": "new menu"},
        {"shortCode": "def", "caption": "weekend hours"},
        {"url": "https://www.instagram.com/p/abc/"},
    ]

    outcome = await service.gateway.handle_payload(_succeeded("R1"))

    assert outcome.status == "processed"
    assert len(provider.started) == 2
    second = provider.started[1]
    assert second["source_kind"] == SourceKind.INSTAGRAM_COMMENTS
    assert second["config"] == {
        "directUrls": ["https://www.instagram.com/p/abc/", "https://www.instagram.com/p/def/"],
        "resultsLimit": 20,
    }

    parent_row = await store.get_run(parent.id)
    assert parent_row.status == RunStatus.COMPLETED
    assert parent_row.items_found == 3
    child = await store.get_run(parent_row.metadata["chained_run_id"])
    assert child.status == RunStatus.RUNNING
    assert child.external_run_id == "R2"
    assert child.is_dependent_phase
    assert child.metadata["parent_run_id"] == parent.id
    assert child.metadata["phase"] == 2
    assert child.metadata["source_kind"] == "instagram_comments"
    # first-phase posts are not stored as mentions
    assert await store.list_mentions(TENANT) == []


@pytest.mark.asyncio
async def test_dependent_run_completion_ingests_comments(service, store, provider) -> None:
    _, parent = await _instagram_run(service)
    provider.datasets["R1"] = [{"shortCode": "abc"}]
    await service.gateway.handle_payload(_succeeded("R1"))
    provider.datasets["R2"] = [
        {"id": "c1", "text": "love the new menu", "ownerUsername": "fan", "postUrl": "https://www.instagram.com/p/abc/"},
        {"id": "c2", "text": "when do you open?", "ownerUsername": "guest"},
    ]

    outcome = await service.gateway.handle_payload(_succeeded("R2"))
    await service.queue.join()

    assert outcome.inserted == 2
    assert len(provider.started) == 2
    mentions = await store.list_mentions(TENANT)
    assert {m.source_kind for m in mentions} == {SourceKind.INSTAGRAM_COMMENTS}
    assert {m.metadata["parent_run_id"] for m in mentions} == {parent.id}
    await service.queue.stop()


@pytest.mark.asyncio
async def test_reference_cap_comes_from_job_config(service, provider) -> None:
    await _instagram_run(service, max_comment_posts=1)
    provider.datasets["R1"] = [{"shortCode": "abc"}, {"shortCode": "def"}]

    await service.gateway.handle_payload(_succeeded("R1"))

    assert provider.started[1]["config"]["directUrls"] == ["https://www.instagram.com/p/abc/"]


@pytest.mark.asyncio
async def test_no_references_records_chaining_error(service, store, provider) -> None:
    _, parent = await _instagram_run(service)
    provider.datasets["R1"] = [{"caption": "no links at all"}]

    await service.gateway.handle_payload(_succeeded("R1"))

    parent_row = await store.get_run(parent.id)
    assert parent_row.status == RunStatus.COMPLETED
    assert parent_row.metadata["chaining_error"] == "No references found for dependent phase"
    assert "chained_run_id" not in parent_row.metadata
    assert len(provider.started) == 1


@pytest.mark.asyncio
async def test_replayed_parent_callback_does_not_chain_twice(service, store, provider) -> None:
    _, parent = await _instagram_run(service)
    provider.datasets["R1"] = [{"shortCode": "abc"}]

    await service.gateway.handle_payload(_succeeded("R1"))
    await service.gateway.handle_payload(_succeeded("R1"))

    assert len(provider.started) == 2
    runs = await store.list_runs(tenant_id=TENANT)
    assert len(runs) == 2


@pytest.mark.asyncio
async def test_dependent_start_failure_keeps_parent_completed(service, store, provider) -> None:
    from utils.exceptions import ProviderError

    _, parent = await _instagram_run(service)
    provider.datasets["R1"] = [{"shortCode": "abc"}]
    provider.start_error = ProviderError("out of credits", provider="fake")

    await service.gateway.handle_payload(_succeeded("R1"))

    parent_row = await store.get_run(parent.id)
    assert parent_row.status == RunStatus.COMPLETED
    assert parent_row.metadata["chaining_error"] == "Failed to start dependent run: out of credits"
