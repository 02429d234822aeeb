from __future__ import annotations

import pytest

from core import (
    CallbackEvent,
    CallbackEventKind,
    Job,
    Run,
    RunStatus,
    SourceKind,
    check_transition,
    parse_source_config,
)
from storage import InMemoryMentionStore
from utils.exceptions import BadRequestError, StateTransitionError


@pytest.mark.parametrize("current", [RunStatus.COMPLETED, RunStatus.FAILED])
@pytest.mark.parametrize("target", [RunStatus.SCHEDULED, RunStatus.RUNNING])
def test_terminal_runs_never_move_backwards(current: RunStatus, target: RunStatus) -> None:
    assert current.is_terminal
    assert not current.can_transition_to(target)
    with pytest.raises(StateTransitionError):
        check_transition(current, target)


def test_forward_transitions_are_allowed() -> None:
    check_transition(RunStatus.SCHEDULED, RunStatus.RUNNING)
    check_transition(RunStatus.RUNNING, RunStatus.COMPLETED)
    check_transition(RunStatus.SCHEDULED, RunStatus.FAILED)
    check_transition(RunStatus.COMPLETED, RunStatus.COMPLETED)
    assert not RunStatus.COMPLETED.can_transition_to(RunStatus.FAILED)


def test_callback_kinds_map_to_terminal_status() -> None:
    assert CallbackEventKind.SUCCEEDED.terminal_status == RunStatus.COMPLETED
    for kind in (CallbackEventKind.FAILED, CallbackEventKind.ABORTED, CallbackEventKind.TIMED_OUT):
        assert kind.terminal_status == RunStatus.FAILED


def test_callback_event_requires_handle() -> None:
    with pytest.raises(ValueError):
        CallbackEvent(event_kind=CallbackEventKind.SUCCEEDED, external_run_id="  ")


def test_job_config_is_validated_per_source_kind() -> None:
    job = Job(
        tenant_id="t1",
        brand_id="b1",
        name="Reviews",
        source_kind=SourceKind.GOOGLE_REVIEWS,
        config={"placeIds": ["ChIJ123"]},
    )
    assert job.typed_config().placeIds == ["ChIJ123"]

    with pytest.raises(BadRequestError):
        Job(tenant_id="t1", brand_id="b1", name="Reviews", source_kind=SourceKind.GOOGLE_REVIEWS, config={})


def test_parse_source_config_rejects_unknown_kind() -> None:
    with pytest.raises(BadRequestError):
        parse_source_config("myspace", {})

    config = parse_source_config("instagram", {"usernames": ["acme"], "custom_flag": True})
    assert config.usernames == ["acme"]


@pytest.mark.asyncio
async def test_store_refuses_backward_update() -> None:
    store = InMemoryMentionStore()
    run = await store.insert_run(Run(job_id="j1", tenant_id="t1", status=RunStatus.RUNNING, external_run_id="R1"))
    await store.update_run(run.id, status=RunStatus.COMPLETED)

    with pytest.raises(StateTransitionError):
        await store.update_run(run.id, status=RunStatus.RUNNING)

    stored = await store.get_run(run.id)
    assert stored.status == RunStatus.COMPLETED
