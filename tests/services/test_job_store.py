import pytest

from train_dispatch.core.errors import DuplicateId, InvalidTransition, NotFound, NotRunning
from train_dispatch.models import TrainingJob
from train_dispatch.services.job_store import JobStore


def _job(job_id: str, clock) -> TrainingJob:
    return TrainingJob(
        id=job_id,
        status="pending",
        created_at=clock(),
        data_bucket="training-data",
        checkpoint_bucket="training-checkpoints",
        checkpoint_prefix=f"loras/{job_id}/",
        instance_data_prefix="datasets/dog/",
        params_json={"instance_prompt": "a photo of sks dog"},
    )


@pytest.mark.asyncio
async def test_create_get_and_duplicate(session, clock):
    store = JobStore(session, clock)
    await store.create(_job("job-1", clock))
    await session.commit()

    row = await store.get("job-1")
    assert row.status == "pending"
    assert row.params_json == {"instance_prompt": "a photo of sks dog"}

    with pytest.raises(DuplicateId):
        await store.create(_job("job-1", clock))
    with pytest.raises(NotFound):
        await store.get("missing")


@pytest.mark.asyncio
async def test_list_orders_by_creation_and_filters(session, clock):
    store = JobStore(session, clock)
    for job_id in ("b", "a", "c"):
        await store.create(_job(job_id, clock))
        clock.advance(1)
    await session.commit()
    await store.set_status("a", "running")
    await session.commit()

    assert [j.id for j in await store.list()] == ["b", "a", "c"]
    assert [j.id for j in await store.list(status="pending")] == ["b", "c"]
    assert [j.id for j in await store.list(limit=2)] == ["b", "a"]


@pytest.mark.asyncio
async def test_transitions_stamp_timestamps(session, clock):
    store = JobStore(session, clock)
    await store.create(_job("job-1", clock))
    clock.advance(5)

    running = await store.set_status("job-1", "running")
    assert running.status == "running"
    assert clock.same_instant(running.started_at, clock.now)
    assert clock.same_instant(running.last_heartbeat, clock.now)

    clock.advance(5)
    failed = await store.set_status("job-1", "failed")
    assert failed.status == "failed"
    assert clock.same_instant(failed.failed_at, clock.now)
    assert failed.completed_at is None
    assert failed.canceled_at is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "path",
    [
        ["complete"],
        ["failed"],
        ["running", "pending"],
        ["running", "complete", "running"],
        ["canceled", "running"],
        ["running", "failed", "canceled"],
    ],
)
async def test_illegal_transitions_raise(session, clock, path):
    store = JobStore(session, clock)
    await store.create(_job("job-1", clock))
    with pytest.raises(InvalidTransition):
        for target in path:
            await store.set_status("job-1", target)


@pytest.mark.asyncio
async def test_touch_heartbeat_requires_running(session, clock):
    store = JobStore(session, clock)
    await store.create(_job("job-1", clock))

    with pytest.raises(NotRunning):
        await store.touch_heartbeat("job-1")
    with pytest.raises(NotFound):
        await store.touch_heartbeat("missing")

    await store.set_status("job-1", "running")
    clock.advance(30)
    row = await store.touch_heartbeat("job-1")
    assert clock.same_instant(row.last_heartbeat, clock.now)


@pytest.mark.asyncio
async def test_set_completion_is_idempotent(session, clock):
    store = JobStore(session, clock)
    await store.create(_job("job-1", clock))

    with pytest.raises(InvalidTransition):
        await store.set_completion("job-1", "training-checkpoints", "loras/job-1/model.safetensors")

    await store.set_status("job-1", "running")
    assert await store.set_completion("job-1", "training-checkpoints", "loras/job-1/model.safetensors") is True
    assert await store.set_completion("job-1", "training-checkpoints", "loras/job-1/model.safetensors") is False

    row = await store.get("job-1")
    assert row.status == "complete"
    assert row.model_key == "loras/job-1/model.safetensors"

    with pytest.raises(InvalidTransition):
        await store.set_completion("job-1", "training-checkpoints", "loras/job-1/other.safetensors")


@pytest.mark.asyncio
async def test_claim_is_conditional_on_observed_row(session, clock):
    store = JobStore(session, clock)
    await store.create(_job("job-1", clock))
    await session.commit()

    observed = await store.get("job-1")
    snapshot = TrainingJob(id=observed.id, status=observed.status, last_heartbeat=observed.last_heartbeat)

    assert await store.claim(observed) is True
    # A second claimant still holding the old view of the row loses.
    assert await store.claim(snapshot) is False
