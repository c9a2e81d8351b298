import asyncio
import logging

from train_dispatch.core.config import settings
from train_dispatch.db.session import SessionLocal, engine
from train_dispatch.services.checkpoints import CheckpointRetention
from train_dispatch.services.failure_tracker import FailureTracker
from train_dispatch.storage.object_store import object_store
from train_dispatch.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run(coro):
    """Run a coroutine on a fresh loop; pooled connections are bound to the loop, so drop them afterwards."""

    async def _wrapped():
        try:
            return await coro
        finally:
            await engine.dispose()

    return asyncio.run(_wrapped())


async def _prune(job_id: str) -> list[str]:
    async with SessionLocal() as session:
        retention = CheckpointRetention(session, object_store, settings.max_stored_checkpoints)
        return await retention.prune(job_id)


async def _purge_bans() -> int:
    async with SessionLocal() as session:
        tracker = FailureTracker(session, settings.ban_ttl_seconds)
        removed = await tracker.purge_expired()
        await session.commit()
        return removed


@celery_app.task(name="train_dispatch.workers.tasks.prune_job_checkpoints")
def prune_job_checkpoints(job_id: str) -> dict:
    deleted = _run(_prune(job_id))
    return {"job_id": job_id, "deleted": deleted}


@celery_app.task(name="train_dispatch.workers.tasks.purge_expired_bans")
def purge_expired_bans() -> dict:
    removed = _run(_purge_bans())
    logger.info("Purged %d expired worker ban(s)", removed)
    return {"removed": removed}
