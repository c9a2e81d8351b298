import logging

from sqlalchemy.ext.asyncio import AsyncSession

from train_dispatch.core.errors import StorageUnavailable
from train_dispatch.models import TrainingJob
from train_dispatch.services.job_store import JobStore
from train_dispatch.storage.object_store import ObjectStore, StoredObject, newest_first

logger = logging.getLogger(__name__)


class CheckpointIndex:
    """Read-through view of the object store under a job's prefixes."""

    def __init__(self, store: ObjectStore):
        self.store = store

    def list_checkpoints(self, job: TrainingJob) -> list[StoredObject]:
        if not job.checkpoint_prefix:
            return []
        return newest_first(self.store.list_objects(job.checkpoint_bucket, job.checkpoint_prefix))

    def latest_checkpoint(self, job: TrainingJob) -> str | None:
        checkpoints = self.list_checkpoints(job)
        return checkpoints[0].key if checkpoints else None

    def data_keys(self, bucket: str, prefix: str | None) -> list[str]:
        if not prefix:
            return []
        return sorted(obj.key for obj in self.store.list_objects(bucket, prefix))


class CheckpointRetention:
    """Keeps at most ``max_stored_checkpoints`` objects per job.

    Cleanup is best effort: listing or delete failures are logged and the
    caller carries on.
    """

    def __init__(self, session: AsyncSession, store: ObjectStore, max_stored_checkpoints: int):
        self.session = session
        self.index = CheckpointIndex(store)
        self.store = store
        self.max_stored_checkpoints = max_stored_checkpoints

    async def prune(self, job_id: str) -> list[str]:
        job = await JobStore(self.session).find(job_id)
        if not job:
            logger.info("Skipping checkpoint cleanup for unknown job %s", job_id)
            return []

        try:
            checkpoints = self.index.list_checkpoints(job)
        except StorageUnavailable:
            logger.warning("Could not list checkpoints for job %s", job_id, exc_info=True)
            return []

        excess = checkpoints[self.max_stored_checkpoints :]
        deleted: list[str] = []
        for obj in reversed(excess):
            try:
                self.store.delete(job.checkpoint_bucket, obj.key)
            except StorageUnavailable:
                logger.warning("Failed to delete checkpoint %s for job %s", obj.key, job_id, exc_info=True)
                continue
            deleted.append(obj.key)

        if deleted:
            logger.info("Pruned %d checkpoint(s) for job %s, kept %d", len(deleted), job_id, len(checkpoints) - len(deleted))
        return deleted
