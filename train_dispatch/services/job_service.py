from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from kombu.exceptions import OperationalError as BrokerUnavailable
from sqlalchemy.ext.asyncio import AsyncSession

from train_dispatch.core.config import SchedulerConfig
from train_dispatch.core.errors import InvalidTransition, NotRunning, storage_guard
from train_dispatch.core.pagination import Cursor
from train_dispatch.models import JobEvent, TrainingJob, new_id, now_utc
from train_dispatch.schemas.job import CreateJobRequest
from train_dispatch.schemas.webhook import StatusWebhook
from train_dispatch.services.checkpoints import CheckpointRetention
from train_dispatch.services.event_log import EventLog
from train_dispatch.services.failure_tracker import FailureTracker
from train_dispatch.services.job_store import JobStore
from train_dispatch.services.state_machine import JobStatus, is_terminal
from train_dispatch.storage.keys import checkpoint_prefix_for, resolve_bucket
from train_dispatch.storage.object_store import ObjectStore
from train_dispatch.workers.tasks import prune_job_checkpoints

logger = logging.getLogger(__name__)


class JobService:
    def __init__(
        self,
        session: AsyncSession,
        store: ObjectStore,
        config: SchedulerConfig,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.session = session
        self.store = store
        self.config = config
        self.clock = clock
        self.jobs = JobStore(session, clock)
        self.events = EventLog(session, clock)
        self.failures = FailureTracker(session, config.ban_ttl_seconds, clock)

    @storage_guard
    async def create(self, request: CreateJobRequest, job_id: str | None = None) -> TrainingJob:
        job_id = job_id or new_id()
        row = TrainingJob(
            id=job_id,
            status=JobStatus.PENDING.value,
            created_at=self.clock(),
            data_bucket=self.config.training_bucket,
            checkpoint_bucket=self.config.checkpoint_bucket,
            checkpoint_prefix=checkpoint_prefix_for(self.config, job_id),
            instance_data_prefix=request.instance_data_prefix,
            class_data_prefix=request.class_data_prefix,
            params_json=request.training_params(),
        )
        await self.jobs.create(row)
        await self.events.append(job_id, "created")
        await self.session.commit()
        logger.info("Created job %s", job_id)
        return await self.jobs.get(job_id)

    @storage_guard
    async def get(self, job_id: str) -> TrainingJob:
        return await self.jobs.get(job_id)

    @storage_guard
    async def list(self, status: str | None = None, after: Cursor | None = None, limit: int | None = None) -> list[TrainingJob]:
        return await self.jobs.list(status=status, after=after, limit=limit)

    @storage_guard
    async def cancel(self, job_id: str) -> TrainingJob:
        row = await self.jobs.get(job_id)
        if row.status == JobStatus.CANCELED.value:
            return row
        row = await self.jobs.set_status(job_id, JobStatus.CANCELED.value)
        await self.events.append(job_id, "canceled")
        await self.failures.clear(job_id)
        await self.session.commit()
        logger.info("Canceled job %s", job_id)
        return row

    @storage_guard
    async def report_progress(self, webhook: StatusWebhook) -> TrainingJob | None:
        """A new checkpoint was uploaded; trim older ones.

        Unknown jobs are ignored so a stale webhook never fails the caller.
        """
        row = await self.jobs.find(webhook.job_id)
        if not row:
            logger.info("Progress webhook for unknown job %s", webhook.job_id)
            return None
        await self.collect_checkpoints(row.id)
        return row

    @storage_guard
    async def report_complete(self, webhook: StatusWebhook) -> TrainingJob:
        bucket = resolve_bucket(self.config, webhook.bucket_name)
        changed = await self.jobs.set_completion(webhook.job_id, bucket, webhook.key)
        if changed:
            await self.events.append(webhook.job_id, "complete", webhook.snapshot())
            await self.failures.clear(webhook.job_id)
            await self.session.commit()
            logger.info("Job %s complete, model at %s/%s", webhook.job_id, bucket, webhook.key)
        await self.collect_checkpoints(webhook.job_id)
        return await self.jobs.get(webhook.job_id)

    @storage_guard
    async def report_failure(self, webhook: StatusWebhook) -> TrainingJob:
        """Count a failed attempt and keep the reporting worker off this job.

        Reaching ``max_failed_attempts`` fails the job for everyone. Reports
        against a job that is already terminal change nothing, and a worker
        repeating a report while its ban is active is counted once.
        """
        job_id = webhook.job_id
        row = await self.jobs.get(job_id)
        if is_terminal(row.status):
            logger.info("Ignoring failure report for %s job %s", row.status, job_id)
            return row
        if row.status != JobStatus.RUNNING.value:
            raise NotRunning(job_id, row.status)

        if webhook.identity and not await self.failures.ban(webhook.identity, job_id):
            logger.info("Worker %s already reported a failure for job %s", webhook.identity, job_id)
            await self.session.rollback()
            return await self.jobs.get(job_id)

        attempts = await self.failures.record_failure(job_id)
        await self.events.append(job_id, "failed", webhook.snapshot())
        if attempts >= self.config.max_failed_attempts:
            try:
                await self.jobs.set_status(job_id, JobStatus.FAILED.value)
            except InvalidTransition:
                settled = await self._discard_if_settled(job_id)
                if settled is None:
                    raise
                return settled
            await self.failures.clear(job_id)
            logger.info("Job %s failed permanently after %d attempts", job_id, attempts)
        else:
            settled = await self._discard_if_settled(job_id)
            if settled is not None:
                return settled
            logger.info("Job %s attempt %d of %d failed", job_id, attempts, self.config.max_failed_attempts)
        await self.session.commit()
        return await self.jobs.get(job_id)

    @storage_guard
    async def list_events(self, job_id: str) -> list[JobEvent]:
        await self.jobs.get(job_id)
        return await self.events.list_for_job(job_id)

    async def collect_checkpoints(self, job_id: str) -> list[str]:
        if self.config.checkpoint_gc_mode == "async":
            try:
                prune_job_checkpoints.delay(job_id)
            except BrokerUnavailable:
                logger.warning("Could not queue checkpoint cleanup for job %s", job_id, exc_info=True)
            return []

        retention = CheckpointRetention(self.session, self.store, self.config.max_stored_checkpoints)
        return await retention.prune(job_id)

    async def _discard_if_settled(self, job_id: str) -> TrainingJob | None:
        """Roll back this request's writes if another request already ended the job."""
        current = await self.jobs.get(job_id)
        if not is_terminal(current.status):
            return None
        status = current.status
        await self.session.rollback()
        logger.info("Job %s became %s concurrently, dropping failure report", job_id, status)
        return await self.jobs.get(job_id)
