from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from train_dispatch.core.config import SchedulerConfig
from train_dispatch.core.errors import storage_guard
from train_dispatch.models import TrainingJob, now_utc
from train_dispatch.schemas.event import WorkerMeta
from train_dispatch.services.checkpoints import CheckpointIndex
from train_dispatch.services.event_log import EventLog
from train_dispatch.services.failure_tracker import FailureTracker
from train_dispatch.services.job_store import JobStore
from train_dispatch.services.state_machine import JobStatus
from train_dispatch.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


@dataclass
class WorkAssignment:
    job: TrainingJob
    resume_from: str | None = None
    instance_data_keys: list[str] = field(default_factory=list)
    class_data_keys: list[str] = field(default_factory=list)
    reclaimed: bool = False


class LeaseScheduler:
    """Answers "what should this worker do next?" for polling workers.

    Abandoned running jobs (no heartbeat within ``max_heartbeat_age``) are
    offered before pending ones, most overdue first; pending jobs go out in
    creation order. A claim is a conditional UPDATE against the row as it was
    read, so when several workers race for the same job exactly one wins and
    the others move on to the next candidate.
    """

    def __init__(
        self,
        session: AsyncSession,
        store: ObjectStore,
        config: SchedulerConfig,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.session = session
        self.config = config
        self.clock = clock
        self.jobs = JobStore(session, clock)
        self.events = EventLog(session, clock)
        self.failures = FailureTracker(session, config.ban_ttl_seconds, clock)
        self.checkpoints = CheckpointIndex(store)

    @storage_guard
    async def claim_next_job(self, worker: WorkerMeta | None = None) -> WorkAssignment | None:
        worker = worker or WorkerMeta()
        identity = worker.identity

        excluded: set[str] = set()
        if identity:
            if self.config.max_failures_per_worker > 0:
                active = await self.failures.active_ban_count(identity)
                if active >= self.config.max_failures_per_worker:
                    logger.info("Worker %s holds %d active bans, withholding work", identity, active)
                    return None
            excluded = await self.failures.banned_job_ids(identity)

        for attempt in range(1, self.config.max_claim_attempts_per_poll + 1):
            candidate = await self._select(excluded)
            if candidate is None:
                return None

            job_id = candidate.id
            reclaimed = candidate.status == JobStatus.RUNNING.value
            assignment = self._hydrate(candidate, reclaimed)

            if not await self.jobs.claim(candidate):
                await self.session.rollback()
                logger.info("Lost claim race for job %s (attempt %d)", job_id, attempt)
                continue

            await self.events.append(job_id, "heartbeat" if reclaimed else "started", worker.snapshot())
            await self.session.commit()

            assignment.job = await self.jobs.get(job_id)
            if reclaimed:
                logger.info("Reclaimed abandoned job %s for worker %s", job_id, identity or "anonymous")
            else:
                logger.info("Started job %s on worker %s", job_id, identity or "anonymous")
            return assignment

        logger.warning("No job claimed after %d attempts", self.config.max_claim_attempts_per_poll)
        return None

    @storage_guard
    async def peek_next_job(self) -> WorkAssignment | None:
        candidate = await self._select()
        if candidate is None:
            return None
        return self._hydrate(candidate, candidate.status == JobStatus.RUNNING.value)

    @storage_guard
    async def heartbeat(self, job_id: str, worker: WorkerMeta | None = None) -> TrainingJob:
        job = await self.jobs.touch_heartbeat(job_id)
        await self.events.append(job_id, "heartbeat", (worker or WorkerMeta()).snapshot())
        await self.session.commit()
        return job

    async def _select(self, exclude: set[str] | None = None) -> TrainingJob | None:
        cutoff = self.clock() - timedelta(seconds=self.config.max_heartbeat_age)
        job = await self.jobs.oldest_abandoned(cutoff, exclude)
        if job is not None:
            return job
        return await self.jobs.oldest_pending(exclude)

    def _hydrate(self, job: TrainingJob, reclaimed: bool) -> WorkAssignment:
        return WorkAssignment(
            job=job,
            resume_from=self.checkpoints.latest_checkpoint(job),
            instance_data_keys=self.checkpoints.data_keys(job.data_bucket, job.instance_data_prefix),
            class_data_keys=self.checkpoints.data_keys(job.data_bucket, job.class_data_prefix),
            reclaimed=reclaimed,
        )
