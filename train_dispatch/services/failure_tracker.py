import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from train_dispatch.models import JobFailure, WorkerBan, now_utc

logger = logging.getLogger(__name__)


class FailureTracker:
    """Per-job failure counters and per-(worker, job) bans.

    These rows live beside the job table rather than in it and can be purged
    on their own schedule without affecting job state.
    """

    def __init__(self, session: AsyncSession, ban_ttl_seconds: int, clock: Callable[[], datetime] = now_utc):
        self.session = session
        self.ban_ttl = timedelta(seconds=ban_ttl_seconds)
        self.clock = clock

    async def record_failure(self, job_id: str) -> int:
        """Increment the job's attempt counter and return the new value."""
        if not await self._increment(job_id):
            try:
                async with self.session.begin_nested():
                    self.session.add(JobFailure(job_id=job_id, attempts=1, updated_at=self.clock()))
            except IntegrityError:
                # Another request created the counter first.
                await self._increment(job_id)
        return await self.attempts(job_id)

    async def attempts(self, job_id: str) -> int:
        value = await self.session.scalar(select(JobFailure.attempts).where(JobFailure.job_id == job_id))
        return value or 0

    async def ban(self, worker_identity: str, job_id: str) -> bool:
        """Ban a worker from a job.

        Returns False when an active ban already exists, which marks a repeated
        report of a failure that was already counted. Expired bans are renewed.
        """
        now = self.clock()
        expires_at = now + self.ban_ttl
        if not await self._renew_expired_ban(worker_identity, job_id, expires_at):
            if await self.is_banned(worker_identity, job_id):
                return False
            try:
                async with self.session.begin_nested():
                    self.session.add(WorkerBan(worker_identity=worker_identity, job_id=job_id, created_at=now, expires_at=expires_at))
            except IntegrityError:
                # A concurrent report for the same worker got there first.
                return False
        logger.info("Banned worker %s from job %s until %s", worker_identity, job_id, expires_at.isoformat())
        return True

    async def is_banned(self, worker_identity: str, job_id: str) -> bool:
        stmt = select(WorkerBan.id).where(
            WorkerBan.worker_identity == worker_identity,
            WorkerBan.job_id == job_id,
            WorkerBan.expires_at > self.clock(),
        )
        return await self.session.scalar(stmt) is not None

    async def banned_job_ids(self, worker_identity: str) -> set[str]:
        stmt = select(WorkerBan.job_id).where(WorkerBan.worker_identity == worker_identity, WorkerBan.expires_at > self.clock())
        result = await self.session.execute(stmt)
        return set(result.scalars().all())

    async def active_ban_count(self, worker_identity: str) -> int:
        stmt = select(func.count(WorkerBan.id)).where(WorkerBan.worker_identity == worker_identity, WorkerBan.expires_at > self.clock())
        return await self.session.scalar(stmt) or 0

    async def clear(self, job_id: str) -> None:
        """Drop counters and bans once a job can no longer be scheduled."""
        await self.session.execute(delete(JobFailure).where(JobFailure.job_id == job_id).execution_options(synchronize_session=False))
        await self.session.execute(delete(WorkerBan).where(WorkerBan.job_id == job_id).execution_options(synchronize_session=False))

    async def purge_expired(self) -> int:
        result = await self.session.execute(delete(WorkerBan).where(WorkerBan.expires_at <= self.clock()).execution_options(synchronize_session=False))
        return result.rowcount or 0

    async def _increment(self, job_id: str) -> bool:
        stmt = (
            update(JobFailure)
            .where(JobFailure.job_id == job_id)
            .values(attempts=JobFailure.attempts + 1, updated_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def _renew_expired_ban(self, worker_identity: str, job_id: str, expires_at: datetime) -> bool:
        stmt = (
            update(WorkerBan)
            .where(
                WorkerBan.worker_identity == worker_identity,
                WorkerBan.job_id == job_id,
                WorkerBan.expires_at <= self.clock(),
            )
            .values(created_at=self.clock(), expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
