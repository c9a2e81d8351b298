from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from train_dispatch.core.errors import DuplicateId, InvalidTransition, NotFound, NotRunning
from train_dispatch.core.pagination import Cursor
from train_dispatch.models import TrainingJob, new_id, now_utc
from train_dispatch.services.state_machine import TRANSITION_TIMESTAMP, JobStatus, can_transition

# A running job's lease starts at its last heartbeat, or at creation if none was recorded.
lease_start = func.coalesce(TrainingJob.last_heartbeat, TrainingJob.created_at)


class JobStore:
    """Durable job records and the state machine guarding them.

    Mutations are single conditional UPDATE statements that also stamp the
    matching timestamp column, so a reader never sees a status without it.
    The store flushes but never commits; callers own the transaction so the
    state change and its event land together.
    """

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = now_utc):
        self.session = session
        self.clock = clock

    async def create(self, job: TrainingJob) -> TrainingJob:
        if job.id is None:
            job.id = new_id()
        if await self.find(job.id):
            raise DuplicateId(job.id)
        self.session.add(job)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            await self.session.rollback()
            raise DuplicateId(job.id) from exc
        return job

    async def find(self, job_id: str) -> TrainingJob | None:
        return await self.session.get(TrainingJob, job_id, populate_existing=True)

    async def get(self, job_id: str) -> TrainingJob:
        row = await self.find(job_id)
        if not row:
            raise NotFound(job_id)
        return row

    async def list(self, status: str | None = None, after: Cursor | None = None, limit: int | None = None) -> list[TrainingJob]:
        stmt = select(TrainingJob).order_by(TrainingJob.created_at.asc(), TrainingJob.id.asc())
        if status is not None:
            stmt = stmt.where(TrainingJob.status == status)
        if after is not None:
            stmt = stmt.where(
                or_(
                    TrainingJob.created_at > after.created_at,
                    and_(TrainingJob.created_at == after.created_at, TrainingJob.id > after.job_id),
                )
            )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def oldest_abandoned(self, cutoff: datetime, exclude: set[str] | None = None) -> TrainingJob | None:
        stmt = (
            select(TrainingJob)
            .where(TrainingJob.status == JobStatus.RUNNING.value, lease_start < cutoff)
            .order_by(lease_start.asc(), TrainingJob.id.asc())
            .limit(1)
        )
        if exclude:
            stmt = stmt.where(TrainingJob.id.not_in(exclude))
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalars().first()

    async def oldest_pending(self, exclude: set[str] | None = None) -> TrainingJob | None:
        stmt = (
            select(TrainingJob)
            .where(TrainingJob.status == JobStatus.PENDING.value)
            .order_by(TrainingJob.created_at.asc(), TrainingJob.id.asc())
            .limit(1)
        )
        if exclude:
            stmt = stmt.where(TrainingJob.id.not_in(exclude))
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalars().first()

    async def set_status(self, job_id: str, new_status: str) -> TrainingJob:
        row = await self.get(job_id)
        target = JobStatus(new_status)
        if not can_transition(row.status, target):
            raise InvalidTransition(job_id, row.status, target.value)

        now = self.clock()
        if row.status == target.value:
            values = {"last_heartbeat": now}
        else:
            values = {"status": target.value, TRANSITION_TIMESTAMP[target]: now}
            if target is JobStatus.RUNNING:
                values["last_heartbeat"] = now

        updated = await self._conditional_update(row, values)
        if not updated:
            current = await self.get(job_id)
            raise InvalidTransition(job_id, current.status, target.value)
        return await self.get(job_id)

    async def touch_heartbeat(self, job_id: str) -> TrainingJob:
        stmt = (
            update(TrainingJob)
            .where(TrainingJob.id == job_id, TrainingJob.status == JobStatus.RUNNING.value)
            .values(last_heartbeat=self.clock())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            row = await self.find(job_id)
            if not row:
                raise NotFound(job_id)
            raise NotRunning(job_id, row.status)
        return await self.get(job_id)

    async def set_completion(self, job_id: str, model_bucket: str, model_key: str) -> bool:
        """Mark a job complete with its model location.

        Returns False when the same completion was already recorded.
        """
        row = await self.get(job_id)
        if row.status == JobStatus.COMPLETE.value and (row.model_bucket, row.model_key) == (model_bucket, model_key):
            return False
        if not can_transition(row.status, JobStatus.COMPLETE):
            raise InvalidTransition(job_id, row.status, JobStatus.COMPLETE.value)

        values = {
            "status": JobStatus.COMPLETE.value,
            "completed_at": self.clock(),
            "model_bucket": model_bucket,
            "model_key": model_key,
        }
        if not await self._conditional_update(row, values):
            current = await self.get(job_id)
            raise InvalidTransition(job_id, current.status, JobStatus.COMPLETE.value)
        return True

    async def claim(self, job: TrainingJob) -> bool:
        """Take the lease on ``job`` as it was read.

        Succeeds only if nobody else has touched the row since; a pending job
        becomes running, an abandoned running job gets a fresh heartbeat.
        """
        now = self.clock()
        if job.status == JobStatus.PENDING.value:
            values = {"status": JobStatus.RUNNING.value, "started_at": now, "last_heartbeat": now}
        elif job.status == JobStatus.RUNNING.value:
            values = {"last_heartbeat": now}
        else:
            return False
        return await self._conditional_update(job, values)

    async def _conditional_update(self, observed: TrainingJob, values: dict) -> bool:
        stmt = update(TrainingJob).where(TrainingJob.id == observed.id, TrainingJob.status == observed.status)
        if observed.last_heartbeat is None:
            stmt = stmt.where(TrainingJob.last_heartbeat.is_(None))
        else:
            stmt = stmt.where(TrainingJob.last_heartbeat == observed.last_heartbeat)
        result = await self.session.execute(stmt.values(**values).execution_options(synchronize_session=False))
        return result.rowcount == 1
