from collections.abc import Callable
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from train_dispatch.models import JobEvent, now_utc


class EventLog:
    """Append-only audit trail; rows are inserted and never touched again."""

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = now_utc):
        self.session = session
        self.clock = clock

    async def append(self, job_id: str, event_type: str, event_data: dict | None = None) -> JobEvent:
        last_seq = await self.session.scalar(select(func.coalesce(func.max(JobEvent.seq), 0)).where(JobEvent.job_id == job_id))
        row = JobEvent(
            job_id=job_id,
            event_type=event_type,
            event_data=event_data or {},
            created_at=self.clock(),
            seq=(last_seq or 0) + 1,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def list_for_job(self, job_id: str) -> list[JobEvent]:
        stmt = select(JobEvent).where(JobEvent.job_id == job_id).order_by(JobEvent.created_at.asc(), JobEvent.seq.asc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
