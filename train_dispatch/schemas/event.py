from datetime import datetime
from typing import Literal

from pydantic import BaseModel


EventType = Literal["created", "started", "heartbeat", "failed", "complete", "canceled"]


class WorkerMeta(BaseModel):
    """Environment a worker reports about itself; every field is optional."""

    organization_name: str | None = None
    project_name: str | None = None
    container_group_name: str | None = None
    machine_id: str | None = None
    container_group_id: str | None = None

    @property
    def identity(self) -> str | None:
        return self.machine_id or None

    def snapshot(self) -> dict:
        return self.model_dump(exclude_none=True, include=set(WorkerMeta.model_fields))


class EventOut(BaseModel):
    id: str
    job_id: str
    event_type: EventType
    event_data: WorkerMeta
    created_at: datetime
