from fastapi import Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from train_dispatch.core.config import SchedulerConfig, settings
from train_dispatch.db.session import get_session
from train_dispatch.schemas.event import WorkerMeta
from train_dispatch.services.job_service import JobService
from train_dispatch.services.scheduler import LeaseScheduler
from train_dispatch.storage.object_store import ObjectStore, get_object_store


def get_scheduler_config() -> SchedulerConfig:
    return settings.scheduler_config()


def get_job_service(
    session: AsyncSession = Depends(get_session),
    store: ObjectStore = Depends(get_object_store),
    config: SchedulerConfig = Depends(get_scheduler_config),
) -> JobService:
    return JobService(session, store, config)


def get_scheduler(
    session: AsyncSession = Depends(get_session),
    store: ObjectStore = Depends(get_object_store),
    config: SchedulerConfig = Depends(get_scheduler_config),
) -> LeaseScheduler:
    return LeaseScheduler(session, store, config)


def worker_from_query(
    organization_name: str | None = Query(default=None),
    project_name: str | None = Query(default=None),
    container_group_name: str | None = Query(default=None),
    machine_id: str | None = Query(default=None),
    container_group_id: str | None = Query(default=None),
) -> WorkerMeta:
    return WorkerMeta(
        organization_name=organization_name,
        project_name=project_name,
        container_group_name=container_group_name,
        machine_id=machine_id,
        container_group_id=container_group_id,
    )
