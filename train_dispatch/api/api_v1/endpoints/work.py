from fastapi import APIRouter, Body, Depends

from train_dispatch.api.api_v1.deps import get_scheduler, worker_from_query
from train_dispatch.schemas.common import StatusResponse
from train_dispatch.schemas.event import WorkerMeta
from train_dispatch.schemas.job import WorkOut
from train_dispatch.services.scheduler import LeaseScheduler
from train_dispatch.services.serializers import work_out

router = APIRouter()


@router.get("/work", response_model=list[WorkOut])
async def get_work(
    worker: WorkerMeta = Depends(worker_from_query),
    scheduler: LeaseScheduler = Depends(get_scheduler),
):
    assignment = await scheduler.claim_next_job(worker)
    return [work_out(assignment)] if assignment else []


@router.get("/work/peek", response_model=list[WorkOut])
async def peek_work(scheduler: LeaseScheduler = Depends(get_scheduler)):
    assignment = await scheduler.peek_next_job()
    return [work_out(assignment)] if assignment else []


@router.post("/heartbeat/{job_id}", response_model=StatusResponse)
async def job_heartbeat(
    job_id: str,
    worker: WorkerMeta | None = Body(default=None),
    scheduler: LeaseScheduler = Depends(get_scheduler),
):
    row = await scheduler.heartbeat(job_id, worker)
    return StatusResponse(job_status=row.status)
