from fastapi import APIRouter, Depends, Query

from train_dispatch.api.api_v1.deps import get_job_service
from train_dispatch.core.config import settings
from train_dispatch.core.pagination import Cursor, encode_cursor, paginate
from train_dispatch.schemas.common import CursorPage, StatusResponse
from train_dispatch.schemas.job import CreateJobRequest, JobOut, JobStatusName
from train_dispatch.services.job_service import JobService
from train_dispatch.services.serializers import job_out

router = APIRouter()


@router.post("/job", response_model=JobOut)
async def create_job(request: CreateJobRequest, svc: JobService = Depends(get_job_service)):
    row = await svc.create(request)
    return job_out(row)


@router.get("/jobs", response_model=CursorPage[JobOut])
async def list_jobs(
    status: JobStatusName | None = Query(default=None),
    limit: int = Query(default=settings.page_size_default, ge=1),
    cursor: str | None = Query(default=None),
    svc: JobService = Depends(get_job_service),
):
    page = paginate(limit, cursor, settings.page_size_default, settings.page_size_max)
    # One extra row tells us whether another page exists.
    rows = await svc.list(status=status, after=page.after, limit=page.limit + 1)
    has_more = len(rows) > page.limit
    rows = rows[: page.limit]
    next_cursor = encode_cursor(Cursor(created_at=rows[-1].created_at, job_id=rows[-1].id)) if has_more else None
    return CursorPage[JobOut](items=[job_out(r) for r in rows], next_cursor=next_cursor, has_more=has_more)


@router.get("/job/{job_id}", response_model=JobOut)
async def get_job(job_id: str, svc: JobService = Depends(get_job_service)):
    row = await svc.get(job_id)
    return job_out(row)


@router.post("/job/{job_id}/stop", response_model=StatusResponse)
async def stop_job(job_id: str, svc: JobService = Depends(get_job_service)):
    row = await svc.cancel(job_id)
    return StatusResponse(job_status=row.status)
