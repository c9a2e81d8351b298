from fastapi import APIRouter, Depends

from train_dispatch.api.api_v1.deps import get_job_service
from train_dispatch.schemas.common import StatusResponse
from train_dispatch.schemas.webhook import StatusWebhook
from train_dispatch.services.job_service import JobService

router = APIRouter()


@router.post("/progress", response_model=StatusResponse)
async def job_progress(webhook: StatusWebhook, svc: JobService = Depends(get_job_service)):
    row = await svc.report_progress(webhook)
    return StatusResponse(job_status=row.status if row else None)


@router.post("/complete", response_model=StatusResponse)
async def job_complete(webhook: StatusWebhook, svc: JobService = Depends(get_job_service)):
    row = await svc.report_complete(webhook)
    return StatusResponse(job_status=row.status)


@router.post("/fail", response_model=StatusResponse)
async def job_failed(webhook: StatusWebhook, svc: JobService = Depends(get_job_service)):
    row = await svc.report_failure(webhook)
    return StatusResponse(job_status=row.status)
