from fastapi import APIRouter, Depends

from train_dispatch.api.api_v1.deps import get_job_service
from train_dispatch.schemas.event import EventOut
from train_dispatch.services.job_service import JobService
from train_dispatch.services.serializers import event_out

router = APIRouter()


@router.get("/job/{job_id}/events", response_model=list[EventOut])
async def list_job_events(job_id: str, svc: JobService = Depends(get_job_service)):
    rows = await svc.list_events(job_id)
    return [event_out(r) for r in rows]
