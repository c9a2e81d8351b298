from fastapi import APIRouter

from train_dispatch.api.api_v1.endpoints import events, jobs, webhooks, work

api_router = APIRouter()
api_router.include_router(jobs.router, tags=["jobs"])
api_router.include_router(events.router, tags=["events"])
api_router.include_router(work.router, tags=["work"])
api_router.include_router(webhooks.router, tags=["webhooks"])
