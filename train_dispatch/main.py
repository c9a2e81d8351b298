import logging

from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse

from train_dispatch.api.api_v1.router import api_router
from train_dispatch.core.config import settings
from train_dispatch.core.errors import DispatchError
from train_dispatch.core.logging import configure_logging
from train_dispatch.db.init_db import init_db

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    description="API for running SDXL Dreambooth LoRA training jobs.",
    version=settings.app_version,
    default_response_class=ORJSONResponse,
    openapi_url=f"{settings.api_v1_str}/openapi.json",
)
app.include_router(api_router, prefix=settings.api_v1_str)


@app.exception_handler(DispatchError)
async def dispatch_error_handler(request: Request, exc: DispatchError) -> ORJSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    http = exc.to_http()
    return ORJSONResponse(status_code=http.status_code, content={"detail": http.detail})


@app.on_event("startup")
async def startup_event() -> None:
    configure_logging()
    await init_db()


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/")
async def root() -> dict:
    return {"service": settings.app_name, "api": settings.api_v1_str}


def run() -> None:
    import uvicorn

    uvicorn.run("train_dispatch.main:app", host="0.0.0.0", port=8000, reload=True)
