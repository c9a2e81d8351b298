from train_dispatch.schemas.common import CursorPage, StatusResponse
from train_dispatch.schemas.event import EventOut, EventType, WorkerMeta
from train_dispatch.schemas.job import CreateJobRequest, JobOut, JobStatusName, TrainingParams, WorkOut
from train_dispatch.schemas.webhook import StatusWebhook

__all__ = [
    "CursorPage",
    "StatusResponse",
    "EventOut",
    "EventType",
    "WorkerMeta",
    "CreateJobRequest",
    "JobOut",
    "JobStatusName",
    "TrainingParams",
    "WorkOut",
    "StatusWebhook",
]
