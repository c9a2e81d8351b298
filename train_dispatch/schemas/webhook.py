from pydantic import Field

from train_dispatch.schemas.event import WorkerMeta


class StatusWebhook(WorkerMeta):
    job_id: str = Field(min_length=1, max_length=64)
    bucket_name: str = Field(min_length=1)
    key: str = Field(min_length=1)
