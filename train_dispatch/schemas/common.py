from typing import Generic, TypeVar

from pydantic import BaseModel


T = TypeVar("T")


class CursorPage(BaseModel, Generic[T]):
    items: list[T]
    next_cursor: str | None = None
    has_more: bool = False


class StatusResponse(BaseModel):
    status: str = "ok"
    job_status: str | None = None
