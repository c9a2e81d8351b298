import functools

from fastapi import HTTPException
from sqlalchemy.exc import InterfaceError, OperationalError


def api_error(status_code: int, code: str, message: str, detail: dict | None = None, hint: str | None = None) -> HTTPException:
    payload = {
        "code": code,
        "message": message,
        "detail": detail or {},
        "hint": hint,
    }
    return HTTPException(status_code=status_code, detail=payload)


class DispatchError(Exception):
    """Base class for errors the scheduling core surfaces to its callers."""

    status_code = 500
    code = "internal_error"
    hint: str | None = None

    def __init__(self, message: str, **detail):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_http(self) -> HTTPException:
        return api_error(self.status_code, self.code, self.message, self.detail, hint=self.hint)


class NotFound(DispatchError):
    status_code = 404
    code = "job_not_found"

    def __init__(self, job_id: str):
        super().__init__("Job not found", job_id=job_id)


class InvalidTransition(DispatchError):
    status_code = 409
    code = "invalid_transition"

    def __init__(self, job_id: str, current: str, target: str):
        super().__init__(f"Cannot move job from {current} to {target}", job_id=job_id, current=current, target=target)


class NotRunning(DispatchError):
    status_code = 400
    code = "job_not_running"
    hint = "The lease on this job was lost; poll for new work."

    def __init__(self, job_id: str, current: str | None = None):
        super().__init__("Job not running", job_id=job_id, current=current)


class DuplicateId(DispatchError):
    status_code = 409
    code = "duplicate_job_id"

    def __init__(self, job_id: str):
        super().__init__("A job with this id already exists", job_id=job_id)


class ValidationFailed(DispatchError):
    status_code = 400
    code = "validation_failed"


class StorageUnavailable(DispatchError):
    status_code = 503
    code = "storage_unavailable"
    hint = "Transient backend failure; retry with backoff."

    def __init__(self, backend: str, reason: str):
        super().__init__(f"{backend} is unavailable", backend=backend, reason=reason)


def storage_guard(fn):
    """Report database connectivity failures as StorageUnavailable."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except (OperationalError, InterfaceError) as exc:
            raise StorageUnavailable("database", str(exc.orig or exc)) from exc

    return wrapper
