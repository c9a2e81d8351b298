import pytest
from sqlalchemy.exc import OperationalError

from train_dispatch.core.errors import InvalidTransition, NotFound, NotRunning, StorageUnavailable, storage_guard


def test_not_found_payload():
    exc = NotFound("job-1").to_http()
    assert exc.status_code == 404
    assert exc.detail["code"] == "job_not_found"
    assert exc.detail["detail"] == {"job_id": "job-1"}


def test_invalid_transition_payload():
    exc = InvalidTransition("job-1", "complete", "running").to_http()
    assert exc.status_code == 409
    assert exc.detail["detail"]["current"] == "complete"
    assert exc.detail["detail"]["target"] == "running"


def test_not_running_carries_hint():
    exc = NotRunning("job-1", "canceled").to_http()
    assert exc.status_code == 400
    assert exc.detail["hint"]


@pytest.mark.asyncio
async def test_storage_guard_translates_operational_errors():
    @storage_guard
    async def broken():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    with pytest.raises(StorageUnavailable) as exc:
        await broken()
    assert exc.value.status_code == 503
    assert exc.value.detail["backend"] == "database"
