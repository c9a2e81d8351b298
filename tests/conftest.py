import asyncio
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

# Settings are read at import time, so the environment is pinned before any app module loads.
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="train_dispatch_tests_"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_ROOT / 'app.db'}"
os.environ["OBJECT_STORE_BACKEND"] = "fs"
os.environ["LOCAL_OBJECT_STORE_PATH"] = str(_TEST_ROOT / "objects")
os.environ["REDIS_URL"] = "redis://localhost:6379/9"

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from train_dispatch.core.config import SchedulerConfig  # noqa: E402
from train_dispatch.db.init_db import init_db  # noqa: E402
from train_dispatch.storage.object_store import LocalObjectStore  # noqa: E402


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    @staticmethod
    def same_instant(a: datetime | None, b: datetime | None) -> bool:
        """SQLite hands datetimes back without tzinfo; compare as UTC."""
        if a is None or b is None:
            return a is b
        return a.replace(tzinfo=timezone.utc) == b.replace(tzinfo=timezone.utc)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def config() -> SchedulerConfig:
    return SchedulerConfig(
        max_heartbeat_age=60,
        max_stored_checkpoints=2,
        max_failed_attempts=3,
        max_claim_attempts_per_poll=5,
        ban_ttl_seconds=3600,
        training_bucket="training-data",
        checkpoint_bucket="training-checkpoints",
    )


@pytest.fixture
def object_store(tmp_path) -> LocalObjectStore:
    return LocalObjectStore(tmp_path / "objects")


@pytest.fixture
def put_object(object_store):
    """Write an object and pin its upload time (epoch seconds)."""

    def _put(bucket: str, key: str, uploaded_at: float, payload: bytes = b"x") -> str:
        path = object_store.root / bucket / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)
        os.utime(path, (uploaded_at, uploaded_at))
        return key

    return _put


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}", poolclass=NullPool)
    await init_db(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def client(tmp_path, config, object_store):
    from train_dispatch.api.api_v1.deps import get_scheduler_config
    from train_dispatch.db.session import get_session
    from train_dispatch.main import app
    from train_dispatch.storage.object_store import get_object_store

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", poolclass=NullPool)
    asyncio.run(init_db(engine))
    factory = async_sessionmaker(engine, expire_on_commit=False)

    async def _session():
        async with factory() as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_object_store] = lambda: object_store
    app.dependency_overrides[get_scheduler_config] = lambda: config
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
