from sqlalchemy.ext.asyncio import AsyncEngine

from train_dispatch.db.session import engine as default_engine
from train_dispatch.models import Base


async def init_db(engine: AsyncEngine | None = None) -> None:
    async with (engine or default_engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
