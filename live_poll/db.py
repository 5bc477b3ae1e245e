from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from live_poll.core.config import settings
from live_poll import models  # noqa: F401


engine: AsyncEngine = create_async_engine(settings.assembled_db_url, echo=False, future=True)


async def init_db() -> None:
    """Create the account, quiz and poll history tables if they are missing."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def dispose_db() -> None:
    # Pooled connections belong to the loop that opened them
    await engine.dispose()


@asynccontextmanager
async def get_session():
    async_session = AsyncSession(engine, expire_on_commit=False)
    try:
        yield async_session
    finally:
        await async_session.close()
