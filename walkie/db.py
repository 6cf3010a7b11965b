from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from walkie.load_secrets import database_url
from walkie.models.schemas import Base

if database_url.startswith("sqlite"):
    # aiosqlite connections are bound to the loop that opened them
    engine = create_async_engine(database_url, poolclass=NullPool)
else:
    engine = create_async_engine(database_url, pool_size=20, max_overflow=20)

# Centralized session factory to avoid creating it in router modules.
Session = async_sessionmaker(
    autocommit=False,
    class_=AsyncSession,
    autoflush=True,
    expire_on_commit=False,
    bind=engine,
)


async def create_tables() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
