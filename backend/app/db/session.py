"""Database session configuration with async SQLAlchemy."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.config import settings

# Convert postgresql:// to postgresql+asyncpg://
database_url = settings.DATABASE_URL
if database_url.startswith("postgresql://"):
    database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

# Create async engine with connection pooling
engine = create_async_engine(
    database_url,
    echo=settings.ENVIRONMENT == "development",
    future=True,
    pool_pre_ping=True,
    poolclass=NullPool if settings.ENVIRONMENT == "test" else None,
)

# Create session factory
SessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

SessionFactory = async_sessionmaker[AsyncSession]


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting the request-scoped async session.

    Catalog and scenario reads go through this session; shared evaluation
    state (tokens, cache, ledger, error log) uses ``isolated_transaction``.

    Yields:
        AsyncSession: Database session
    """
    async with SessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def isolated_transaction(
    session_factory: SessionFactory = SessionLocal,
) -> AsyncIterator[AsyncSession]:
    """
    Open a short-lived session with its own transaction.

    Commits on exit and rolls back on error, independently of any request
    session, so a failed evaluation cannot undo a token decrement, a cache
    write, an audit append or an error record.

    Args:
        session_factory: Session factory to draw from

    Yields:
        AsyncSession inside an open transaction
    """
    async with session_factory() as session:
        async with session.begin():
            yield session
