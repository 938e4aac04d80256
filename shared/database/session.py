from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)
from typing import AsyncGenerator
import logging

from shared.config import settings

logger = logging.getLogger(__name__)


def _engine_kwargs(database_url: str) -> dict:
    """Pool settings for PostgreSQL; SQLite (tests) takes none of them."""
    kwargs = {"echo": False, "future": True}
    if database_url.startswith("postgresql"):
        kwargs.update({
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        })
    return kwargs


engine = create_async_engine(settings.database_url, **_engine_kwargs(settings.database_url))

SessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


def is_postgresql(session: AsyncSession) -> bool:
    """Row locks and isolation levels only matter on PostgreSQL."""
    return session.bind is not None and session.bind.dialect.name == "postgresql"


async def begin_snapshot(session: AsyncSession) -> None:
    """
    Pin the session to one consistent read snapshot.

    Opens the transaction at REPEATABLE READ on PostgreSQL so every
    subsequent query of a report sees the same committed state. A session
    already inside a transaction keeps the one it has.
    """
    if session.in_transaction():
        return
    if is_postgresql(session):
        await session.connection(execution_options={"isolation_level": "REPEATABLE READ"})


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for FastAPI to get database session."""
    async with SessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def check_db(session_factory=SessionLocal) -> bool:
    """Readiness check: can we run a trivial query?"""
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database readiness check failed: {e}")
        return False


async def init_db():
    """Create tables and seed the system payment-type catalog."""
    from shared.database.base import Base
    from shared import models  # noqa: F401  registers every table on Base.metadata
    from shared.repositories.payment_type import LeasePaymentTypeRepository

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as session:
        repo = LeasePaymentTypeRepository(session)
        created = await repo.seed_defaults()
        await repo.commit()

    logger.info(f"Database initialized ({created} default payment types seeded)")


async def close_db():
    await engine.dispose()
    logger.info("Database connections closed")
