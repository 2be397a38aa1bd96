"""Database engine, session factory, and declarative base.

Every workflow table hangs off a single ``Base``.  Versioned entities
(job cards, part requisitions, invoices) declare a ``version`` column as
their mapper ``version_id_col``; see ``jobflow.utils.locks`` for how a
stale version is surfaced to callers.

Session dependency for FastAPI:
  - get_db()  → one transaction per request, committed on success
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from jobflow.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=20,
    max_overflow=10,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    """Declarative base for all JobFlow models."""
    pass


async def get_db() -> AsyncSession:
    """Yield a session; commit when the handler returns, roll back on error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
