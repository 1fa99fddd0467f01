"""Database engine, session factory, and declarative base.

All ledger tables share one DeclarativeBase and are scoped per company
by a ``company_id`` column.

Session dependency for FastAPI:
  - get_db()  → one session per request; commits on success, rolls back
                on any exception so multi-step ledger writes land together
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

_engine_kwargs: dict = {"echo": settings.debug and settings.environment != "test"}
if not settings.database_url.startswith("sqlite"):
    _engine_kwargs.update(pool_size=20, max_overflow=10)

engine = create_async_engine(settings.database_url, **_engine_kwargs)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    """Base class for every GreyLedger model."""
    pass


async def get_db() -> AsyncSession:
    """Yield a request-scoped session wrapped in a single transaction."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
