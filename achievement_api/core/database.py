# achievement_api/core/database.py
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from achievement_api.config import settings

Base = declarative_base()


def build_engine(url: str = None, echo: bool = None) -> AsyncEngine:
    return create_async_engine(
        url or settings.DATABASE_URL,
        echo=settings.DEBUG if echo is None else echo,
        pool_pre_ping=True,
        future=True,
    )


engine = build_engine()
SessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield one session per request."""
    async with SessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker:
    """Factory for callers that need more than one session, e.g. parallel aggregations."""
    return SessionLocal


async def init_models(bind: AsyncEngine = None) -> None:
    # register every table on Base.metadata before create_all
    from achievement_api.models import achievement, user  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
