"""Database engine, session factory and declarative base."""
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base

from app.config import settings


def _async_url(url: str) -> str:
    """Force the asyncpg driver on plain postgres URLs."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


# echo=True will log SQL queries for debugging
engine = create_async_engine(
    _async_url(settings.DATABASE_URL),
    echo=False,
    future=True,
    pool_pre_ping=True,
)

async_session_maker = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

Base = declarative_base()


async def get_db():
    """Yield a database session for the lifetime of one request."""
    async with async_session_maker() as session:
        yield session
