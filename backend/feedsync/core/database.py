from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from .config import settings


def _engine_options(database_url: str) -> dict:
    """Connection pool options; SQLite uses its own pool implementation"""
    if database_url.startswith("sqlite"):
        return {}
    return {
        "pool_size": 20,  # Maximum number of persistent connections
        "max_overflow": 10,  # Maximum number of connections that can be created beyond pool_size
        "pool_timeout": 30,  # Seconds to wait before giving up on getting a connection
        "pool_pre_ping": True,  # Verify connections before using them
        "pool_recycle": 3600,  # Recycle connections after 1 hour to prevent stale connections
    }


# Create async engine with proper connection pool configuration
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    future=True,
    **_engine_options(settings.DATABASE_URL),
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Create declarative base
Base = declarative_base()


# Dependency to get DB session
async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# Dependency to get the session factory (services that open their own sessions)
def get_session_factory() -> async_sessionmaker:
    return AsyncSessionLocal


async def init_db() -> None:
    """Create missing tables; production databases are migrated with Alembic"""
    # Import models so they are registered on Base.metadata
    from feedsync import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
