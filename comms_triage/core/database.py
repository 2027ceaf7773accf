"""Database connection and session management.

Transaction Guarantees:
- Each request gets its own session
- Services commit each persisted record explicitly
- On any exception, the open transaction is rolled back
- Sessions are properly closed after each request
"""

from collections.abc import AsyncGenerator
import logging
import ssl

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def _engine_options(db_url: str) -> dict:
    """Pool and driver options for the configured backend."""
    if db_url.startswith("sqlite"):
        return {"echo": settings.database_echo}

    connect_args = {}
    # Hosted Postgres (Supabase, Neon) sits behind pgbouncer and requires SSL
    if settings.environment == "production" or "supabase" in db_url or "pooler" in db_url:
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
        connect_args["ssl"] = ssl_context
        # pgbouncer in transaction mode cannot use prepared statements
        connect_args["prepared_statement_cache_size"] = 0
        connect_args["statement_cache_size"] = 0
        logger.info("Using SSL for database connection with pgbouncer compatibility")

    return {
        "pool_size": 10,
        "max_overflow": 20,
        "echo": settings.database_echo,
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_timeout": 30,
        "connect_args": connect_args,
    }


def build_engine(db_url: str) -> AsyncEngine:
    return create_async_engine(db_url, **_engine_options(db_url))


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,  # Don't expire objects after commit
        autoflush=False,         # Manual flush for better control
    )


engine = build_engine(settings.database_url_async)
async_session_factory = build_session_factory(engine)

if not settings.database_configured:
    logger.warning("DATABASE_URL not set - using local SQLite database")


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.

    - On successful completion: COMMIT anything still pending
    - On any exception: ROLLBACK
    - Session is always closed properly
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database error, transaction rolled back: {e}")
            raise
        except Exception as e:
            await session.rollback()
            logger.error(f"Error during request, transaction rolled back: {e}")
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """Initialize database (create tables if needed)."""
    from ..models import Base

    async with engine.begin() as conn:
        # In production, the schema is managed out of band
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
