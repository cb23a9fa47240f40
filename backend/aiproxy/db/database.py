"""
Database connection and session management.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from aiproxy.core.config import settings
from aiproxy.core.exceptions import AIProxyException

logger = structlog.get_logger()


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


class DatabaseError(Exception):
    """Database failure outside a request (startup, seeding)."""

    def __init__(self, message: str, original_error: Exception | None = None):
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)


# Engine creation does not connect; the first query does
engine = create_async_engine(
    str(settings.database_url),
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    echo=settings.debug,
    pool_pre_ping=True,
    pool_recycle=3600,
    connect_args={
        "command_timeout": 60,
        "server_settings": {
            "application_name": settings.app_name.lower().replace(" ", "_"),
            "jit": "off",
        },
    },
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting a database session."""
    session = async_session_maker()
    try:
        yield session
    except OperationalError as e:
        logger.error("database_operational_error", error=str(e))
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection failed. Please try again later.",
        ) from e
    except SQLAlchemyError as e:
        logger.error("database_error", error=str(e))
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database operation failed",
        ) from e
    except (AIProxyException, HTTPException):
        # Left to the global exception handlers
        await session.rollback()
        raise
    finally:
        await session.close()


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Session for non-request contexts such as startup seeding."""
    session = async_session_maker()
    try:
        yield session
    except SQLAlchemyError as e:
        logger.error("database_session_error", error=str(e))
        await session.rollback()
        raise DatabaseError(f"Database operation failed: {e}", original_error=e) from e
    finally:
        await session.close()


async def init_db() -> None:
    """Create missing tables.

    Concurrent workers may race on create_all; a duplicate type error means
    another worker won and the tables exist.
    """
    # Register the mapped classes on Base.metadata
    from aiproxy.db import models  # noqa: F401

    try:
        async with engine.begin() as conn:
            await conn.run_sync(lambda sync_conn: Base.metadata.create_all(sync_conn, checkfirst=True))
        logger.info("database_tables_initialized")
    except SQLAlchemyError as e:
        error_str = str(e)
        if (
            "duplicate key value violates unique constraint" in error_str
            and "pg_type_typname_nsp_index" in error_str
        ):
            logger.info("database_tables_created_by_other_worker")
        else:
            logger.error("database_init_failed", error=error_str)
            raise


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()


async def check_database_health() -> bool:
    """Check database connectivity."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError) as e:
        logger.error("database_health_check_failed", error=str(e))
        return False
