"""Database connection and session management.

Two stores are configured:
- the complaint store (complaints, users, organizations, chat)
- the identity mapping store (encrypted filer links and their access log)

They may point at the same server, but they never share a session, so a
transaction on one can never read or lock rows of the other.

Transaction Guarantees:
- Each request gets its own session per store
- All operations within a request are atomic per store
- On any exception, the request's transaction is rolled back
- Sessions are properly closed after each request
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
import logging

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


def engine_options(url: str) -> dict[str, Any]:
    """Pool options for a database URL. SQLite manages its own pool."""
    options: dict[str, Any] = {"echo": settings.database_echo}
    if url.startswith("sqlite"):
        return options
    options.update(
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,  # Check connection health before use
        pool_recycle=300,
        pool_timeout=30,
    )
    return options


def build_engine(url: str) -> AsyncEngine:
    return create_async_engine(url, **engine_options(url))


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,  # Don't expire objects after commit
        autoflush=False,         # Manual flush for better control
    )


engine = build_engine(settings.database_url_async)
identity_engine = build_engine(settings.identity_database_url_async)

async_session_factory = build_session_factory(engine)
identity_session_factory = build_session_factory(identity_engine)


@asynccontextmanager
async def get_session_context(
    factory: async_sessionmaker[AsyncSession] | None = None,
    store: str = "complaint store",
) -> AsyncGenerator[AsyncSession, None]:
    """Context manager for transactional sessions (also used outside FastAPI)."""
    async with (factory or async_session_factory)() as session:
        try:
            yield session
            await session.commit()
            logger.debug(f"{store} transaction committed")
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"{store} database error, transaction rolled back: {e}")
            raise
        except Exception as e:
            await session.rollback()
            logger.info(f"{store} transaction rolled back after {type(e).__name__}")
            raise
        finally:
            await session.close()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a transactional complaint-store session.

    Usage in FastAPI:
        @router.post("/items")
        async def create_item(session: SessionDep):
            session.add(item1)
            session.add(item2)  # If this fails, item1 is also rolled back
            # Commit happens automatically after the endpoint returns
    """
    async with get_session_context(async_session_factory) as session:
        yield session


async def get_identity_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides an identity-store session."""
    async with get_session_context(identity_session_factory, "identity store") as session:
        yield session


async def init_db() -> None:
    """Initialize both stores (create tables if needed)."""
    from ..models import Base, IdentityBase

    async with engine.begin() as conn:
        # In production, use migrations instead
        await conn.run_sync(Base.metadata.create_all)
    async with identity_engine.begin() as conn:
        await conn.run_sync(IdentityBase.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
    await identity_engine.dispose()
