"""
Operation-scoped database sessions.

Sessions are acquired lazily and released right after each operation, so no
connection is held while a provider or identity HTTP call is in flight.

Usage:
    # Single operation - acquires and releases immediately
    async with get_session() as session:
        result = await session.get(Model, id)

    # Multiple operations in one transaction - share one session
    async with transaction():
        subscriber = await subscriber_repo.get_for_update(subscriber_id)
        await ledger_repo.record(event)
    # Commits together, then releases
"""

import time
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from common.core.otel_axiom_exporter import get_logger
from common.db.session import AsyncSessionLocal

logger = get_logger(__name__)

# Holds the session of the enclosing transaction() block, if any
_current_session: ContextVar[Optional[AsyncSession]] = ContextVar(
    "db_current_session", default=None
)


def in_transaction() -> bool:
    """True when called inside a transaction() block."""
    return _current_session.get() is not None


@asynccontextmanager
async def transaction() -> AsyncGenerator[AsyncSession, None]:
    """
    Explicit transaction boundary.

    All DB operations inside share one session/connection.
    Commits on success, rolls back on exception.

    Raises:
        Exception: Re-raises any exception after rollback
    """
    start = time.perf_counter()
    async with AsyncSessionLocal() as session:
        acquire_time = time.perf_counter() - start
        logger.debug(f"Transaction session acquire: {acquire_time * 1000:.2f}ms")

        token = _current_session.set(session)
        try:
            yield session
            commit_start = time.perf_counter()
            await session.commit()
            commit_time = time.perf_counter() - commit_start
            logger.debug(f"Transaction commit: {commit_time * 1000:.2f}ms")
        except BaseException as e:
            logger.warning(f"Transaction rollback due to: {e!r}")
            await session.rollback()
            raise
        finally:
            _current_session.reset(token)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Get a session for a single DB operation.

    Reuses the session of an enclosing transaction() block without committing.
    Otherwise acquires a new session, commits and releases it immediately.
    """
    existing = _current_session.get()

    if existing is not None:
        yield existing
        return

    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except BaseException as e:
            logger.warning(f"Operation rollback due to: {e!r}")
            await session.rollback()
            raise
