"""
Base Repository

Shared plumbing for repositories that open one short session per call.
Driver and timeout failures are translated into PersistenceError so
callers can tell "no row" (None) from "datastore failed" (exception).
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncGenerator, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.database import get_session_context
from app.infrastructure.exceptions import PersistenceError


SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


class BaseRepository:
    """
    Base class for session-per-call repositories.

    Args:
        session_factory: Callable returning an async session context;
            defaults to the application's committing session context
    """

    table_name: str = ""

    def __init__(self, session_factory: SessionFactory = get_session_context):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _unit_of_work(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        """Open a session and map datastore failures to PersistenceError."""
        try:
            async with self._session_factory() as session:
                yield session
        except (SQLAlchemyError, asyncio.TimeoutError, OSError) as e:
            raise PersistenceError(
                f"{operation} failed on {self.table_name}: {e}",
                operation=operation,
                table=self.table_name,
                original_error=e,
            ) from e
