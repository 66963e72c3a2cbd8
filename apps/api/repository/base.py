"""Base repository class."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from logging import getLogger

from asyncpg import Connection, Pool

from .exceptions import STORAGE_FAILURES, StorageError

log = getLogger(__name__)


class BaseRepository:
    """Base class for all repositories.

    Repositories handle data access and raise repository-specific exceptions.
    They accept an optional connection parameter for transaction participation.
    """

    def __init__(self, pool: Pool) -> None:
        """Initialize repository.

        Args:
            pool: AsyncPG connection pool.
        """
        self._pool = pool

    def _get_connection(self, conn: Connection | None = None) -> Connection | Pool:
        """Get connection for query execution.

        Args:
            conn: Optional connection from transaction context.

        Returns:
            Connection if provided (for transactions), otherwise pool.
        """
        return conn or self._pool

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Connection]:
        """Acquire a pooled connection and open a transaction on it.

        Yields:
            Connection to pass as `conn=` to repository calls that must commit together.

        Raises:
            StorageError: If acquiring the connection, committing or rolling back fails.
        """
        try:
            async with self._pool.acquire() as conn, conn.transaction():
                yield conn
        except STORAGE_FAILURES as e:
            log.warning("Transaction failed in %s", type(self).__name__, exc_info=e)
            raise StorageError("Storage failure during transaction") from e
