"""Repository-layer exceptions.

These exceptions represent database-level errors and are raised by repositories
when database operations fail. Services catch these and translate to domain exceptions.
"""

from __future__ import annotations

import asyncio
import functools
import typing
from collections.abc import Awaitable, Callable
from logging import getLogger

import asyncpg

from utilities.errors import parse_pg_detail

log = getLogger(__name__)

P = typing.ParamSpec("P")
R = typing.TypeVar("R")

# Driver, connection and timeout failures that surface as StorageError.
STORAGE_FAILURES = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


class RepositoryError(Exception):
    """Base exception for repository layer errors."""

    def __init__(self, message: str, **context: object) -> None:
        """Initialize repository error.

        Args:
            message: Human-readable error message.
            **context: Additional context about the error.
        """
        self.message = message
        self.context = context
        super().__init__(message)


class UniqueConstraintViolationError(RepositoryError):
    """Database unique constraint was violated."""

    def __init__(self, constraint_name: str, table: str, detail: str | None = None) -> None:
        """Initialize unique constraint violation.

        Args:
            constraint_name: Name of the violated constraint.
            table: Table where violation occurred.
            detail: Optional detail from database error.
        """
        super().__init__(
            f"Unique constraint '{constraint_name}' violated on table '{table}'",
            constraint_name=constraint_name,
            table=table,
            detail=detail,
        )
        self.constraint_name = constraint_name
        self.table = table
        self.detail = detail


class ForeignKeyViolationError(RepositoryError):
    """Database foreign key constraint was violated."""

    def __init__(self, constraint_name: str, table: str, detail: str | None = None) -> None:
        """Initialize foreign key violation.

        Args:
            constraint_name: Name of the violated constraint.
            table: Table where violation occurred.
            detail: Optional detail from database error.
        """
        super().__init__(
            f"Foreign key constraint '{constraint_name}' violated on table '{table}'",
            constraint_name=constraint_name,
            table=table,
            detail=detail,
        )
        self.constraint_name = constraint_name
        self.table = table
        self.detail = detail


class CheckConstraintViolationError(RepositoryError):
    """Database check constraint was violated."""

    def __init__(self, constraint_name: str, table: str, detail: str | None = None) -> None:
        """Initialize check constraint violation.

        Args:
            constraint_name: Name of the violated constraint.
            table: Table where violation occurred.
            detail: Optional detail from database error.
        """
        super().__init__(
            f"Check constraint '{constraint_name}' violated on table '{table}'",
            constraint_name=constraint_name,
            table=table,
            detail=detail,
        )
        self.constraint_name = constraint_name
        self.table = table
        self.detail = detail


class RecordNotFoundError(RepositoryError):
    """Targeted row does not exist (or is no longer live)."""

    def __init__(self, table: str, key: object) -> None:
        """Initialize missing record error.

        Args:
            table: Table that was queried.
            key: Primary key that matched nothing.
        """
        super().__init__(f"No row in '{table}' with key {key!r}", table=table, key=key)
        self.table = table
        self.key = key


class StorageError(RepositoryError):
    """Infrastructure failure: connection loss, timeout, or driver error.

    Not a domain condition; callers surface it as a server-side failure.
    """


def extract_constraint_name(error: Exception) -> str | None:
    """Extract constraint name from asyncpg error.

    Args:
        error: The asyncpg exception.

    Returns:
        Constraint name if found, None otherwise.
    """
    # asyncpg errors have constraint_name attribute
    return getattr(error, "constraint_name", None)


def translate_db_errors(table: str) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorator converting asyncpg failures into repository exceptions.

    Constraint violations become their repository counterparts; every other
    driver, connection or timeout failure becomes `StorageError`.

    Args:
        table: Table name reported in the raised exceptions.

    Returns:
        Decorator for async repository methods.
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return await func(*args, **kwargs)
            except asyncpg.UniqueViolationError as e:
                raise UniqueConstraintViolationError(
                    constraint_name=extract_constraint_name(e) or "unknown",
                    table=table,
                    detail=e.detail,
                ) from e
            except asyncpg.ForeignKeyViolationError as e:
                log.debug("Foreign key violation on %s: %s", table, parse_pg_detail(e.detail))
                raise ForeignKeyViolationError(
                    constraint_name=extract_constraint_name(e) or "unknown",
                    table=table,
                    detail=e.detail,
                ) from e
            except asyncpg.CheckViolationError as e:
                raise CheckConstraintViolationError(
                    constraint_name=extract_constraint_name(e) or "unknown",
                    table=table,
                    detail=e.detail,
                ) from e
            except STORAGE_FAILURES as e:
                log.warning("Storage failure on %s in %s", table, func.__qualname__, exc_info=e)
                raise StorageError(f"Storage failure on table '{table}'", table=table) from e

        return wrapper

    return decorator
