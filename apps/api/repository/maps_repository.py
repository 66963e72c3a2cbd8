"""Repository for maps data access."""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol

import msgspec
from asyncpg import Connection, Record
from litestar.datastructures import State

from utilities.map_search import MapCreditFilters, MapSearchFilters, MapSearchSQLSpecBuilder

from .base import BaseRepository
from .exceptions import RecordNotFoundError, translate_db_errors

IMMUTABLE_MAP_FIELDS = frozenset({"id", "created_at", "submitter_id"})
UPDATABLE_MAP_FIELDS = frozenset({"name", "type", "status", "difficulty", "is_linear", "file_hash", "file_size"})
UPDATABLE_CREDIT_FIELDS = frozenset({"role", "user_id"})

_JSON_COLUMNS = ("images", "credits")


class MapsRepositoryProtocol(Protocol):
    """Data-access contract for maps, shared by every storage engine."""

    def transaction(self) -> AbstractAsyncContextManager[Any]: ...

    async def lock_submitter(self, submitter_id: int, *, conn: Any = None) -> None: ...  # noqa: ANN401

    async def count_pending_maps(self, submitter_id: int, *, conn: Any = None) -> int: ...  # noqa: ANN401

    async def insert(self, data: Mapping[str, Any], *, conn: Any = None) -> dict: ...  # noqa: ANN401

    async def insert_credits(
        self,
        map_id: int,
        credits: list[dict[str, Any]],
        *,
        conn: Any = None,  # noqa: ANN401
    ) -> None: ...

    async def update(self, map_id: int, data: Mapping[str, Any], *, conn: Any = None) -> dict: ...  # noqa: ANN401

    async def fetch_maps(
        self,
        filters: MapSearchFilters,
        *,
        conn: Any = None,  # noqa: ANN401
    ) -> tuple[list[dict], int]: ...

    async def fetch_map(
        self,
        map_id: int,
        expand: frozenset[str] = frozenset(),
        *,
        conn: Any = None,  # noqa: ANN401
    ) -> dict | None: ...

    async def update_credits(
        self,
        criteria: MapCreditFilters,
        patch: Mapping[str, Any],
        *,
        conn: Any = None,  # noqa: ANN401
    ) -> None: ...


def check_map_update_fields(data: Mapping[str, Any]) -> None:
    """Reject writes to immutable or unknown map columns.

    Args:
        data: Fields requested for update.

    Raises:
        ValueError: If a field is immutable or not a map column.
    """
    immutable = IMMUTABLE_MAP_FIELDS.intersection(data)
    if immutable:
        raise ValueError(f"Cannot update immutable map fields: {', '.join(sorted(immutable))}")
    unknown = set(data) - UPDATABLE_MAP_FIELDS
    if unknown:
        raise ValueError(f"Unknown map fields: {', '.join(sorted(unknown))}")


def _record_to_dict(row: Record) -> dict:
    result = dict(row)
    for column in _JSON_COLUMNS:
        if isinstance(result.get(column), (str, bytes)):
            result[column] = msgspec.json.decode(result[column])
    return result


class MapsRepository(BaseRepository):
    """Repository for maps data access backed by PostgreSQL."""

    # Submission bookkeeping

    @translate_db_errors("maps.maps")
    async def lock_submitter(
        self,
        submitter_id: int,
        *,
        conn: Connection | None = None,
    ) -> None:
        """Serialize pending-limit checks for a submitter until the transaction ends.

        Must be called on a connection inside `transaction()`.

        Args:
            submitter_id: Submitting user ID.
            conn: Transaction connection.
        """
        _conn = self._get_connection(conn)

        await _conn.execute("SELECT pg_advisory_xact_lock(hashtextextended('maps.pending', $1))", submitter_id)

    @translate_db_errors("maps.maps")
    async def count_pending_maps(
        self,
        submitter_id: int,
        *,
        conn: Connection | None = None,
    ) -> int:
        """Count maps awaiting upload for a submitter.

        Args:
            submitter_id: Submitting user ID.
            conn: Optional connection for transaction participation.

        Returns:
            Number of maps in `pending_upload`.
        """
        _conn = self._get_connection(conn)

        return await _conn.fetchval(
            "SELECT COUNT(*) FROM maps.maps WHERE submitter_id = $1 AND status = 'pending_upload'",
            submitter_id,
        )

    # Core map operations

    @translate_db_errors("maps.maps")
    async def insert(
        self,
        data: Mapping[str, Any],
        *,
        conn: Connection | None = None,
    ) -> dict:
        """Insert a new map in `pending_upload`.

        Args:
            data: Map fields (name, type, submitter_id, difficulty, is_linear).
            conn: Optional connection for transaction participation.

        Returns:
            The stored map row.

        Raises:
            UniqueConstraintViolationError: If a live map already has this name.
        """
        _conn = self._get_connection(conn)

        row = await _conn.fetchrow(
            """
            INSERT INTO maps.maps (name, type, status, submitter_id, difficulty, is_linear)
            VALUES ($1, $2, 'pending_upload', $3, $4, $5)
            RETURNING id, name, type, status, submitter_id, difficulty, is_linear,
                file_hash, file_size, created_at, updated_at
            """,
            data["name"],
            data["type"],
            data["submitter_id"],
            data["difficulty"],
            data.get("is_linear", False),
        )
        return dict(row)

    @translate_db_errors("maps.maps")
    async def update(
        self,
        map_id: int,
        data: Mapping[str, Any],
        *,
        conn: Connection | None = None,
    ) -> dict:
        """Apply a partial update to a live map.

        Args:
            map_id: Map ID.
            data: Fields to change (only provided fields are updated).
            conn: Optional connection for transaction participation.

        Returns:
            The updated map row.

        Raises:
            ValueError: If an immutable or unknown field is supplied.
            RecordNotFoundError: If no live map has this ID.
            UniqueConstraintViolationError: If the new name is taken.
        """
        check_map_update_fields(data)
        _conn = self._get_connection(conn)

        # Build dynamic UPDATE query
        set_clauses = []
        values: list[object] = []
        for field, value in data.items():
            values.append(value)
            set_clauses.append(f"{field} = ${len(values)}")
        set_clauses.append("updated_at = now()")

        values.append(map_id)
        query = f"""
            UPDATE maps.maps
            SET {", ".join(set_clauses)}
            WHERE id = ${len(values)} AND status <> 'deleted'
            RETURNING id, name, type, status, submitter_id, difficulty, is_linear,
                file_hash, file_size, created_at, updated_at
        """

        row = await _conn.fetchrow(query, *values)
        if row is None:
            raise RecordNotFoundError("maps.maps", map_id)
        return dict(row)

    @translate_db_errors("maps.maps")
    async def fetch_maps(
        self,
        filters: MapSearchFilters,
        *,
        conn: Connection | None = None,
    ) -> tuple[list[dict], int]:
        """Fetch a page of maps and the filtered total.

        Args:
            filters: Filter, expand and pagination settings.
            conn: Optional connection.

        Returns:
            Tuple of (map dicts for the page, count of all matching maps).
        """
        _conn = self._get_connection(conn)

        builder = MapSearchSQLSpecBuilder(filters)
        count_query, count_args = builder.build_count()
        total_count = await _conn.fetchval(count_query, *count_args)

        query, args = builder.build()
        rows = await _conn.fetch(query, *args)
        return [_record_to_dict(row) for row in rows], total_count

    @translate_db_errors("maps.maps")
    async def fetch_map(
        self,
        map_id: int,
        expand: frozenset[str] = frozenset(),
        *,
        conn: Connection | None = None,
    ) -> dict | None:
        """Fetch a single live map.

        Args:
            map_id: Map ID.
            expand: Relations to eager-load (`images`, `credits`).
            conn: Optional connection.

        Returns:
            Map dict, or None if absent or deleted.
        """
        _conn = self._get_connection(conn)

        query, args = MapSearchSQLSpecBuilder(MapSearchFilters(map_id=map_id, expand=expand, take=1)).build()
        row = await _conn.fetchrow(query, *args)
        return _record_to_dict(row) if row else None

    # Related data operations - Credits

    @translate_db_errors("maps.credits")
    async def insert_credits(
        self,
        map_id: int,
        credits: list[dict[str, Any]],
        *,
        conn: Connection | None = None,
    ) -> None:
        """Insert credits for a map.

        Args:
            map_id: Map ID.
            credits: List of credit dicts with user_id and role.
            conn: Optional connection for transaction participation.

        Raises:
            UniqueConstraintViolationError: If a user is credited twice.
            ForeignKeyViolationError: If user_id doesn't exist.
        """
        _conn = self._get_connection(conn)

        if not credits:
            return

        await _conn.executemany(
            """
            INSERT INTO maps.credits (map_id, user_id, role)
            VALUES ($1, $2, $3)
            """,
            [(map_id, c["user_id"], c["role"]) for c in credits],
        )

    @translate_db_errors("maps.credits")
    async def update_credits(
        self,
        criteria: MapCreditFilters,
        patch: Mapping[str, Any],
        *,
        conn: Connection | None = None,
    ) -> None:
        """Bulk update credit rows matching the criteria.

        Args:
            criteria: Which credits to update; at least one criterion is required.
            patch: Columns to set (`role`, `user_id`).
            conn: Optional connection for transaction participation.

        Raises:
            ValueError: If criteria are empty or the patch names unknown columns.
        """
        if criteria.is_empty():
            raise ValueError("Refusing to update credits without criteria")
        unknown = set(patch) - UPDATABLE_CREDIT_FIELDS
        if unknown:
            raise ValueError(f"Unknown credit fields: {', '.join(sorted(unknown))}")
        if not patch:
            return

        _conn = self._get_connection(conn)

        values: list[object] = []
        set_clauses = []
        for field, value in patch.items():
            values.append(value)
            set_clauses.append(f"{field} = ${len(values)}")

        where_clauses = []
        for field in ("map_id", "user_id", "role"):
            value = getattr(criteria, field)
            if value is not None:
                values.append(value)
                where_clauses.append(f"{field} = ${len(values)}")

        await _conn.execute(
            f"UPDATE maps.credits SET {', '.join(set_clauses)} WHERE {' AND '.join(where_clauses)}",
            *values,
        )


async def provide_maps_repository(state: State) -> MapsRepositoryProtocol:
    """Litestar DI provider for repository.

    Args:
        state: Application state.

    Returns:
        Repository instance, built over the app's pool unless one was injected.
    """
    repo = state.get("maps_repository")
    if repo is not None:
        return repo
    return MapsRepository(state.db_pool)
