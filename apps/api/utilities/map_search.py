from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from textwrap import dedent
from typing import TypeAlias, cast

import msgspec
from mapdepot_sdk.maps import MapCreditRole, MapType
from sqlspec import Select, sql
from sqlspec.adapters.asyncpg import default_statement_config

StatementParams: TypeAlias = Mapping[str, object] | Sequence[object] | object | None

MAP_COLUMNS: tuple[str, ...] = (
    "m.id",
    "m.name",
    "m.type",
    "m.status",
    "m.submitter_id",
    "m.difficulty",
    "m.is_linear",
    "m.file_hash",
    "m.file_size",
    "m.created_at",
    "m.updated_at",
)


class QueryWithArgs(msgspec.Struct):
    """Container for a SQL query string and its bound parameters."""

    query: str
    args: list[object]

    def __iter__(self) -> Iterator[object]:
        """Yield the query string and args for tuple unpacking.

        Yields:
            object: The SQL query string.
            object: The positional argument list for the query.
        """
        yield self.query
        yield self.args


class MapSearchFilters(msgspec.Struct):
    """Filter set for map queries. `None` means "no constraint".

    Deleted maps never match. `user_id` identifies the requester; it does not
    narrow results yet and is carried so visibility rules can use it.
    """

    map_id: int | None = None
    search: str | None = None
    submitter_id: int | None = None
    type: MapType | None = None
    difficulty_low: int | None = None
    difficulty_high: int | None = None
    is_linear: bool | None = None
    user_id: int | None = None
    expand: frozenset[str] = frozenset()
    skip: int = 0
    take: int | None = 10


class MapCreditFilters(msgspec.Struct):
    """Criteria selecting credit rows for a bulk update."""

    map_id: int | None = None
    user_id: int | None = None
    role: MapCreditRole | None = None

    def is_empty(self) -> bool:
        """Whether no criterion is set (which would match every credit)."""
        return self.map_id is None and self.user_id is None and self.role is None


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input matches literally.

    Args:
        value: Raw search text.

    Returns:
        str: Text safe to embed in a LIKE pattern using backslash escapes.
    """
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")

class MapSearchSQLSpecBuilder:
    """Build the map listing and count queries using SQLSpec primitives.

    Both queries share the same WHERE clause, so the count always reflects the
    filtered set before LIMIT/OFFSET.
    """

    def __init__(self, filters: MapSearchFilters) -> None:
        """Initialize the builder with the given filters.

        Args:
            filters: Filter set that drives WHERE, expand and pagination behavior.
        """
        self._filters = filters
        self.validate()

    def validate(self) -> None:
        """Validate filter combinations.

        Raises:
            ValueError: If the difficulty range is inverted or pagination is negative.
        """
        low, high = self._filters.difficulty_low, self._filters.difficulty_high
        if low is not None and high is not None and low > high:
            raise ValueError("difficulty_low cannot exceed difficulty_high")

        if self._filters.skip < 0:
            raise ValueError("skip cannot be negative")

        if self._filters.take is not None and self._filters.take < 0:
            raise ValueError("take cannot be negative")

    def build(self) -> QueryWithArgs:
        """Compile the listing query into SQL text and bound parameters.

        Returns:
            QueryWithArgs: SELECT with expand columns, ordering and pagination.
        """
        query = sql.select(*MAP_COLUMNS, *self._expand_columns()).from_("maps.maps", alias="m")
        self._apply_where_clauses(query)
        query.order_by("m.id ASC")
        self._apply_pagination(query)
        return self._compile(query)

    def build_count(self) -> QueryWithArgs:
        """Compile the count query for the same filters.

        Returns:
            QueryWithArgs: `COUNT(*)` over the filtered set, without pagination.
        """
        query = sql.select("COUNT(*) AS total_count").from_("maps.maps", alias="m")
        self._apply_where_clauses(query)
        return self._compile(query)

    def _apply_where_clauses(self, query: Select) -> None:
        """Apply the filter predicates. Unset filters add nothing.

        Args:
            query: Select builder to update with WHERE clauses.
        """
        query.where("m.status <> 'deleted'")

        if self._filters.map_id is not None:
            query.where_eq("m.id", self._filters.map_id)

        if self._filters.search:
            # Backslash is the default LIKE escape character in PostgreSQL.
            query.where_ilike("m.name", f"%{escape_like(self._filters.search)}%")

        if self._filters.submitter_id is not None:
            query.where_eq("m.submitter_id", self._filters.submitter_id)

        if self._filters.type is not None:
            query.where_eq("m.type", self._filters.type)

        if self._filters.difficulty_low is not None:
            query.where_gte("m.difficulty", self._filters.difficulty_low)

        if self._filters.difficulty_high is not None:
            query.where_lte("m.difficulty", self._filters.difficulty_high)

        if self._filters.is_linear is not None:
            query.where_eq("m.is_linear", self._filters.is_linear)

    def _apply_pagination(self, query: Select) -> None:
        """Apply limit/offset pagination to the query builder.

        Args:
            query: Select builder to update with LIMIT/OFFSET.
        """
        if self._filters.take is not None:
            query.limit(self._filters.take)
        if self._filters.skip:
            query.offset(self._filters.skip)

    def _compile(self, query: Select) -> QueryWithArgs:
        statement = query.to_statement(config=default_statement_config)
        compiled_sql, compiled_params = statement.compile()
        return QueryWithArgs(compiled_sql, self._normalize_params(cast(StatementParams, compiled_params)))

    def _expand_columns(self) -> list[str]:
        columns: list[str] = []
        if "images" in self._filters.expand:
            columns.append(self._images_json_column())
        if "credits" in self._filters.expand:
            columns.append(self._credits_json_column())
        return columns

    @staticmethod
    def _images_json_column() -> str:
        return dedent(
            """
            COALESCE((
                SELECT jsonb_agg(
                    jsonb_build_object(
                        'id', i.id,
                        'map_id', i.map_id,
                        'small', i.small,
                        'medium', i.medium,
                        'large', i.large
                    ) ORDER BY i.id
                )
                FROM maps.images i
                WHERE i.map_id = m.id
            ), '[]'::jsonb) AS images
            """
        ).strip()

    @staticmethod
    def _credits_json_column() -> str:
        return dedent(
            """
            COALESCE((
                SELECT jsonb_agg(
                    jsonb_build_object(
                        'map_id', c.map_id,
                        'user_id', c.user_id,
                        'role', c.role
                    ) ORDER BY c.user_id
                )
                FROM maps.credits c
                WHERE c.map_id = m.id
            ), '[]'::jsonb) AS credits
            """
        ).strip()

    @staticmethod
    def _normalize_params(compiled_params: StatementParams) -> list[object]:
        """Normalize SQLSpec compiled params into a positional list.

        Args:
            compiled_params: Parameters produced by SQLSpec compilation.

        Returns:
            list[object]: Positional parameter list.
        """
        if compiled_params is None:
            return []
        if isinstance(compiled_params, Mapping):
            return list(compiled_params.values())
        if isinstance(compiled_params, Sequence) and not isinstance(compiled_params, (str, bytes, bytearray)):
            return list(compiled_params)
        return [compiled_params]
