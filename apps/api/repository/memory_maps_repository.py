"""In-memory maps repository for local development and tests."""

from __future__ import annotations

import asyncio
import copy
import datetime as dt
import itertools
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from utilities.map_search import MapCreditFilters, MapSearchFilters, MapSearchSQLSpecBuilder

from .exceptions import ForeignKeyViolationError, RecordNotFoundError, UniqueConstraintViolationError
from .maps_repository import UPDATABLE_CREDIT_FIELDS, check_map_update_fields


class InMemoryMapsRepository:
    """Maps repository keeping rows in process memory.

    Honors the same contract as `MapsRepository`: live-name uniqueness,
    deleted maps hidden from reads, filtered counts before pagination.
    `transaction()` serializes callers on a single lock, which is what makes
    the pending-limit check atomic here.
    """

    def __init__(self, known_user_ids: set[int] | None = None) -> None:
        """Initialize empty storage.

        Args:
            known_user_ids: When given, credits for other users are rejected
                like a foreign key violation.
        """
        self._maps: dict[int, dict[str, Any]] = {}
        self._credits: list[dict[str, Any]] = []
        self._images: list[dict[str, Any]] = []
        self._map_ids = itertools.count(1)
        self._image_ids = itertools.count(1)
        self._lock = asyncio.Lock()
        self._known_user_ids = known_user_ids

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Serialize a multi-step operation, restoring prior state if it fails."""
        async with self._lock:
            maps_snapshot = copy.deepcopy(self._maps)
            credits_snapshot = copy.deepcopy(self._credits)
            try:
                yield None
            except BaseException:
                self._maps = maps_snapshot
                self._credits = credits_snapshot
                raise

    async def lock_submitter(self, submitter_id: int, *, conn: object = None) -> None:
        """No-op; `transaction()` already holds the global lock."""

    async def count_pending_maps(self, submitter_id: int, *, conn: object = None) -> int:
        """Count maps awaiting upload for a submitter."""
        return sum(
            1 for m in self._maps.values() if m["submitter_id"] == submitter_id and m["status"] == "pending_upload"
        )

    async def insert(self, data: Mapping[str, Any], *, conn: object = None) -> dict:
        """Insert a new map in `pending_upload`."""
        self._check_name_available(data["name"])
        now = dt.datetime.now(dt.timezone.utc)
        map_id = next(self._map_ids)
        row = {
            "id": map_id,
            "name": data["name"],
            "type": data["type"],
            "status": "pending_upload",
            "submitter_id": data["submitter_id"],
            "difficulty": data["difficulty"],
            "is_linear": data.get("is_linear", False),
            "file_hash": None,
            "file_size": None,
            "created_at": now,
            "updated_at": now,
        }
        self._maps[map_id] = row
        return dict(row)

    async def insert_credits(self, map_id: int, credits: list[dict[str, Any]], *, conn: object = None) -> None:
        """Insert credits for a map."""
        seen = {c["user_id"] for c in self._credits if c["map_id"] == map_id}
        for credit in credits:
            if credit["user_id"] in seen:
                raise UniqueConstraintViolationError("credits_pkey", "maps.credits")
            if self._known_user_ids is not None and credit["user_id"] not in self._known_user_ids:
                raise ForeignKeyViolationError("credits_user_id_fkey", "maps.credits")
            seen.add(credit["user_id"])
        self._credits.extend({"map_id": map_id, "user_id": c["user_id"], "role": c["role"]} for c in credits)

    async def update(self, map_id: int, data: Mapping[str, Any], *, conn: object = None) -> dict:
        """Apply a partial update to a live map."""
        check_map_update_fields(data)
        row = self._maps.get(map_id)
        if row is None or row["status"] == "deleted":
            raise RecordNotFoundError("maps.maps", map_id)
        if "name" in data and data["name"] != row["name"] and data.get("status") != "deleted":
            self._check_name_available(data["name"])
        row.update(data)
        row["updated_at"] = dt.datetime.now(dt.timezone.utc)
        return dict(row)

    async def fetch_maps(self, filters: MapSearchFilters, *, conn: object = None) -> tuple[list[dict], int]:
        """Fetch a page of maps and the filtered total."""
        MapSearchSQLSpecBuilder(filters).validate()
        matches = [row for _, row in sorted(self._maps.items()) if self._matches(filters, row)]
        end = None if filters.take is None else filters.skip + filters.take
        page = matches[filters.skip : end]
        return [self._with_relations(row, filters.expand) for row in page], len(matches)

    async def fetch_map(
        self,
        map_id: int,
        expand: frozenset[str] = frozenset(),
        *,
        conn: object = None,
    ) -> dict | None:
        """Fetch a single live map."""
        row = self._maps.get(map_id)
        if row is None or row["status"] == "deleted":
            return None
        return self._with_relations(row, expand)

    async def update_credits(
        self,
        criteria: MapCreditFilters,
        patch: Mapping[str, Any],
        *,
        conn: object = None,
    ) -> None:
        """Bulk update credit rows matching the criteria."""
        if criteria.is_empty():
            raise ValueError("Refusing to update credits without criteria")
        unknown = set(patch) - UPDATABLE_CREDIT_FIELDS
        if unknown:
            raise ValueError(f"Unknown credit fields: {', '.join(sorted(unknown))}")
        for credit in self._credits:
            if all(
                getattr(criteria, field) is None or credit[field] == getattr(criteria, field)
                for field in ("map_id", "user_id", "role")
            ):
                credit.update(patch)

    def add_image(self, map_id: int, small: str | None = None, medium: str | None = None, large: str | None = None) -> int:
        """Attach a display image to a map.

        Images are managed outside this service; this seeds them for reads.

        Returns:
            The new image ID.
        """
        image_id = next(self._image_ids)
        self._images.append({"id": image_id, "map_id": map_id, "small": small, "medium": medium, "large": large})
        return image_id

    def _check_name_available(self, name: str) -> None:
        if any(m["name"] == name and m["status"] != "deleted" for m in self._maps.values()):
            raise UniqueConstraintViolationError("maps_name_active_key", "maps.maps", f"Key (name)=({name}) already exists.")

    @staticmethod
    def _matches(filters: MapSearchFilters, row: Mapping[str, Any]) -> bool:  # noqa: PLR0911
        if row["status"] == "deleted":
            return False
        if filters.map_id is not None and row["id"] != filters.map_id:
            return False
        if filters.search and filters.search.casefold() not in row["name"].casefold():
            return False
        if filters.submitter_id is not None and row["submitter_id"] != filters.submitter_id:
            return False
        if filters.type is not None and row["type"] != filters.type:
            return False
        if filters.difficulty_low is not None and row["difficulty"] < filters.difficulty_low:
            return False
        if filters.difficulty_high is not None and row["difficulty"] > filters.difficulty_high:
            return False
        if filters.is_linear is not None and row["is_linear"] != filters.is_linear:
            return False
        return True

    def _with_relations(self, row: Mapping[str, Any], expand: frozenset[str]) -> dict:
        result = dict(row)
        if "images" in expand:
            result["images"] = [copy.copy(i) for i in self._images if i["map_id"] == row["id"]]
        if "credits" in expand:
            result["credits"] = sorted(
                (copy.copy(c) for c in self._credits if c["map_id"] == row["id"]),
                key=lambda c: c["user_id"],
            )
        return result
