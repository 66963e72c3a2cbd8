"""Service for maps business logic."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable

import msgspec
from litestar.datastructures import State
from mapdepot_sdk.maps import (
    MAP_EXPANDS,
    MapCreateRequest,
    MapCreditPatchRequest,
    MapPaginatedResponse,
    MapPatchRequest,
    MapResponse,
    MapType,
)

from repository.exceptions import (
    ForeignKeyViolationError,
    RecordNotFoundError,
    UniqueConstraintViolationError,
)
from repository.maps_repository import MapsRepositoryProtocol
from services.exceptions.maps import (
    CreditNotFoundError,
    CreditUserNotFoundError,
    DuplicateCreditError,
    MapFileNotFoundError,
    MapNameExistsError,
    MapNotFoundError,
    MapValidationError,
    NotMapSubmitterError,
    SubmissionLimitError,
)
from services.map_storage_service import MapStorage, map_file_digest
from utilities.map_search import MapCreditFilters, MapSearchFilters

from .base import BaseService

MAPS_MAX_PENDING = int(os.getenv("MAPS_MAX_PENDING", "5"))

log = logging.getLogger(__name__)


class MapsService(BaseService):
    """Service for maps business logic."""

    def __init__(
        self,
        state: State,
        maps_repo: MapsRepositoryProtocol,
        map_storage: MapStorage,
        *,
        submission_limit: int = MAPS_MAX_PENDING,
    ) -> None:
        """Initialize service.

        Args:
            state: Application state.
            maps_repo: Maps repository.
            map_storage: Binary storage for map payloads.
            submission_limit: Maximum maps a submitter may hold in `pending_upload`.
        """
        super().__init__(state)
        self._maps_repo = maps_repo
        self._map_storage = map_storage
        self._submission_limit = submission_limit

    # Queries

    async def get_all(  # noqa: PLR0913
        self,
        user_id: int,
        skip: int = 0,
        take: int = 10,
        expand: Iterable[str] | None = None,
        search: str | None = None,
        submitter_id: int | None = None,
        map_type: MapType | None = None,
        difficulty_low: int | None = None,
        difficulty_high: int | None = None,
        is_linear: bool | None = None,
    ) -> MapPaginatedResponse:
        """List maps matching the given filters.

        Any filter left as None imposes no constraint.

        Args:
            user_id: Requesting user. Does not restrict visibility yet.
            skip: Number of matching maps to skip.
            take: Page size.
            expand: Relations to attach (`images`, `credits`).
            search: Case-insensitive substring of the map name.
            submitter_id: Exact submitter.
            map_type: Exact map type.
            difficulty_low: Inclusive lower difficulty bound.
            difficulty_high: Inclusive upper difficulty bound.
            is_linear: Exact linearity.

        Returns:
            Page of maps with the total number of matches.

        Raises:
            MapValidationError: If the difficulty range is inverted or an expand is unknown.
        """
        if difficulty_low is not None and difficulty_high is not None and difficulty_low > difficulty_high:
            raise MapValidationError("difficulty_low cannot exceed difficulty_high", field="difficulty_low")

        filters = MapSearchFilters(
            search=search or None,
            submitter_id=submitter_id,
            type=map_type,
            difficulty_low=difficulty_low,
            difficulty_high=difficulty_high,
            is_linear=is_linear,
            user_id=user_id,
            expand=self._expand_set(expand),
            skip=skip,
            take=take,
        )
        rows, total_count = await self._maps_repo.fetch_maps(filters)

        return MapPaginatedResponse(
            items=msgspec.convert(rows, list[MapResponse]),
            total_count=total_count,
            skip=skip,
            take=take,
        )

    async def get(
        self,
        map_id: int,
        user_id: int | None,
        expand: Iterable[str] | None = None,
    ) -> MapResponse:
        """Fetch a single map.

        Args:
            map_id: Map ID.
            user_id: Requesting user. Reserved for visibility rules.
            expand: Relations to attach (`images`, `credits`).

        Returns:
            The map view.

        Raises:
            MapNotFoundError: If the map doesn't exist or was deleted.
        """
        row = await self._maps_repo.fetch_map(map_id, self._expand_set(expand))
        if row is None:
            raise MapNotFoundError(map_id)
        return msgspec.convert(row, MapResponse)

    # Commands

    async def create(self, data: MapCreateRequest, submitter_id: int) -> int:
        """Register a new map awaiting upload.

        The pending-count check and the insert share one transaction, with the
        submitter locked, so concurrent creates cannot overshoot the limit.

        Args:
            data: Map metadata and credits.
            submitter_id: Authenticated submitting user.

        Returns:
            The new map ID.

        Raises:
            SubmissionLimitError: If the submitter already has the maximum pending maps.
            MapNameExistsError: If a live map already uses the name.
            DuplicateCreditError: If a user is credited more than once.
            CreditUserNotFoundError: If a credited user doesn't exist.
        """
        credited_ids = [c.user_id for c in data.credits]
        if len(set(credited_ids)) != len(credited_ids):
            duplicate = next(uid for uid in credited_ids if credited_ids.count(uid) > 1)
            raise DuplicateCreditError(duplicate)

        map_data = {
            "name": data.name,
            "type": data.type,
            "submitter_id": submitter_id,
            "difficulty": data.difficulty,
            "is_linear": data.is_linear,
        }
        credits_data = [{"user_id": c.user_id, "role": c.role} for c in data.credits]

        try:
            async with self._maps_repo.transaction() as conn:
                await self._maps_repo.lock_submitter(submitter_id, conn=conn)
                pending = await self._maps_repo.count_pending_maps(submitter_id, conn=conn)
                if pending >= self._submission_limit:
                    log.info("Submitter %s hit the pending-map limit (%s)", submitter_id, pending)
                    raise SubmissionLimitError(submitter_id, self._submission_limit)

                created = await self._maps_repo.insert(map_data, conn=conn)
                await self._maps_repo.insert_credits(created["id"], credits_data, conn=conn)

        except UniqueConstraintViolationError as e:
            if "maps_name" in e.constraint_name:
                raise MapNameExistsError(data.name) from e
            if "credits_pkey" in e.constraint_name:
                raise DuplicateCreditError() from e
            raise

        except ForeignKeyViolationError as e:
            if "credits_user_id_fkey" in e.constraint_name:
                raise CreditUserNotFoundError() from e
            raise

        log.info("Map %s (%r) created by %s", created["id"], data.name, submitter_id)
        return created["id"]

    async def upload(self, map_id: int, file_bytes: bytes, *, user_id: int | None = None) -> MapResponse:
        """Store a map payload and mark the map uploaded.

        Re-uploading replaces the payload and refreshes the digest and size
        without changing the status.

        Args:
            map_id: Map ID.
            file_bytes: Raw map file.
            user_id: Uploading user, passed on to the follow-up read.

        Returns:
            The refreshed map view.

        Raises:
            MapValidationError: If the payload is empty.
            MapNotFoundError: If the map doesn't exist or was deleted.
        """
        if not file_bytes:
            raise MapValidationError("Map file is empty", field="file")

        current = await self._maps_repo.fetch_map(map_id)
        if current is None:
            raise MapNotFoundError(map_id)

        await self._map_storage.store(map_id, file_bytes)

        changes: dict[str, object] = {
            "file_hash": map_file_digest(file_bytes),
            "file_size": len(file_bytes),
        }
        if current["status"] == "pending_upload":
            changes["status"] = "uploaded"
        else:
            log.info("Map %s re-uploaded, replacing digest %s", map_id, current["file_hash"])

        try:
            await self._maps_repo.update(map_id, changes)
        except RecordNotFoundError as e:
            raise MapNotFoundError(map_id) from e

        return await self.get(map_id, user_id)

    async def update(self, map_id: int, user_id: int, data: MapPatchRequest) -> MapResponse:
        """Update map metadata.

        Args:
            map_id: Map ID.
            user_id: Requesting user; must be the submitter.
            data: Partial update request.

        Returns:
            The updated map view.

        Raises:
            MapNotFoundError: If the map doesn't exist or was deleted.
            NotMapSubmitterError: If the requester did not submit the map.
            MapNameExistsError: If the new name is used by another live map.
        """
        current = await self._maps_repo.fetch_map(map_id)
        if current is None:
            raise MapNotFoundError(map_id)
        if current["submitter_id"] != user_id:
            raise NotMapSubmitterError(map_id, user_id)

        changes = {
            field: value
            for field in ("name", "type", "difficulty", "is_linear")
            if (value := getattr(data, field)) is not msgspec.UNSET
        }
        if changes:
            try:
                await self._maps_repo.update(map_id, changes)
            except UniqueConstraintViolationError as e:
                raise MapNameExistsError(changes.get("name", current["name"])) from e
            except RecordNotFoundError as e:
                raise MapNotFoundError(map_id) from e

        return await self.get(map_id, user_id)

    async def update_credit(
        self,
        map_id: int,
        user_id: int,
        credited_user_id: int,
        data: MapCreditPatchRequest,
    ) -> MapResponse:
        """Change the role of an existing credit.

        Args:
            map_id: Map ID.
            user_id: Requesting user; must be the submitter.
            credited_user_id: User whose credit changes.
            data: New role.

        Returns:
            The map view with credits expanded.

        Raises:
            MapNotFoundError: If the map doesn't exist or was deleted.
            NotMapSubmitterError: If the requester did not submit the map.
            CreditNotFoundError: If the user is not credited on the map.
        """
        current = await self._maps_repo.fetch_map(map_id, frozenset({"credits"}))
        if current is None:
            raise MapNotFoundError(map_id)
        if current["submitter_id"] != user_id:
            raise NotMapSubmitterError(map_id, user_id)
        if not any(c["user_id"] == credited_user_id for c in current.get("credits") or []):
            raise CreditNotFoundError(map_id, credited_user_id)

        await self._maps_repo.update_credits(
            MapCreditFilters(map_id=map_id, user_id=credited_user_id),
            {"role": data.role},
        )
        log.info("Credit for user %s on map %s set to %s", credited_user_id, map_id, data.role)

        return await self.get(map_id, user_id, expand=("credits",))

    async def download(self, map_id: int) -> bytes:
        """Fetch the stored payload of a map.

        Args:
            map_id: Map ID.

        Returns:
            The raw map file.

        Raises:
            MapNotFoundError: If the map doesn't exist or was deleted.
            MapFileNotFoundError: If the map has not been uploaded.
        """
        current = await self._maps_repo.fetch_map(map_id)
        if current is None:
            raise MapNotFoundError(map_id)
        if current["status"] == "pending_upload":
            raise MapFileNotFoundError(map_id)

        data = await self._map_storage.retrieve(map_id)
        if data is None:
            log.error("Map %s is %s but storage has no payload", map_id, current["status"])
            raise MapFileNotFoundError(map_id)
        return data

    async def delete(self, map_id: int) -> None:
        """Mark a map deleted. Deletion is terminal.

        Args:
            map_id: Map ID.

        Raises:
            MapNotFoundError: If the map doesn't exist or was already deleted.
        """
        try:
            await self._maps_repo.update(map_id, {"status": "deleted"})
        except RecordNotFoundError as e:
            raise MapNotFoundError(map_id) from e
        log.info("Map %s deleted", map_id)

    @staticmethod
    def _expand_set(expand: Iterable[str] | None) -> frozenset[str]:
        requested = frozenset(expand or ())
        unknown = requested - MAP_EXPANDS
        if unknown:
            raise MapValidationError(f"Unknown expand value(s): {', '.join(sorted(unknown))}", field="expand")
        return requested


async def provide_maps_service(
    state: State,
    maps_repo: MapsRepositoryProtocol,
    map_storage: MapStorage,
) -> MapsService:
    """Litestar DI provider for service."""
    return MapsService(state, maps_repo, map_storage)
