"""Map domain data models."""

from __future__ import annotations

import datetime as dt
from typing import Annotated, Literal

from msgspec import UNSET, Meta, Struct, UnsetType

__all__ = (
    "MAP_EXPANDS",
    "MapCreateRequest",
    "MapCreditCreateRequest",
    "MapCreditPatchRequest",
    "MapCreditResponse",
    "MapCreditRole",
    "MapDifficulty",
    "MapExpand",
    "MapImageResponse",
    "MapName",
    "MapPaginatedResponse",
    "MapPatchRequest",
    "MapResponse",
    "MapStatus",
    "MapType",
)

MapType = Literal[
    "unknown",
    "surf",
    "bhop",
    "climb",
    "rocket_jump",
    "sticky_jump",
    "tricksurf",
    "ahop",
    "parkour",
    "conc",
    "defrag",
]

MapStatus = Literal["pending_upload", "uploaded", "deleted"]

MapCreditRole = Literal["author", "coauthor", "tester", "contributor", "special_thanks"]

MapExpand = Literal["images", "credits"]

MAP_EXPANDS: frozenset[str] = frozenset({"images", "credits"})

MapName = Annotated[str, Meta(min_length=1, max_length=64, pattern=r"^\S(.*\S)?$")]
MapDifficulty = Annotated[int, Meta(ge=1, le=10)]


class MapCreditCreateRequest(Struct):
    """Credit attached to a map at creation time.

    Attributes:
        user_id: Credited user.
        role: Contribution role.
    """

    user_id: int
    role: MapCreditRole


class MapCreateRequest(Struct):
    """Payload for registering a new map.

    Attributes:
        name: Map name, unique among live maps.
        type: Gameplay category.
        difficulty: Difficulty tier from 1 to 10.
        is_linear: Whether the map is linear (no stages).
        credits: Contributors to credit on the map.
    """

    name: MapName
    type: MapType
    difficulty: MapDifficulty
    is_linear: bool = False
    credits: list[MapCreditCreateRequest] = []


class MapPatchRequest(Struct):
    """Partial metadata update. Unset fields are left untouched."""

    name: MapName | UnsetType = UNSET
    type: MapType | UnsetType = UNSET
    difficulty: MapDifficulty | UnsetType = UNSET
    is_linear: bool | UnsetType = UNSET


class MapCreditPatchRequest(Struct):
    """Role change for an existing credit."""

    role: MapCreditRole


class MapImageResponse(Struct):
    """Display image attached to a map."""

    id: int
    map_id: int
    small: str | None = None
    medium: str | None = None
    large: str | None = None


class MapCreditResponse(Struct):
    """Credit attributing a user to a map."""

    map_id: int
    user_id: int
    role: MapCreditRole


class MapResponse(Struct, omit_defaults=True):
    """Map view returned by the API.

    `images` and `credits` are only present when requested through `expand`.

    Attributes:
        id: Map identifier.
        name: Map name.
        type: Gameplay category.
        status: Submission state.
        submitter_id: User who registered the map.
        difficulty: Difficulty tier.
        is_linear: Whether the map is linear.
        created_at: Creation timestamp.
        updated_at: Last modification timestamp.
        file_hash: Digest of the stored payload, if uploaded.
        file_size: Size in bytes of the stored payload, if uploaded.
        images: Display images (expand only).
        credits: Contributor credits (expand only).
    """

    id: int
    name: str
    type: MapType
    status: MapStatus
    submitter_id: int
    difficulty: int
    is_linear: bool
    created_at: dt.datetime
    updated_at: dt.datetime
    file_hash: str | None = None
    file_size: int | None = None
    images: list[MapImageResponse] | None = None
    credits: list[MapCreditResponse] | None = None


class MapPaginatedResponse(Struct):
    """Offset-paginated list of maps.

    Attributes:
        items: Maps on this page.
        total_count: Number of maps matching the filters, ignoring pagination.
        skip: Offset used for this page.
        take: Page size used for this page.
    """

    items: list[MapResponse]
    total_count: int
    skip: int
    take: int
