"""V1 Maps routes."""

from __future__ import annotations

import logging
import os
from typing import Annotated, Any

from litestar import Controller, delete, get, patch, post
from litestar.connection import Request
from litestar.datastructures import UploadFile
from litestar.di import Provide
from litestar.enums import RequestEncodingType
from litestar.params import Body, Parameter
from litestar.response import Response
from litestar.status_codes import HTTP_200_OK, HTTP_204_NO_CONTENT
from mapdepot_sdk.maps import (
    MapCreateRequest,
    MapCreditPatchRequest,
    MapExpand,
    MapPaginatedResponse,
    MapPatchRequest,
    MapResponse,
    MapType,
)

from middleware.auth import AuthToken, AuthUser
from repository.maps_repository import provide_maps_repository
from services.exceptions.maps import MapsError
from services.map_storage_service import MAP_FILE_CONTENT_TYPE, provide_map_storage_service
from services.maps_service import MapsService, provide_maps_service
from utilities.errors import domain_error_to_http

MAX_MAP_FILE_SIZE = int(os.getenv("MAX_MAP_FILE_SIZE", str(64 * 1024 * 1024)))

log = logging.getLogger(__name__)

ExpandParam = Annotated[
    list[MapExpand] | None,
    Parameter(description="Relations to include; repeat for several (images, credits)"),
]


class MapsController(Controller):
    """Map submission, retrieval and lifecycle."""

    tags = ["Maps"]
    path = "/maps"
    dependencies = {
        "maps_repo": Provide(provide_maps_repository),
        "map_storage": Provide(provide_map_storage_service),
        "maps_service": Provide(provide_maps_service),
    }

    @get(
        "/",
        summary="List Maps",
        description="Page through live maps, optionally filtered and with related data expanded.",
    )
    async def get_maps_endpoint(  # noqa: PLR0913
        self,
        request: Request[AuthUser, AuthToken, Any],
        maps_service: MapsService,
        skip: Annotated[int, Parameter(ge=0, description="Number of maps to skip")] = 0,
        take: Annotated[int, Parameter(ge=1, le=100, description="Page size")] = 10,
        expand: ExpandParam = None,
        search: Annotated[str | None, Parameter(description="Case-insensitive name substring")] = None,
        submitter_id: Annotated[int | None, Parameter(description="Filter by submitter")] = None,
        map_type: Annotated[MapType | None, Parameter(query="type", description="Filter by map type")] = None,
        difficulty_low: Annotated[int | None, Parameter(ge=1, le=10, description="Minimum difficulty")] = None,
        difficulty_high: Annotated[int | None, Parameter(ge=1, le=10, description="Maximum difficulty")] = None,
        is_linear: Annotated[bool | None, Parameter(description="Filter by linearity")] = None,
    ) -> MapPaginatedResponse:
        """List maps.

        Returns:
            Page of maps plus the total number of matches.
        """
        try:
            return await maps_service.get_all(
                request.user.id,
                skip=skip,
                take=take,
                expand=expand,
                search=search,
                submitter_id=submitter_id,
                map_type=map_type,
                difficulty_low=difficulty_low,
                difficulty_high=difficulty_high,
                is_linear=is_linear,
            )
        except MapsError as e:
            raise domain_error_to_http(e) from e

    @post(
        "/",
        summary="Create Map",
        description="Register a map awaiting upload. The Location header points at the upload endpoint.",
        status_code=HTTP_204_NO_CONTENT,
        opt={"required_roles": {"mapper"}},
    )
    async def create_map_endpoint(
        self,
        request: Request[AuthUser, AuthToken, Any],
        maps_service: MapsService,
        data: MapCreateRequest,
    ) -> Response[None]:
        """Create a map in `pending_upload`."""
        try:
            map_id = await maps_service.create(data, request.user.id)
        except MapsError as e:
            raise domain_error_to_http(e) from e

        return Response(
            None,
            status_code=HTTP_204_NO_CONTENT,
            headers={"Location": f"/api/v1/maps/{map_id}/upload"},
        )

    @get("/{map_id:int}", summary="Get Map")
    async def get_map_endpoint(
        self,
        request: Request[AuthUser, AuthToken, Any],
        map_id: int,
        maps_service: MapsService,
        expand: ExpandParam = None,
    ) -> MapResponse:
        """Fetch one map."""
        try:
            return await maps_service.get(map_id, request.user.id, expand=expand)
        except MapsError as e:
            raise domain_error_to_http(e) from e

    @post(
        "/{map_id:int}/upload",
        summary="Upload Map File",
        description="Store the map file and mark the map uploaded. Uploading again replaces the file.",
        status_code=HTTP_200_OK,
        request_max_body_size=MAX_MAP_FILE_SIZE,
    )
    async def upload_map_endpoint(
        self,
        request: Request[AuthUser, AuthToken, Any],
        map_id: int,
        maps_service: MapsService,
        data: Annotated[UploadFile, Body(media_type=RequestEncodingType.MULTI_PART)],
    ) -> MapResponse:
        """Upload the map binary.

        Args:
            request: Incoming request with the authenticated user.
            map_id: Map ID.
            maps_service: Service layer for maps.
            data: Multipart form with a single file field.

        Returns:
            The map after the upload.
        """
        file_bytes = await data.read()
        await data.close()
        try:
            return await maps_service.upload(map_id, file_bytes, user_id=request.user.id)
        except MapsError as e:
            raise domain_error_to_http(e) from e

    @patch(
        "/{map_id:int}",
        summary="Update Map",
        description="Change map metadata. Only the submitter may update a map.",
        opt={"required_roles": {"mapper"}},
    )
    async def update_map_endpoint(
        self,
        request: Request[AuthUser, AuthToken, Any],
        map_id: int,
        maps_service: MapsService,
        data: MapPatchRequest,
    ) -> MapResponse:
        """Patch map metadata."""
        try:
            return await maps_service.update(map_id, request.user.id, data)
        except MapsError as e:
            raise domain_error_to_http(e) from e

    @patch(
        "/{map_id:int}/credits/{user_id:int}",
        summary="Update Map Credit",
        opt={"required_roles": {"mapper"}},
    )
    async def update_credit_endpoint(
        self,
        request: Request[AuthUser, AuthToken, Any],
        map_id: int,
        user_id: int,
        maps_service: MapsService,
        data: MapCreditPatchRequest,
    ) -> MapResponse:
        """Change the role of a credited user. Only the submitter may change credits."""
        try:
            return await maps_service.update_credit(map_id, request.user.id, user_id, data)
        except MapsError as e:
            raise domain_error_to_http(e) from e

    @get(
        "/{map_id:int}/download",
        summary="Download Map File",
        media_type=MAP_FILE_CONTENT_TYPE,
    )
    async def download_map_endpoint(
        self,
        map_id: int,
        maps_service: MapsService,
    ) -> Response[bytes]:
        """Return the stored map binary."""
        try:
            content = await maps_service.download(map_id)
        except MapsError as e:
            raise domain_error_to_http(e) from e

        return Response(
            content,
            media_type=MAP_FILE_CONTENT_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{map_id}.bsp"'},
        )

    @delete(
        "/{map_id:int}",
        summary="Delete Map",
        status_code=HTTP_204_NO_CONTENT,
        opt={"required_roles": {"admin"}},
    )
    async def delete_map_endpoint(
        self,
        map_id: int,
        maps_service: MapsService,
    ) -> Response[None]:
        """Mark a map deleted."""
        try:
            await maps_service.delete(map_id)
        except MapsError as e:
            raise domain_error_to_http(e) from e

        return Response(None, status_code=HTTP_204_NO_CONTENT)
