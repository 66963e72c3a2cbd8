import asyncio
import hashlib
import io
import logging
import os
from typing import Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from litestar.datastructures import State

from repository.exceptions import StorageError

logger = logging.getLogger(__name__)

R2_ACCOUNT_ID = os.getenv("R2_ACCOUNT_ID", "")
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL")
S3_BUCKET_NAME = os.getenv("S3_BUCKET_NAME", "mapdepot-maps")
STORAGE_TIMEOUT_SECONDS = float(os.getenv("STORAGE_TIMEOUT_SECONDS", "10"))

MAP_FILE_CONTENT_TYPE = "application/octet-stream"


def map_file_key(map_id: int) -> str:
    """Object key for a map's payload."""
    return f"maps/{map_id}.bsp"


def map_file_digest(data: bytes) -> str:
    """Short, collision-resistant digest of a map payload."""
    return hashlib.blake2b(data, digest_size=16).hexdigest()


class MapStorage(Protocol):
    """Binary storage for map payloads, keyed by map ID."""

    async def store(self, map_id: int, data: bytes) -> None: ...

    async def retrieve(self, map_id: int) -> bytes | None: ...


class MapStorageService:
    """Stores map payloads in S3-compatible storage."""

    def __init__(self, timeout: float = STORAGE_TIMEOUT_SECONDS) -> None:
        """Initialize the MapStorageService."""
        # Use custom S3 endpoint if provided (e.g., MinIO for local dev),
        # otherwise fall back to R2
        endpoint_url = S3_ENDPOINT_URL or f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com"

        self.client = boto3.client(
            service_name="s3",
            endpoint_url=endpoint_url,
            region_name="auto",
            config=Config(s3={"addressing_style": "path"}),
        )
        self._timeout = timeout

    async def store(self, map_id: int, data: bytes) -> None:
        """Upload a map payload, replacing any previous one.

        Args:
            map_id: Map the payload belongs to.
            data: Raw map file.

        Raises:
            StorageError: If the upload fails or exceeds the timeout.
        """
        key = map_file_key(map_id)
        await self._run(
            self.client.upload_fileobj,
            io.BytesIO(data),
            S3_BUCKET_NAME,
            key,
            ExtraArgs={"ContentType": MAP_FILE_CONTENT_TYPE},
            operation=f"store {key}",
        )
        logger.info("Stored %d bytes at %s", len(data), key)

    async def retrieve(self, map_id: int) -> bytes | None:
        """Download a map payload.

        Args:
            map_id: Map whose payload to fetch.

        Returns:
            The payload, or None if nothing is stored for this map.

        Raises:
            StorageError: If the download fails or exceeds the timeout.
        """
        key = map_file_key(map_id)
        buffer = io.BytesIO()
        try:
            await self._run(
                self.client.download_fileobj,
                S3_BUCKET_NAME,
                key,
                buffer,
                operation=f"retrieve {key}",
            )
        except StorageError as e:
            cause = e.__cause__
            if isinstance(cause, ClientError) and cause.response.get("Error", {}).get("Code") in {"404", "NoSuchKey"}:
                return None
            raise
        return buffer.getvalue()

    async def _run(self, func, *args, operation: str, **kwargs) -> None:  # noqa: ANN001, ANN002, ANN003
        try:
            await asyncio.wait_for(asyncio.to_thread(func, *args, **kwargs), timeout=self._timeout)
        except (BotoCoreError, ClientError, TimeoutError) as e:
            logger.warning("Map storage %s failed", operation, exc_info=e)
            raise StorageError(f"Map storage failed to {operation}", operation=operation) from e


class InMemoryMapStorageService:
    """Keeps map payloads in process memory, for local development and tests."""

    def __init__(self) -> None:
        """Initialize empty storage."""
        self._files: dict[int, bytes] = {}

    async def store(self, map_id: int, data: bytes) -> None:
        """Store a map payload, replacing any previous one."""
        self._files[map_id] = bytes(data)

    async def retrieve(self, map_id: int) -> bytes | None:
        """Return the stored payload, if any."""
        return self._files.get(map_id)


async def provide_map_storage_service(state: State) -> MapStorage:
    """Litestar DI provider for map file storage.

    Returns:
        MapStorage: Storage configured at startup.

    """
    return state.map_storage
