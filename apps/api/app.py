import logging
import os
import asyncpg
import litestar
import msgspec
import sentry_sdk
from litestar import Litestar, Request, Response, get
from litestar.datastructures import State
from litestar.exceptions import HTTPException
from litestar.logging.config import LoggingConfig
from litestar.middleware import DefineMiddleware
from litestar.openapi.config import OpenAPIConfig
from litestar.openapi.plugins import ScalarRenderPlugin
from litestar.openapi.spec import Server
from litestar.status_codes import HTTP_500_INTERNAL_SERVER_ERROR, HTTP_503_SERVICE_UNAVAILABLE
from litestar_asyncpg import AsyncpgConfig, AsyncpgConnection, AsyncpgPlugin, PoolConfig

from middleware.auth import CustomAuthenticationMiddleware
from middleware.guards import AUTH_EXCLUDED_PATHS, role_guard
from repository.auth_repository import AuthRepositoryProtocol, InMemoryAuthRepository
from repository.exceptions import StorageError
from repository.maps_repository import MapsRepositoryProtocol
from repository.memory_maps_repository import InMemoryMapsRepository
from routes.v1 import route_handlers
from services.map_storage_service import (
    STORAGE_TIMEOUT_SECONDS,
    InMemoryMapStorageService,
    MapStorage,
    MapStorageService,
)
from utilities.errors import CustomHTTPException

DEFAULT_DSN = os.getenv("DEFAULT_DSN")
API_ENVIRONMENT = os.getenv("API_ENVIRONMENT")
SENTRY_DSN = os.getenv("SENTRY_DSN")
MAP_STORAGE_BACKEND = os.getenv("MAP_STORAGE_BACKEND")

log = logging.getLogger(__name__)


def default_exception_handler(_: Request, exc: HTTPException) -> Response:
    """Render HTTP errors as `{"error", "extra"}`."""
    return Response(
        content={"error": exc.detail, "extra": exc.extra or {}},
        status_code=exc.status_code,
        headers=exc.headers,
    )


def storage_error_handler(request: Request, exc: StorageError) -> Response:
    """Report storage failures and answer 500."""
    log.error("Storage failure during %s %s", request.method, request.url.path, exc_info=exc)
    sentry_sdk.capture_exception(exc)
    return Response(
        content={"error": "Map storage is unavailable.", "extra": {"code": "storage_error"}},
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def _async_pg_init(conn: AsyncpgConnection) -> None:
    await conn.set_type_codec("numeric", encoder=str, decoder=float, schema="pg_catalog", format="text")
    await conn.set_type_codec(
        "jsonb",
        encoder=lambda value: msgspec.json.encode(value).decode(),
        decoder=msgspec.json.decode,
        schema="pg_catalog",
    )


async def _async_pg_setup(conn: AsyncpgConnection) -> None:
    # The pool runs RESET ALL on release, so the timeout is set per acquire.
    await conn.execute(f"SET statement_timeout = {int(STORAGE_TIMEOUT_SECONDS * 1000)}")


def _default_map_storage(dsn: str | None) -> MapStorage:
    backend = MAP_STORAGE_BACKEND or ("s3" if dsn else "memory")
    if backend == "memory":
        return InMemoryMapStorageService()
    if backend == "s3":
        return MapStorageService()
    raise ValueError(f"Unknown MAP_STORAGE_BACKEND: {backend!r}")


def create_app(
    psql_dsn: str | None = None,
    *,
    maps_repository: MapsRepositoryProtocol | None = None,
    auth_repository: AuthRepositoryProtocol | None = None,
    map_storage: MapStorage | None = None,
) -> Litestar:
    """Create and configure a Litestar application.

    With a DSN (argument or `DEFAULT_DSN`), the asyncpg plugin opens the pool
    on startup and repositories not passed in are built over it per request. Without one the app keeps
    everything in memory, which is what local runs and the route tests use.

    Args:
        psql_dsn: PostgreSQL DSN overriding `DEFAULT_DSN`.
        maps_repository: Maps repository to use instead of the default.
        auth_repository: API token repository to use instead of the default.
        map_storage: Map payload storage to use instead of the default.

    Returns:
        Litestar: An instance of the configured Litestar application.

    """
    dsn = psql_dsn or DEFAULT_DSN
    plugins = []

    if dsn:
        asyncpg_plugin = AsyncpgPlugin(
            config=AsyncpgConfig(
                pool_config=PoolConfig(dsn=dsn, init=_async_pg_init, setup=_async_pg_setup),
            ),
        )
        plugins.append(asyncpg_plugin)
    else:
        log.warning("No database configured, maps and API tokens are kept in memory")
        maps_repository = maps_repository or InMemoryMapsRepository()
        auth_repository = auth_repository or InMemoryAuthRepository()

    app_state = State(
        {
            "maps_repository": maps_repository,
            "auth_repository": auth_repository,
            "map_storage": map_storage or _default_map_storage(dsn),
        }
    )

    v1_router = litestar.Router("/api/v1", route_handlers=route_handlers)

    @get("/healthcheck", tags=["Utilities"], exclude_from_auth=True)
    async def _health_check(state: State) -> bool:
        pool: asyncpg.Pool | None = state.get("db_pool")
        if pool is None:
            return True
        try:
            await pool.fetchval("SELECT 1;")
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            log.warning("Health check failed", exc_info=e)
            raise CustomHTTPException(
                detail="Health check failed.",
                status_code=HTTP_503_SERVICE_UNAVAILABLE,
                headers={"Retry-After": "30"},
            ) from e
        return True

    openapi_config = OpenAPIConfig(
        title="MapDepot API",
        description="REST API for submitting, uploading and browsing game maps.",
        version="0.1.0",
        render_plugins=[ScalarRenderPlugin()],
        path="/docs",
        servers=[
            Server(
                url="http://localhost:8000" if API_ENVIRONMENT == "development" else "https://api.mapdepot.gg",
                description="Default server",
            )
        ],
    )

    logging_config = LoggingConfig(
        root={"level": "INFO", "handlers": ["queue_listener"]},
        formatters={"standard": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"}},
        log_exceptions="always",
    )

    auth_middleware = DefineMiddleware(CustomAuthenticationMiddleware, exclude=sorted(AUTH_EXCLUDED_PATHS))

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        send_default_pii=True,
        traces_sample_rate=1.0,
        environment=API_ENVIRONMENT,
    )

    _app = Litestar(
        route_handlers=[_health_check, v1_router],
        openapi_config=openapi_config,
        exception_handlers={
            HTTPException: default_exception_handler,
            StorageError: storage_error_handler,
        },
        guards=[role_guard],
        logging_config=logging_config,
        middleware=[auth_middleware],
        plugins=plugins,
        state=app_state,
    )

    return _app


app = create_app()
