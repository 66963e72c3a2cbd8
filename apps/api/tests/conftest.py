"""Pytest configuration for API tests."""

import glob
import os
from typing import Any, AsyncIterator, Generator
from uuid import uuid4

import asyncpg
import pytest
from faker import Faker
from litestar import Litestar
from litestar.testing import AsyncTestClient

from app import _async_pg_init, create_app
from repository.auth_repository import InMemoryAuthRepository
from repository.memory_maps_repository import InMemoryMapsRepository
from services.map_storage_service import InMemoryMapStorageService

fake = Faker()

POSTGRES_ENV_FLAG = "MAPDEPOT_TEST_POSTGRES"

MIGRATIONS_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "migrations"))

# Users known to the in-memory repositories
MAPPER_ID = 1001
OTHER_MAPPER_ID = 1002
ADMIN_ID = 1003
VIEWER_ID = 1004
CREDITED_USER_IDS = (2001, 2002, 2003)

API_KEYS = {
    "mapper": "mapper-key",
    "other_mapper": "other-mapper-key",
    "admin": "admin-key",
    "viewer": "viewer-key",
    "superuser": "testing",
}


# ==============================================================================
# PYTEST CONFIGURATION
# ==============================================================================


def pytest_configure(config: Any) -> None:
    """Register custom markers for test organization."""
    config.addinivalue_line("markers", "domain_maps: Tests for maps domain")
    config.addinivalue_line("markers", "domain_auth: Tests for auth domain")
    config.addinivalue_line(
        "markers", f"postgres: Tests that need a Docker PostgreSQL instance (set {POSTGRES_ENV_FLAG}=1)"
    )


def pytest_collection_modifyitems(config: Any, items: list[pytest.Item]) -> None:
    """Skip Docker-backed tests unless explicitly enabled."""
    if os.getenv(POSTGRES_ENV_FLAG) == "1":
        return
    skip_postgres = pytest.mark.skip(reason=f"set {POSTGRES_ENV_FLAG}=1 to run PostgreSQL tests")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_postgres)


# ==============================================================================
# IN-MEMORY COLLABORATORS
# ==============================================================================


@pytest.fixture
def maps_repo() -> InMemoryMapsRepository:
    """Empty in-memory maps repository that knows the test users."""
    return InMemoryMapsRepository(
        known_user_ids={MAPPER_ID, OTHER_MAPPER_ID, ADMIN_ID, VIEWER_ID, *CREDITED_USER_IDS},
    )


@pytest.fixture
def map_storage() -> InMemoryMapStorageService:
    """Empty in-memory map payload storage."""
    return InMemoryMapStorageService()


@pytest.fixture
def auth_repo() -> InMemoryAuthRepository:
    """API tokens for one user per role."""
    repo = InMemoryAuthRepository()
    repo.add_token(API_KEYS["mapper"], MAPPER_ID, "mapper", roles=("mapper",))
    repo.add_token(API_KEYS["other_mapper"], OTHER_MAPPER_ID, "other_mapper", roles=("mapper",))
    repo.add_token(API_KEYS["admin"], ADMIN_ID, "admin", roles=("admin",))
    repo.add_token(API_KEYS["viewer"], VIEWER_ID, "viewer")
    repo.add_token(API_KEYS["superuser"], ADMIN_ID, "root", is_superuser=True)
    return repo


@pytest.fixture
async def test_client(
    monkeypatch: pytest.MonkeyPatch,
    maps_repo: InMemoryMapsRepository,
    auth_repo: InMemoryAuthRepository,
    map_storage: InMemoryMapStorageService,
) -> AsyncIterator[AsyncTestClient[Litestar]]:
    """Async test client over an in-memory app, authenticated as a mapper."""
    monkeypatch.setattr("app.DEFAULT_DSN", None)
    app = create_app(maps_repository=maps_repo, auth_repository=auth_repo, map_storage=map_storage)
    async with AsyncTestClient(app=app) as client:
        client.headers.update({"X-API-KEY": API_KEYS["mapper"]})
        yield client


@pytest.fixture
def api_keys() -> dict[str, str]:
    """API key per test role."""
    return dict(API_KEYS)


@pytest.fixture
def mapper_id() -> int:
    """User behind the default `mapper` key."""
    return MAPPER_ID


@pytest.fixture
def other_mapper_id() -> int:
    """A second mapper, for ownership checks."""
    return OTHER_MAPPER_ID


@pytest.fixture
def credited_user_ids() -> tuple[int, ...]:
    """Existing users that may be credited on maps."""
    return CREDITED_USER_IDS


@pytest.fixture
def unique_map_name() -> str:
    """Map name that will not collide within a session."""
    return f"{fake.word()}_{uuid4().hex[:8]}"


@pytest.fixture
def map_payload(unique_map_name: str) -> dict[str, Any]:
    """Valid create-map request body."""
    return {
        "name": unique_map_name,
        "type": "surf",
        "difficulty": 4,
        "is_linear": False,
        "credits": [{"user_id": CREDITED_USER_IDS[0], "role": "author"}],
    }


# ==============================================================================
# POSTGRES (Docker, opt-in)
# ==============================================================================


def _apply_sql_dir(conn: Any, directory: str) -> None:
    """Apply all SQL files from a directory in sorted order."""
    for path in sorted(glob.glob(os.path.join(directory, "*.sql"))):
        with open(path, "r", encoding="utf-8") as f:
            sql_text = f.read()
        try:
            conn.execute(sql_text, prepare=False)
        except Exception as exc:
            raise RuntimeError(f"Failed applying SQL file: {path}") from exc
        conn.commit()


@pytest.fixture(scope="session")
def migrated_db(postgres_connection: Any) -> Generator[None, Any, None]:
    """Apply migrations once per session."""
    _apply_sql_dir(postgres_connection, MIGRATIONS_DIR)
    yield


@pytest.fixture
async def asyncpg_pool(migrated_db: None, postgres_service: Any) -> AsyncIterator[asyncpg.Pool]:
    """Small asyncpg pool against the migrated test database."""
    pool = await asyncpg.create_pool(
        user=postgres_service.user,
        password=postgres_service.password,
        host=postgres_service.host,
        port=postgres_service.port,
        database=postgres_service.database,
        min_size=1,
        max_size=3,
        init=_async_pg_init,
    )
    yield pool
    await pool.close()


@pytest.fixture
def create_test_user(asyncpg_pool: asyncpg.Pool):  # noqa: ANN201
    """Factory inserting a `core.users` row with a random ID.

    Usage:
        user_id = await create_test_user()
    """

    async def _create() -> int:
        user_id = fake.random_int(min=100000000000000000, max=999999999999999999)
        await asyncpg_pool.execute(
            "INSERT INTO core.users (id, alias) VALUES ($1, $2) ON CONFLICT DO NOTHING",
            user_id,
            fake.user_name(),
        )
        return user_id

    return _create
