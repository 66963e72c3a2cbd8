import asyncpg
import pytest
from litestar.status_codes import (
    HTTP_400_BAD_REQUEST,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
)

from repository.exceptions import (
    ForeignKeyViolationError,
    StorageError,
    UniqueConstraintViolationError,
    translate_db_errors,
)
from services.exceptions.maps import (
    CreditUserNotFoundError,
    MapNameExistsError,
    MapNotFoundError,
    MapValidationError,
    NotMapSubmitterError,
    SubmissionLimitError,
)
from utilities.errors import CustomHTTPException, DomainError, domain_error_to_http, parse_pg_detail


class MockUniqueViolation(asyncpg.exceptions.UniqueViolationError):
    """Mock UniqueViolationError for testing."""

    def __init__(self, constraint_name: str, detail: str | None = None) -> None:
        self.constraint_name = constraint_name
        self.detail = detail
        super().__init__(f'duplicate key value violates unique constraint "{constraint_name}"')


class MockForeignKeyViolation(asyncpg.exceptions.ForeignKeyViolationError):
    """Mock ForeignKeyViolationError for testing."""

    def __init__(self, constraint_name: str, detail: str | None = None) -> None:
        self.constraint_name = constraint_name
        self.detail = detail
        super().__init__(f'insert or update on table violates foreign key constraint "{constraint_name}"')


def test_parse_pg_detail_multiple_columns() -> None:
    assert parse_pg_detail("Key (map_id, user_id)=(1, 2) already exists.") == {"map_id": "1", "user_id": "2"}


def test_parse_pg_detail_no_match() -> None:
    assert parse_pg_detail("something else") is None
    assert parse_pg_detail(None) is None


@pytest.mark.parametrize(
    ("error", "status_code", "code"),
    [
        (MapNotFoundError(3), HTTP_404_NOT_FOUND, "map_not_found"),
        (MapNameExistsError("Surf Utopia"), HTTP_409_CONFLICT, "map_name_exists"),
        (SubmissionLimitError(1, 5), HTTP_409_CONFLICT, "submission_limit_reached"),
        (MapValidationError("bad", field="file"), HTTP_400_BAD_REQUEST, "map_validation_failed"),
        (CreditUserNotFoundError(), HTTP_400_BAD_REQUEST, "credit_user_not_found"),
        (NotMapSubmitterError(3, 9), HTTP_403_FORBIDDEN, "not_map_submitter"),
    ],
)
def test_domain_error_to_http(error: DomainError, status_code: int, code: str) -> None:
    """Each domain error category maps to one HTTP status and carries its rule code."""
    exc = domain_error_to_http(error)

    assert isinstance(exc, CustomHTTPException)
    assert exc.status_code == status_code
    assert exc.detail == error.message
    assert exc.extra["code"] == code


def test_domain_error_context_lands_in_extra() -> None:
    exc = domain_error_to_http(SubmissionLimitError(11, 5))

    assert exc.extra == {"code": "submission_limit_reached", "submitter_id": 11, "limit": 5}


def test_unmapped_domain_error_defaults_to_400() -> None:
    assert domain_error_to_http(DomainError("odd")).status_code == HTTP_400_BAD_REQUEST


@pytest.mark.asyncio
async def test_translate_unique_violation() -> None:
    @translate_db_errors("maps.maps")
    async def raise_unique_error() -> None:
        raise MockUniqueViolation("maps_name_active_key", "Key (name)=(Surf Utopia) already exists.")

    with pytest.raises(UniqueConstraintViolationError) as exc_info:
        await raise_unique_error()

    assert exc_info.value.constraint_name == "maps_name_active_key"
    assert exc_info.value.table == "maps.maps"


@pytest.mark.asyncio
async def test_translate_foreign_key_violation() -> None:
    @translate_db_errors("maps.credits")
    async def raise_fk_error() -> None:
        raise MockForeignKeyViolation("credits_user_id_fkey", "Key (user_id)=(5) is not present.")

    with pytest.raises(ForeignKeyViolationError) as exc_info:
        await raise_fk_error()

    assert exc_info.value.constraint_name == "credits_user_id_fkey"


@pytest.mark.asyncio
async def test_translate_connection_failure_to_storage_error() -> None:
    @translate_db_errors("maps.maps")
    async def lose_connection() -> None:
        raise ConnectionResetError("peer went away")

    with pytest.raises(StorageError):
        await lose_connection()


@pytest.mark.asyncio
async def test_translate_passes_through_results() -> None:
    @translate_db_errors("maps.maps")
    async def ok() -> int:
        return 5

    assert await ok() == 5
