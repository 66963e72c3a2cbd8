import re
import typing
from logging import getLogger
from typing import ClassVar, Optional

from litestar.exceptions import HTTPException
from litestar.status_codes import (
    HTTP_400_BAD_REQUEST,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
)

log = getLogger(__name__)

__all__ = [
    "ConflictError",
    "CustomHTTPException",
    "DomainError",
    "ForbiddenError",
    "NotFoundError",
    "ValidationError",
    "domain_error_to_http",
    "parse_pg_detail",
]


def parse_pg_detail(detail: str | None) -> Optional[dict[str, str]]:
    """Extract column names and values from a Postgres error 'detail' string.

    "Key (map_id, user_id)=(1, 2) already exists."
    Returns a dict: {'map_id': '1', 'user_id': '2'}
    Returns None if no match is found.

    Args:
        detail (str): Postgres error 'detail' string.

    Returns:
        Optional[dict[str, str]]: Column names and values.

    """
    if detail is None:
        return None
    match = re.search(r"\((.*?)\)=\((.*?)\)", detail)
    if match:
        columns = [col.strip() for col in match.group(1).split(",")]
        values = [val.strip() for val in match.group(2).split(",")]
        return dict(zip(columns, values))
    return None


class CustomHTTPException(HTTPException): ...


class DomainError(Exception):
    """Base exception for domain-level business rule violations.

    Attributes:
        code: Machine-readable name of the violated rule.
        message: Human-readable error message.
        context: Additional context about the error.

    """

    code: ClassVar[str] = "domain_error"

    def __init__(self, message: str, **context: typing.Any) -> None:  # noqa: ANN401
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            **context: Additional context (e.g., field names, identifiers).

        """
        super().__init__(message)
        self.message = message
        self.context = context


class NotFoundError(DomainError):
    """Referenced entity does not exist."""

    code = "not_found"


class ConflictError(DomainError):
    """Operation collides with existing state."""

    code = "conflict"


class ValidationError(DomainError):
    """Input is well-formed but violates a business rule."""

    code = "validation_error"


class ForbiddenError(DomainError):
    """Caller may not act on the referenced entity."""

    code = "forbidden"


_STATUS_BY_ERROR: tuple[tuple[type[DomainError], int], ...] = (
    (NotFoundError, HTTP_404_NOT_FOUND),
    (ConflictError, HTTP_409_CONFLICT),
    (ValidationError, HTTP_400_BAD_REQUEST),
    (ForbiddenError, HTTP_403_FORBIDDEN),
)


def domain_error_to_http(error: DomainError) -> CustomHTTPException:
    """Build the HTTP exception for a domain error.

    The response body carries the rule name under `extra.code` so clients can
    branch on the cause rather than on the message text.

    Args:
        error: Domain error raised by a service.

    Returns:
        CustomHTTPException: Exception to raise from the route handler.

    """
    status_code = HTTP_400_BAD_REQUEST
    for error_type, mapped_status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            status_code = mapped_status
            break
    else:
        log.warning("Unmapped domain error %s, defaulting to 400", type(error).__name__)

    return CustomHTTPException(
        detail=error.message,
        status_code=status_code,
        extra={"code": error.code, **error.context},
    )
