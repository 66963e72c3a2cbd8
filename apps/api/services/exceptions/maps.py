"""Domain exceptions for maps.

These exceptions represent business rule violations.
They are raised by services and caught by controllers.
"""

from __future__ import annotations

from utilities.errors import ConflictError, DomainError, ForbiddenError, NotFoundError, ValidationError


class MapsError(DomainError):
    """Base exception for maps domain."""


# Validation errors


class MapValidationError(MapsError, ValidationError):
    """Map validation failed."""

    code = "map_validation_failed"

    def __init__(self, message: str, field: str = "unknown") -> None:
        super().__init__(message, field=field)


class DuplicateCreditError(MapsError, ValidationError):
    """Same user credited more than once in a request."""

    code = "duplicate_credit"

    def __init__(self, user_id: int | None = None) -> None:
        super().__init__("You have a duplicate credited user.", user_id=user_id)


class CreditUserNotFoundError(MapsError, ValidationError):
    """Credited user does not exist."""

    code = "credit_user_not_found"

    def __init__(self) -> None:
        super().__init__("There is no user associated with a supplied credit.")


# Conflicts


class MapNameExistsError(MapsError, ConflictError):
    """Map name already used by a live map."""

    code = "map_name_exists"

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Map name already exists: {name}",
            name=name,
        )


class SubmissionLimitError(MapsError, ConflictError):
    """Submitter already holds the maximum number of pending maps."""

    code = "submission_limit_reached"

    def __init__(self, submitter_id: int, limit: int) -> None:
        super().__init__(
            f"Pending-submission limit reached ({limit} maps awaiting upload)",
            submitter_id=submitter_id,
            limit=limit,
        )


# Lookups


class MapNotFoundError(MapsError, NotFoundError):
    """Map not found."""

    code = "map_not_found"

    def __init__(self, map_id: int) -> None:
        super().__init__(
            f"No map found with ID: {map_id}",
            map_id=map_id,
        )


class MapFileNotFoundError(MapsError, NotFoundError):
    """Map exists but has no stored payload yet."""

    code = "map_file_not_found"

    def __init__(self, map_id: int) -> None:
        super().__init__(
            f"Map {map_id} has not been uploaded yet",
            map_id=map_id,
        )


class CreditNotFoundError(MapsError, NotFoundError):
    """User is not credited on the map."""

    code = "credit_not_found"

    def __init__(self, map_id: int, user_id: int) -> None:
        super().__init__(
            f"User {user_id} is not credited on map {map_id}",
            map_id=map_id,
            user_id=user_id,
        )


# Permissions


class NotMapSubmitterError(MapsError, ForbiddenError):
    """Only the submitter may modify the map."""

    code = "not_map_submitter"

    def __init__(self, map_id: int, user_id: int) -> None:
        super().__init__(
            f"User {user_id} did not submit map {map_id}",
            map_id=map_id,
            user_id=user_id,
        )
