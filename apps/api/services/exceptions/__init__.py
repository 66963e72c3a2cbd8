"""Service-layer domain exceptions."""

from .maps import (
    CreditNotFoundError,
    CreditUserNotFoundError,
    DuplicateCreditError,
    MapFileNotFoundError,
    MapNameExistsError,
    MapNotFoundError,
    MapsError,
    MapValidationError,
    NotMapSubmitterError,
    SubmissionLimitError,
)

__all__ = [
    "CreditNotFoundError",
    "CreditUserNotFoundError",
    "DuplicateCreditError",
    "MapFileNotFoundError",
    "MapNameExistsError",
    "MapNotFoundError",
    "MapValidationError",
    "MapsError",
    "NotMapSubmitterError",
    "SubmissionLimitError",
]
