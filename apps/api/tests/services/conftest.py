"""Shared fixtures for service unit tests.

Services run against the in-memory repository and storage; individual tests
patch repository methods with pytest-mock to force failure paths.
"""

from typing import Any, Callable

import pytest
from litestar.datastructures import State
from mapdepot_sdk.maps import MapCreateRequest, MapCreditCreateRequest

from repository.memory_maps_repository import InMemoryMapsRepository
from services.map_storage_service import InMemoryMapStorageService
from services.maps_service import MapsService

SUBMISSION_LIMIT = 3


@pytest.fixture
def mock_state(mocker):
    """Mock Litestar State."""
    return mocker.Mock(spec=State)


@pytest.fixture
def submission_limit() -> int:
    """Pending-map limit used by `maps_service`."""
    return SUBMISSION_LIMIT


@pytest.fixture
def maps_service(
    mock_state,
    maps_repo: InMemoryMapsRepository,
    map_storage: InMemoryMapStorageService,
    submission_limit: int,
) -> MapsService:
    """MapsService over in-memory collaborators."""
    return MapsService(mock_state, maps_repo, map_storage, submission_limit=submission_limit)


@pytest.fixture
def make_create_request(credited_user_ids: tuple[int, ...]) -> Callable[..., MapCreateRequest]:
    """Factory for create requests with unique names.

    Usage:
        data = make_create_request()
        data = make_create_request(name="Surf Utopia", difficulty=7)
    """
    counter = iter(range(1, 10_000))

    def _make(name: str | None = None, credits: list[MapCreditCreateRequest] | None = None, **overrides: Any):
        fields: dict[str, Any] = {
            "name": name or f"test_map_{next(counter)}",
            "type": "surf",
            "difficulty": 5,
            "is_linear": False,
            "credits": (
                credits
                if credits is not None
                else [MapCreditCreateRequest(user_id=credited_user_ids[0], role="author")]
            ),
        }
        fields.update(overrides)
        return MapCreateRequest(**fields)

    return _make
