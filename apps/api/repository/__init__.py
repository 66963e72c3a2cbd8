"""Repository layer for data access."""

from repository.auth_repository import AuthRepository, InMemoryAuthRepository
from repository.maps_repository import MapsRepository, MapsRepositoryProtocol, provide_maps_repository
from repository.memory_maps_repository import InMemoryMapsRepository

__all__ = [
    "AuthRepository",
    "InMemoryAuthRepository",
    "InMemoryMapsRepository",
    "MapsRepository",
    "MapsRepositoryProtocol",
    "provide_maps_repository",
]
