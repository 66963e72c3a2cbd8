"""Service layer for business logic."""

from services.maps_service import MapsService, provide_maps_service

__all__ = [
    "MapsService",
    "provide_maps_service",
]
