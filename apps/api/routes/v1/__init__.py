"""V1 API routes."""

from .maps import MapsController

route_handlers = [MapsController]
