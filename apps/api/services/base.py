"""Base service class."""

from __future__ import annotations

from logging import getLogger

from litestar.datastructures import State

log = getLogger(__name__)


class BaseService:
    """Base class for all services.

    Services contain business logic and orchestrate repository calls.
    They own transaction boundaries and hold no per-request state.
    """

    def __init__(self, state: State) -> None:
        """Initialize service.

        Args:
            state: Application state.
        """
        self._state = state
