"""Authentication repository for data access."""

from __future__ import annotations

from logging import getLogger
from typing import Protocol

from asyncpg import Connection
from litestar.datastructures import State

from .base import BaseRepository
from .exceptions import translate_db_errors

log = getLogger(__name__)


class AuthRepositoryProtocol(Protocol):
    """Lookup contract used by the authentication middleware."""

    async def fetch_api_token(self, api_key: str) -> dict | None: ...


class AuthRepository(BaseRepository):
    """Repository for API token lookups backed by PostgreSQL."""

    @translate_db_errors("public.api_tokens")
    async def fetch_api_token(
        self,
        api_key: str,
        *,
        conn: Connection | None = None,
    ) -> dict | None:
        """Resolve an API key to its user and token grants.

        Args:
            api_key: Key presented in the `X-API-KEY` header.
            conn: Optional connection for transaction participation.

        Returns:
            Dict with user id, alias, superuser flag and roles, or None if unknown.
        """
        _conn = self._get_connection(conn)

        row = await _conn.fetchrow(
            """
            SELECT u.id, u.alias, t.api_key, t.is_superuser, t.roles
            FROM public.api_tokens t
            JOIN core.users u ON t.user_id = u.id
            WHERE t.api_key = $1
            """,
            api_key,
        )
        return dict(row) if row else None


class InMemoryAuthRepository:
    """API tokens held in memory, for local development and tests."""

    def __init__(self) -> None:
        """Initialize with no tokens."""
        self._tokens: dict[str, dict] = {}

    def add_token(
        self,
        api_key: str,
        user_id: int,
        alias: str,
        *,
        roles: tuple[str, ...] = (),
        is_superuser: bool = False,
    ) -> None:
        """Register a token for a user."""
        self._tokens[api_key] = {
            "id": user_id,
            "alias": alias,
            "api_key": api_key,
            "is_superuser": is_superuser,
            "roles": list(roles),
        }

    async def fetch_api_token(self, api_key: str) -> dict | None:
        """Resolve an API key to its user and token grants."""
        token = self._tokens.get(api_key)
        if token is None:
            log.debug("Unknown API key presented")
            return None
        return dict(token)


def provide_auth_repository(state: State) -> AuthRepositoryProtocol:
    """Return the repository injected into state, or one over the app's pool.

    Args:
        state: Application state.

    Returns:
        Repository instance.
    """
    repo = state.get("auth_repository")
    if repo is not None:
        return repo
    return AuthRepository(state.db_pool)
