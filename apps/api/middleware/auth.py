import msgspec
from litestar.connection import ASGIConnection
from litestar.exceptions import NotAuthorizedException
from litestar.middleware.authentication import AbstractAuthenticationMiddleware, AuthenticationResult

from repository.auth_repository import provide_auth_repository

API_KEY_HEADER = "X-API-KEY"


class AuthUser(msgspec.Struct):
    id: int
    alias: str


class AuthToken(msgspec.Struct):
    api_key: str
    is_superuser: bool = False
    roles: tuple[str, ...] = ()


class CustomAuthenticationMiddleware(AbstractAuthenticationMiddleware):
    async def authenticate_request(self, connection: ASGIConnection) -> AuthenticationResult:
        """Resolve the API key header to the calling user."""
        auth_repo = provide_auth_repository(connection.app.state)
        api_key = connection.headers.get(API_KEY_HEADER)

        if not api_key:
            raise NotAuthorizedException("Missing API key")

        row = await auth_repo.fetch_api_token(api_key)

        if not row:
            raise NotAuthorizedException("Invalid API key")

        user = AuthUser(id=row["id"], alias=row["alias"])
        token = AuthToken(
            api_key=row["api_key"],
            is_superuser=row["is_superuser"] or False,
            roles=tuple(row["roles"] or []),
        )
        return AuthenticationResult(user=user, auth=token)
