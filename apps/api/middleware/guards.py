from litestar.connection import ASGIConnection
from litestar.exceptions import NotAuthorizedException, PermissionDeniedException
from litestar.handlers import BaseRouteHandler
from mapdepot_sdk.auth import Role

from middleware.auth import AuthToken

# Also the exclude list of the auth middleware (app.py)
AUTH_EXCLUDED_PATHS = frozenset({"/docs", "/schema", "/healthcheck"})


def role_guard(connection: ASGIConnection, route_handler: BaseRouteHandler) -> None:
    """Reject callers lacking the roles a handler lists in `opt["required_roles"]`.

    Handlers without `required_roles` only need an authenticated caller.
    """
    if route_handler.opt.get("exclude_from_auth", False):
        return

    request_path = connection.scope.get("path", "")
    if request_path in AUTH_EXCLUDED_PATHS or request_path.startswith("/docs"):
        return

    auth_data = connection.scope.get("auth")
    if auth_data is None:
        raise NotAuthorizedException(detail="Authentication required")

    auth: AuthToken = auth_data

    if auth.is_superuser:
        return

    required_roles: set[Role] | None = route_handler.opt.get("required_roles")
    if not required_roles:
        return

    missing = required_roles - set(auth.roles)
    if missing:
        raise PermissionDeniedException(detail=f"Missing required roles: {', '.join(sorted(missing))}")
