"""Tests for the role guard."""

import pytest
from litestar.exceptions import NotAuthorizedException, PermissionDeniedException

from middleware.auth import AuthToken
from middleware.guards import role_guard

pytestmark = [
    pytest.mark.domain_auth,
]


@pytest.fixture
def make_connection(mocker):
    def _make(auth: AuthToken | None, path: str = "/api/v1/maps"):
        connection = mocker.Mock()
        connection.scope = {"path": path, "auth": auth}
        return connection

    return _make


@pytest.fixture
def make_handler(mocker):
    def _make(**opt):
        handler = mocker.Mock()
        handler.opt = opt
        return handler

    return _make


def test_missing_auth_rejected(make_connection, make_handler):
    with pytest.raises(NotAuthorizedException):
        role_guard(make_connection(None), make_handler())


def test_no_required_roles_allows_any_caller(make_connection, make_handler):
    role_guard(make_connection(AuthToken(api_key="k")), make_handler())


def test_matching_role_allowed(make_connection, make_handler):
    token = AuthToken(api_key="k", roles=("mapper",))

    role_guard(make_connection(token), make_handler(required_roles={"mapper"}))


def test_missing_role_forbidden(make_connection, make_handler):
    token = AuthToken(api_key="k", roles=("mapper",))

    with pytest.raises(PermissionDeniedException, match="admin"):
        role_guard(make_connection(token), make_handler(required_roles={"admin"}))


def test_superuser_bypasses_roles(make_connection, make_handler):
    token = AuthToken(api_key="k", is_superuser=True)

    role_guard(make_connection(token), make_handler(required_roles={"admin"}))


@pytest.mark.parametrize("path", ["/docs", "/docs/swagger", "/healthcheck", "/schema"])
def test_excluded_paths_skip_checks(make_connection, make_handler, path):
    role_guard(make_connection(None, path=path), make_handler(required_roles={"admin"}))


def test_exclude_from_auth_opt(make_connection, make_handler):
    role_guard(make_connection(None), make_handler(exclude_from_auth=True))
