"""
Pytest configuration and shared test fixtures.

Builds gateway applications from explicit contexts and in-memory route
groups so tests never depend on the process environment or the route
modules shipped with the package.
"""

from typing import Any, Callable, Generator

import pytest
from fastapi import APIRouter, Request
from fastapi.testclient import TestClient

from hatim_api.api.routes import RouteGroups
from hatim_api.core.config import get_settings
from hatim_api.core.environment import (
    DEFAULT_ALLOWED_ORIGINS,
    GatewayContext,
    capture_snapshot,
)
from hatim_api.main import create_app

GATEWAY_ENV_VARS = (
    "NODE_ENV",
    "PORT",
    "PASSENGER_APP_PORT",
    "API_PORT",
    "FRONTEND_ORIGINS",
    "APP_URL",
    "PASSENGER_APP_ENV",
    "PASSENGER_APP_ROOT",
    "LOG_LEVEL",
    "BOOTSTRAP_LOG_DIR",
    "JSON_BODY_LIMIT",
    "AUTH_ROUTES_MODULE",
    "USERS_ROUTES_MODULE",
    "HATIMS_ROUTES_MODULE",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path) -> Generator[None, None, None]:
    """
    Isolate every test from the host environment.

    Removes gateway variables, runs from a temporary working directory so no
    `.env` file or `tmp/` log directory leaks in, and clears the settings cache.
    """
    for name in GATEWAY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def build_route_groups() -> RouteGroups:
    """Route groups with a few handlers that exercise the pipeline."""
    auth = APIRouter()
    users = APIRouter()
    hatims = APIRouter()

    @auth.post("/login")
    async def login(request: Request) -> dict[str, Any]:
        return {"received": await request.json()}

    @auth.post("/parsed")
    async def parsed(request: Request) -> dict[str, Any]:
        return {"parsed": getattr(request.state, "json_body", None)}

    @users.get("/")
    async def list_users() -> list[dict[str, str]]:
        return [{"name": "ayse"}]

    @hatims.get("/")
    async def list_hatims() -> list[dict[str, int]]:
        return [{"id": 1}]

    @hatims.get("/boom")
    async def boom() -> None:
        raise RuntimeError("cüz kaydı okunamadı")

    return RouteGroups(auth=auth, users=users, hatims=hatims)


@pytest.fixture
def route_groups() -> RouteGroups:
    return build_route_groups()


@pytest.fixture
def make_context() -> Callable[..., GatewayContext]:
    """Factory for gateway contexts with overridable fields."""

    def factory(**overrides: Any) -> GatewayContext:
        values: dict[str, Any] = {
            "port": 3001,
            "allowed_origins": DEFAULT_ALLOWED_ORIGINS,
            "production": False,
            "snapshot": capture_snapshot({}),
        }
        values.update(overrides)
        return GatewayContext(**values)

    return factory


@pytest.fixture
def make_client(make_context, route_groups) -> Generator[Callable[..., TestClient], None, None]:
    """
    Factory for test clients over freshly built applications.

    Server exceptions are not re-raised so the 500 responses produced by the
    error handler can be asserted on.
    """
    clients: list[TestClient] = []

    def factory(**overrides: Any) -> TestClient:
        app = create_app(make_context(**overrides), route_groups)
        client = TestClient(app, raise_server_exceptions=False)
        client.__enter__()
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def test_client(make_client) -> TestClient:
    """Development-mode client with the default origin allow-list."""
    return make_client()


@pytest.fixture
def production_client(make_client) -> TestClient:
    """Production-mode client with the default origin allow-list."""
    return make_client(production=True, port=None)
