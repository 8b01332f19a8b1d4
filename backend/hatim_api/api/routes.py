"""
Route group loading.

Each route group (auth, users, hatims) lives in its own module exposing a
module-level `router` (an APIRouter). The modules are resolved by import path
at startup so deployments can swap implementations through settings. Loading
is all-or-nothing: if any group fails, startup aborts with RouteLoadError.
"""

import importlib
from typing import Callable, Mapping, NamedTuple, Optional

from fastapi import APIRouter

from hatim_api.core.exceptions import RouteLoadError
from hatim_api.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ROUTE_MODULES: dict[str, str] = {
    "auth": "hatim_api.api.v1.auth",
    "users": "hatim_api.api.v1.users",
    "hatims": "hatim_api.api.v1.hatims",
}


class RouteGroups(NamedTuple):
    """The three route groups, in mount order."""

    auth: APIRouter
    users: APIRouter
    hatims: APIRouter

    def mounts(self) -> list[tuple[str, APIRouter]]:
        """Prefix and router pairs in the order they are mounted."""
        return [
            ("/api/auth", self.auth),
            ("/api/users", self.users),
            ("/api/hatims", self.hatims),
        ]


def load_router(group: str, module_path: str) -> APIRouter:
    """
    Import a route module and return its router.

    Args:
        group: Route group name, used in error messages
        module_path: Dotted module path exposing `router`

    Returns:
        The module's APIRouter

    Raises:
        RouteLoadError: If the module cannot be imported or has no APIRouter
    """
    try:
        module = importlib.import_module(module_path)
    except Exception as e:
        raise RouteLoadError(group, module_path, f"{type(e).__name__}: {e}") from e

    router = getattr(module, "router", None)
    if not isinstance(router, APIRouter):
        raise RouteLoadError(
            group,
            module_path,
            f"expected module attribute 'router' to be an APIRouter, "
            f"got {type(router).__name__}",
        )
    return router


def load_route_groups(
    modules: Optional[Mapping[str, str]] = None,
    bootstrap_log: Optional[Callable[[str], None]] = None,
) -> RouteGroups:
    """
    Load all route groups.

    Args:
        modules: Group name to module path; missing groups use
            DEFAULT_ROUTE_MODULES
        bootstrap_log: Best-effort file logger for startup diagnostics

    Returns:
        RouteGroups with every group loaded

    Raises:
        RouteLoadError: On the first group that fails to load
    """
    resolved = {**DEFAULT_ROUTE_MODULES, **(modules or {})}
    routers: dict[str, APIRouter] = {}

    for group in RouteGroups._fields:
        module_path = resolved[group]
        try:
            routers[group] = load_router(group, module_path)
        except RouteLoadError as e:
            if bootstrap_log is not None:
                bootstrap_log(f"routes: load failed {group}: {e}")
            logger.error(
                "Route group failed to load",
                group=group,
                module=module_path,
                error=str(e),
                exc_info=True,
            )
            raise
        logger.debug("Route group loaded", group=group, module=module_path)

    return RouteGroups(**routers)
