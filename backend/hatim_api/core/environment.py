"""
Startup environment resolution.

Derives the listening port and the CORS allow-list from settings, captures a
snapshot of the hosting environment for diagnostics, and bundles everything
into an immutable GatewayContext that is handed to the application factory.
All values are computed once at startup and never re-evaluated per request.
"""

import os
import platform
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

from hatim_api.core.config import Settings

DEFAULT_PORT = 3001

DEFAULT_ALLOWED_ORIGINS: tuple[str, ...] = (
    "http://localhost:3000",
    "http://localhost:5173",
    "https://bezmidar.de",
    "https://www.bezmidar.de",
)

DEFAULT_HOST = "0.0.0.0"

SNAPSHOT_VARIABLES: tuple[str, ...] = (
    "NODE_ENV",
    "PORT",
    "PASSENGER_APP_PORT",
    "API_PORT",
    "FRONTEND_ORIGINS",
    "APP_URL",
    "PASSENGER_APP_ENV",
    "PASSENGER_APP_ROOT",
)


@dataclass(frozen=True)
class EnvironmentSnapshot:
    """Read-only capture of the variables that shape startup."""

    variables: Mapping[str, str]
    cwd: str
    python_version: str

    def as_dict(self) -> dict[str, object]:
        return {
            "env": dict(self.variables),
            "cwd": self.cwd,
            "python": self.python_version,
        }


@dataclass(frozen=True)
class GatewayContext:
    """
    Process-wide configuration for the gateway.

    Attributes:
        port: Resolved listen port, or None when binding is left to an
            external process manager
        allowed_origins: CORS allow-list, order preserved
        production: True when NODE_ENV is 'production'
        snapshot: Environment captured at startup
        max_body_bytes: Largest JSON body accepted before dispatch
    """

    port: Optional[int]
    allowed_origins: tuple[str, ...]
    production: bool
    snapshot: EnvironmentSnapshot
    max_body_bytes: int = 100 * 1024
    host: str = DEFAULT_HOST
    app_name: str = "Hatim API"
    app_version: str = "1.0.0"

    @property
    def self_binding(self) -> bool:
        """Whether the gateway opens its own listening socket."""
        return self.port is not None

    @property
    def expose_error_detail(self) -> bool:
        """Whether error messages are echoed to clients."""
        return not self.production


def capture_snapshot(environ: Optional[Mapping[str, str]] = None) -> EnvironmentSnapshot:
    """
    Capture the startup-relevant environment variables.

    Args:
        environ: Source mapping, defaults to os.environ

    Returns:
        Immutable snapshot; unset variables are recorded as empty strings
    """
    source = os.environ if environ is None else environ
    variables = {name: source.get(name, "") for name in SNAPSHOT_VARIABLES}
    return EnvironmentSnapshot(
        variables=MappingProxyType(variables),
        cwd=os.getcwd(),
        python_version=platform.python_version(),
    )


def resolve_port(settings: Settings) -> Optional[int]:
    """
    Resolve the listen port.

    Precedence: PORT, then PASSENGER_APP_PORT, then (outside production)
    API_PORT, then DEFAULT_PORT. In production with neither of the first two
    set, returns None and binding is deferred to the process manager.

    Args:
        settings: Application settings

    Returns:
        Port number or None
    """
    if settings.port is not None:
        return settings.port
    if settings.passenger_app_port is not None:
        return settings.passenger_app_port
    if settings.is_production:
        return None
    if settings.api_port is not None:
        return settings.api_port
    return DEFAULT_PORT


def parse_origins(value: Optional[str]) -> tuple[str, ...]:
    """Split a comma-separated origin list, trimming and dropping empties."""
    if not value:
        return ()
    return tuple(origin.strip() for origin in value.split(",") if origin.strip())


def resolve_allowed_origins(settings: Settings) -> tuple[str, ...]:
    """
    Resolve the CORS allow-list.

    FRONTEND_ORIGINS is used when set, otherwise APP_URL. An empty result
    falls back to DEFAULT_ALLOWED_ORIGINS.

    Args:
        settings: Application settings

    Returns:
        Ordered tuple of allowed origins
    """
    origins = parse_origins(settings.frontend_origins or settings.app_url)
    return origins or DEFAULT_ALLOWED_ORIGINS


def build_context(
    settings: Settings,
    environ: Optional[Mapping[str, str]] = None,
) -> GatewayContext:
    """
    Build the gateway context from settings.

    Args:
        settings: Application settings
        environ: Environment source for the diagnostic snapshot

    Returns:
        GatewayContext shared by the application factory and entry point
    """
    return GatewayContext(
        port=resolve_port(settings),
        allowed_origins=resolve_allowed_origins(settings),
        production=settings.is_production,
        snapshot=capture_snapshot(environ),
        max_body_bytes=settings.json_body_limit,
        app_name=settings.app_name,
        app_version=settings.app_version,
    )
