"""
FastAPI application factory and process entry point.

`create_app` wires the request pipeline (request logging, CORS gate, error
translation, JSON body gate, fixed health endpoints, route groups, 404 fallback)
from an explicit GatewayContext. `build_gateway` performs the startup sequence
(bootstrap log, environment resolution, route loading) and `main` either binds
a listening socket with uvicorn or leaves binding to an external process
manager.
"""

import asyncio
import sys
import threading
import traceback
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, NamedTuple, Optional

import uvicorn
from uvicorn.main import STARTUP_FAILURE
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from hatim_api.api.errors import (
    log_unhandled_exception,
    not_found_response,
    server_error_response,
)
from hatim_api.api.middleware import (
    CORSGateMiddleware,
    ErrorResponseMiddleware,
    JSONBodyMiddleware,
    RequestLoggingMiddleware,
)
from hatim_api.api.routes import RouteGroups, load_route_groups
from hatim_api.core.bootstrap_log import BootstrapLogger, iso_timestamp
from hatim_api.core.config import Settings, get_settings
from hatim_api.core.environment import GatewayContext, build_context
from hatim_api.core.logging import configure_logging, get_logger, log_performance

logger = get_logger(__name__)

FALLBACK_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class Gateway(NamedTuple):
    """A configured application together with the context it was built from."""

    app: FastAPI
    context: GatewayContext
    bootstrap_log: BootstrapLogger


def format_exception(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).rstrip()


def loop_exception_handler(
    bootstrap_log: Callable[[str], None],
) -> Callable[[asyncio.AbstractEventLoop, dict], None]:
    """
    Build an event loop exception handler that records unhandled task errors.

    Args:
        bootstrap_log: Best-effort file logger

    Returns:
        Handler suitable for loop.set_exception_handler
    """

    def handler(loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        detail = format_exception(exc) if exc is not None else context.get("message", "")
        bootstrap_log(f"unhandledRejection: {detail}")
        loop.default_exception_handler(context)

    return handler


def install_process_hooks(bootstrap_log: Callable[[str], None]) -> None:
    """
    Record uncaught exceptions in the bootstrap log.

    Chains onto the existing sys and threading hooks; the previous hook still
    runs, so the process terminates exactly as it would have otherwise.
    """
    previous_excepthook = sys.excepthook
    previous_thread_excepthook = threading.excepthook

    def excepthook(exc_type, exc, tb):
        detail = "".join(traceback.format_exception(exc_type, exc, tb)).rstrip()
        bootstrap_log(f"uncaughtException: {detail}")
        previous_excepthook(exc_type, exc, tb)

    def thread_excepthook(args):
        if args.exc_value is not None:
            bootstrap_log(f"uncaughtException: {format_exception(args.exc_value)}")
        previous_thread_excepthook(args)

    sys.excepthook = excepthook
    threading.excepthook = thread_excepthook


def create_app(
    context: GatewayContext,
    routes: RouteGroups,
    bootstrap_log: Optional[BootstrapLogger] = None,
) -> FastAPI:
    """
    Create the gateway application.

    Args:
        context: Resolved startup configuration
        routes: Loaded route groups
        bootstrap_log: Best-effort file logger used by the loop exception hook

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if bootstrap_log is not None:
            asyncio.get_running_loop().set_exception_handler(
                loop_exception_handler(bootstrap_log)
            )
        logger.info(
            "Application starting",
            production=context.production,
            port=context.port,
            allowed_origins=list(context.allowed_origins),
        )
        yield
        logger.info("Application shutting down")

    app = FastAPI(
        title=context.app_name,
        version=context.app_version,
        description="API gateway for auth, users and hatims",
        docs_url=None if context.production else "/docs",
        redoc_url=None,
        openapi_url=None if context.production else "/openapi.json",
        lifespan=lifespan,
    )
    app.state.context = context

    # Last added runs first: logging, CORS gate, error translator, JSON body gate.
    app.add_middleware(JSONBodyMiddleware, max_body_bytes=context.max_body_bytes)
    app.add_middleware(ErrorResponseMiddleware, expose_detail=context.expose_error_detail)
    app.add_middleware(
        CORSGateMiddleware,
        allowed_origins=context.allowed_origins,
        expose_detail=context.expose_error_detail,
    )
    app.add_middleware(RequestLoggingMiddleware)

    @app.api_route("/api/health", methods=["GET", "HEAD"], tags=["Health"])
    async def health_check() -> dict[str, str]:
        """Health status with the current server time."""
        return {"status": "ok", "timestamp": iso_timestamp()}

    @app.api_route("/", methods=["GET", "HEAD"], tags=["Health"], include_in_schema=False)
    async def root() -> dict[str, str]:
        """Liveness probe target for hosting infrastructure."""
        return {"status": "ok"}

    for prefix, router in routes.mounts():
        app.include_router(router, prefix=prefix)

    # Errors raised outside the error translator, e.g. by the outer middleware.
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        log_unhandled_exception(request, exc)
        return server_error_response(exc, context.expose_error_detail)

    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Must stay the last route registered.
    @app.api_route(
        "/{path:path}",
        methods=FALLBACK_METHODS,
        status_code=status.HTTP_404_NOT_FOUND,
        include_in_schema=False,
    )
    async def not_found(path: str) -> JSONResponse:
        return not_found_response()

    return app


class GatewayServer(uvicorn.Server):
    """uvicorn server that records a successful bind in the bootstrap log."""

    def __init__(self, config: uvicorn.Config, bootstrap_log: Callable[[str], None]):
        super().__init__(config)
        self.bootstrap_log = bootstrap_log

    async def startup(self, sockets=None) -> None:
        await super().startup(sockets=sockets)
        if self.started:
            self.bootstrap_log(f"listening: port={self.config.port}")
            logger.info("Backend listening", host=self.config.host, port=self.config.port)


def build_gateway(
    settings: Optional[Settings] = None,
    bootstrap_log: Optional[BootstrapLogger] = None,
) -> Gateway:
    """
    Run the startup sequence and return the configured gateway.

    Args:
        settings: Application settings, defaults to the cached instance
        bootstrap_log: Best-effort file logger, created from settings if omitted

    Returns:
        Gateway with the application and its context

    Raises:
        RouteLoadError: If any route group cannot be loaded
    """
    settings = settings or get_settings()
    bootstrap_log = bootstrap_log or BootstrapLogger(settings.bootstrap_log_dir)

    context = build_context(settings)
    env = context.snapshot.variables
    bootstrap_log(
        f"boot: NODE_ENV={env['NODE_ENV']} PORT={env['PORT']} "
        f"PASSENGER_APP_PORT={env['PASSENGER_APP_PORT']} API_PORT={env['API_PORT']}"
    )
    bootstrap_log.write_snapshot(context.snapshot)

    with log_performance(logger, "route_loading"):
        routes = load_route_groups(settings.route_modules, bootstrap_log)

    app = create_app(context, routes, bootstrap_log)
    return Gateway(app=app, context=context, bootstrap_log=bootstrap_log)


def serve(gateway: Gateway) -> None:
    """
    Bind and serve when a port was resolved; otherwise defer to the host.

    The `listening` line is written only once the socket is bound.

    Args:
        gateway: Configured gateway

    Raises:
        SystemExit: If the server never finished starting, e.g. port in use
    """
    context = gateway.context
    if not context.self_binding:
        gateway.bootstrap_log("deferred: no PORT/PASSENGER_APP_PORT in production, binding left to process manager")
        logger.info("Self-binding skipped; serving through external process manager")
        return

    config = uvicorn.Config(gateway.app, host=context.host, port=context.port)
    server = GatewayServer(config, gateway.bootstrap_log)
    try:
        server.run()
    finally:
        if not server.started:
            gateway.bootstrap_log(f"listen failed: port={context.port}")

    if not server.started:
        raise SystemExit(STARTUP_FAILURE)


def startup(settings: Optional[Settings] = None) -> Gateway:
    """
    Configure logging, install process hooks and build the gateway.

    Shared by the console entry point and the ASGI module.
    """
    settings = settings or get_settings()
    configure_logging(settings)
    bootstrap_log = BootstrapLogger(settings.bootstrap_log_dir)
    install_process_hooks(bootstrap_log)
    return build_gateway(settings, bootstrap_log)


def main() -> None:
    """Console entry point."""
    serve(startup())


if __name__ == "__main__":
    main()
