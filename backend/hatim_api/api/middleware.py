"""
Request pipeline middleware.

Registered by the application factory so that a request passes, in order:
request logging, the CORS gate, the error translator, then the JSON body gate,
before reaching the router. Errors are turned into responses inside the CORS
gate, so allowed origins can read error bodies too.
"""

import json
from typing import Iterable

from fastapi import Request, status
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from hatim_api.api.errors import log_unhandled_exception, server_error_response
from hatim_api.core.exceptions import (
    CORSOriginBlockedError,
    MalformedJSONError,
    PayloadTooLargeError,
)
from hatim_api.core.logging import (
    clear_context,
    get_logger,
    log_performance,
    set_request_id,
)

logger = get_logger(__name__)

PREFLIGHT_METHODS = "GET,HEAD,PUT,PATCH,POST,DELETE"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Request logging and correlation ID management.

    Sets the request ID for correlation, logs request details and response
    time, and echoes the ID in the X-Request-ID response header.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = set_request_id(request.headers.get("X-Request-ID"))

        logger.info(
            "Request received",
            method=request.method,
            path=request.url.path,
            client_host=request.client.host if request.client else None,
        )

        try:
            with log_performance(
                logger,
                "request_processing",
                method=request.method,
                path=request.url.path,
            ):
                response = await call_next(request)

            response.headers["X-Request-ID"] = request_id

            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
            )
            return response
        except Exception as e:
            logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise
        finally:
            clear_context()


class CORSGateMiddleware(BaseHTTPMiddleware):
    """
    Allow-list CORS policy that rejects unknown origins.

    Requests without an Origin header pass untouched. Allowed origins are
    echoed back with credentials permitted. Any other origin fails the
    request with CORSOriginBlockedError, answered like any unhandled error.
    """

    def __init__(self, app: ASGIApp, allowed_origins: Iterable[str], expose_detail: bool = False):
        super().__init__(app)
        self.allowed_origins = frozenset(allowed_origins)
        self.expose_detail = expose_detail

    def is_allowed(self, origin: str) -> bool:
        return origin in self.allowed_origins

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        origin = request.headers.get("origin")

        if origin and not self.is_allowed(origin):
            exc = CORSOriginBlockedError(origin)
            logger.warning(
                "CORS origin blocked",
                origin=origin,
                method=request.method,
                path=request.url.path,
            )
            return server_error_response(exc, self.expose_detail)

        if request.method == "OPTIONS" and "access-control-request-method" in request.headers:
            response = Response(status_code=status.HTTP_204_NO_CONTENT)
            response.headers["Access-Control-Allow-Methods"] = PREFLIGHT_METHODS
            requested_headers = request.headers.get("access-control-request-headers")
            if requested_headers:
                response.headers["Access-Control-Allow-Headers"] = requested_headers
                response.headers.append("Vary", "Access-Control-Request-Headers")
        else:
            response = await call_next(request)

        if origin:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers.append("Vary", "Origin")
        return response


class ErrorResponseMiddleware(BaseHTTPMiddleware):
    """
    Translate unhandled errors into the generic 500 response.

    Sits inside the CORS gate so the error response still carries the
    origin headers for allowed browsers.
    """

    def __init__(self, app: ASGIApp, expose_detail: bool = False):
        super().__init__(app)
        self.expose_detail = expose_detail

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            log_unhandled_exception(request, exc)
            return server_error_response(exc, self.expose_detail)


def is_json_content_type(content_type: str) -> bool:
    """Match application/json and +json media types, ignoring parameters."""
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


class JSONBodyMiddleware(BaseHTTPMiddleware):
    """
    Decode JSON request bodies before dispatch.

    Malformed and oversized bodies raise MalformedJSONError and
    PayloadTooLargeError, answered like any other unhandled error, so no
    route handler sees them. The decoded value is available downstream as
    `request.state.json_body`.
    """

    def __init__(self, app: ASGIApp, max_body_bytes: int = 100 * 1024):
        super().__init__(app)
        self.max_body_bytes = max_body_bytes

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not is_json_content_type(request.headers.get("content-type", "")):
            return await call_next(request)

        declared_length = request.headers.get("content-length")
        if declared_length and declared_length.isdigit() and int(declared_length) > self.max_body_bytes:
            raise PayloadTooLargeError(self.max_body_bytes)

        body = await request.body()
        if len(body) > self.max_body_bytes:
            raise PayloadTooLargeError(self.max_body_bytes)

        if body.strip():
            try:
                request.state.json_body = json.loads(body)
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                raise MalformedJSONError(str(e)) from e

        return await call_next(request)
