"""
Fixed-shape JSON error responses.

Shared by the error middleware, the application exception handler, the
fallback route and the CORS gate.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse

from hatim_api.core.logging import get_logger

logger = get_logger(__name__)

SERVER_ERROR_MESSAGE = "Sunucu hatası"
NOT_FOUND_MESSAGE = "Endpoint bulunamadı"


def log_unhandled_exception(request: Request, exc: BaseException) -> None:
    logger.error(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=exc,
    )


def server_error_response(exc: BaseException, expose_detail: bool) -> JSONResponse:
    """
    Build the 500 response for an unhandled error.

    Args:
        exc: The error that escaped request handling
        expose_detail: Include the error message for the client

    Returns:
        JSON response `{"message": ..., "error"?: ...}`
    """
    content: dict[str, str] = {"message": SERVER_ERROR_MESSAGE}
    if expose_detail:
        content["error"] = str(exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
    )


def not_found_response() -> JSONResponse:
    """Build the 404 response for requests that match no route."""
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"message": NOT_FOUND_MESSAGE},
    )
