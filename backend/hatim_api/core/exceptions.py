"""Gateway error types."""

from typing import Any


class GatewayError(Exception):
    """Base class for errors raised by the gateway itself."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class RouteLoadError(GatewayError):
    """
    Raised when a route group module cannot be loaded.

    Fatal at startup: the process must not serve with a partial route table.
    """

    def __init__(self, group: str, module: str, reason: str):
        super().__init__(
            f"Failed to load '{group}' routes from {module}: {reason}",
            group=group,
            module=module,
        )
        self.group = group
        self.module = module


class CORSOriginBlockedError(GatewayError):
    """Raised when a browser request arrives from an origin not on the allow-list."""

    def __init__(self, origin: str):
        super().__init__(f"CORS blocked for origin: {origin}", origin=origin)
        self.origin = origin


class MalformedJSONError(GatewayError):
    """Raised when a JSON request body cannot be decoded."""

    def __init__(self, reason: str):
        super().__init__(f"Malformed JSON body: {reason}", reason=reason)


class PayloadTooLargeError(GatewayError):
    """Raised when a JSON request body exceeds the configured limit."""

    def __init__(self, limit: int):
        super().__init__(f"request entity too large (limit {limit} bytes)", limit=limit)
        self.limit = limit
