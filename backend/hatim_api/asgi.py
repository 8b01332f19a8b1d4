"""
ASGI entry point for externally managed processes.

Process managers (Passenger, gunicorn with uvicorn workers, `uvicorn
hatim_api.asgi:app`) import `app` from here and own the listening socket.
Startup fails at import time if any route group cannot be loaded.
"""

from hatim_api.main import startup

gateway = startup()
gateway.bootstrap_log("asgi: application handed to external process manager")

app = gateway.app

__all__ = ["app"]
