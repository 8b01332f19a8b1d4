"""
Authentication route group, mounted at /api/auth.

Handlers are registered on `router`; the gateway only mounts it. Point
AUTH_ROUTES_MODULE at another module to serve a different implementation.
"""

from fastapi import APIRouter

router = APIRouter(tags=["Auth"])
