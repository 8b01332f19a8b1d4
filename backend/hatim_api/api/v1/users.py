"""User route group, mounted at /api/users (override with USERS_ROUTES_MODULE)."""

from fastapi import APIRouter

router = APIRouter(tags=["Users"])
