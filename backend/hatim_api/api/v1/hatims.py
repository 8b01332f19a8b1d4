"""Hatim route group, mounted at /api/hatims (override with HATIMS_ROUTES_MODULE)."""

from fastapi import APIRouter

router = APIRouter(tags=["Hatims"])
