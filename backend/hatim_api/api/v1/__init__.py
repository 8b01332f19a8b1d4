"""
API v1 route groups.

Each module exposes a `router` that the gateway mounts under /api.
"""
