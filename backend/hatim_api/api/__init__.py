"""HTTP layer: route group loading and request middleware."""
