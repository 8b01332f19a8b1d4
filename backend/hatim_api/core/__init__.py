"""
Core package for shared utilities.

Configuration, environment resolution, logging and error types used by the
gateway and its entry points.
"""
