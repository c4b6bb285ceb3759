"""
Core package: configuration, security, middleware, error chain and lifecycle.
Kept apart from the API routes so the pipeline can be tested on its own.
"""

from core.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
