"""API middleware package."""

from src.wizard_sync.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
