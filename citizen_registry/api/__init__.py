"""API package exports."""

from citizen_registry.api.middleware import CorrelationIdMiddleware
from citizen_registry.api.routes import router

__all__ = ["router", "CorrelationIdMiddleware"]
