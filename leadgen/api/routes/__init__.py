"""API routes package."""

from .health_routes import router as health_router
from .search_routes import (
    get_orchestrator,
    get_store,
    leadgen_exception_handler,
    router as search_router,
    shutdown_services,
    validation_exception_handler,
)

__all__ = [
    "health_router",
    "search_router",
    "get_orchestrator",
    "get_store",
    "leadgen_exception_handler",
    "shutdown_services",
    "validation_exception_handler",
]
