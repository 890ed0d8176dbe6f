"""API 엔드포인트 패키지 - export only."""

from .routes import (
    get_orchestrator,
    get_store,
    health_router,
    leadgen_exception_handler,
    search_router,
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
