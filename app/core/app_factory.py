from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests can build isolated apps with their own admission filter.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api.routes import health_router, pages_router, status_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import admission_middleware, request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import RequestAdmissionFilter, build_admission_filter


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    close = getattr(app.state.admission_filter.store, "close", None)
    if close is not None:
        await close()


def create_app(admission_filter: RequestAdmissionFilter | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        admission_filter: Optional pre-built filter; built from settings if omitted.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title=settings.app.name,
        description=(
            "Web service backend with per-client request admission control. "
            "Requests under /api are limited by the API policy, every other page "
            "by the app policy; /health-check is never limited. Throttled clients "
            "receive 429 with a JSON envelope or an HTML page, depending on the "
            "request Content-Type."
        ),
        version="0.1.0",
        debug=settings.app.debug,
        lifespan=_lifespan,
    )
    app.state.admission_filter = admission_filter or build_admission_filter(settings.rate_limit)

    # Middleware: the last one registered runs first, so request ids are set
    # before admission control logs anything.
    app.middleware("http")(admission_middleware)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(status_router, prefix="/api")
    app.include_router(health_router)
    app.include_router(pages_router)

    apply_openapi_customizations(app)

    return app
