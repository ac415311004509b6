from __future__ import annotations

from app.api.routes.health import router as health_router
from app.api.routes.pages import router as pages_router
from app.api.routes.status import router as status_router

__all__ = ["health_router", "pages_router", "status_router"]
