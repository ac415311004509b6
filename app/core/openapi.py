"""OpenAPI metadata and customization utilities.

Provides a helper to enrich the generated OpenAPI schema with:
- Tags metadata
- A documented 429 response on every rate limited operation
- The rate limit disclosure headers

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from app.core.rate_limit import HEALTH_CHECK_PATH, RATE_LIMIT_MESSAGE

_RATE_LIMIT_HEADERS = {
    "RateLimit-Limit": "Requests allowed per window.",
    "RateLimit-Remaining": "Requests left in the current window.",
    "RateLimit-Reset": "Seconds until the current window ends.",
    "Retry-After": "Seconds to wait before retrying.",
}

_TOO_MANY_REQUESTS = {
    "description": "Rate limit exceeded for this client.",
    "headers": {
        name: {"description": description, "schema": {"type": "integer"}}
        for name, description in _RATE_LIMIT_HEADERS.items()
    },
    "content": {
        "application/json": {
            "example": {
                "status": "fail",
                "request_url": "/api/status",
                "message": RATE_LIMIT_MESSAGE,
                "data": [],
            }
        },
        "text/html": {"schema": {"type": "string"}},
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and 429 responses.

    - Adds tags metadata if not present
    - Documents a 429 response on every operation except the health check,
      which is exempt from rate limiting
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Status",
                "description": "Rate limit policies enforced by the service.",
            },
            {
                "name": "Health",
                "description": "Liveness check; never rate limited.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if path == HEALTH_CHECK_PATH:
                continue
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj.setdefault("responses", {}).setdefault("429", _TOO_MANY_REQUESTS)

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
