"""Tests for global exception handlers.

Validates that all exception types are handled consistently with
proper HTTP status codes, the failure envelope, and no information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.errors import AppError, StoreAppError, ValidationAppError
from app.core.exception_handlers import (
    INTERNAL_ERROR_MESSAGE,
    NOT_FOUND_MESSAGE,
    general_exception_handler,
    setup_exception_handlers,
)


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def handler_client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_validation_error_returns_400(self, handler_client, app_with_handlers) -> None:
        @app_with_handlers.get("/api/test-validation")
        async def endpoint():
            raise ValidationAppError(code="bad_setting", message="Setting is invalid")

        resp = handler_client.get("/api/test-validation?x=1")

        assert resp.status_code == 400
        body = resp.json()
        assert body["status"] == "fail"
        assert body["request_url"] == "/api/test-validation?x=1"
        assert body["message"] == "Setting is invalid"
        assert body["code"] == "bad_setting"
        assert body["data"] == []
        assert "request_id" in body

    def test_validation_error_includes_details(self, handler_client, app_with_handlers) -> None:
        @app_with_handlers.get("/api/test-details")
        async def endpoint():
            raise ValidationAppError(
                code="rate_limit_missing_redis_url",
                message="Redis URL missing",
                details={"setting": "RATE_LIMIT_REDIS_URL", "backend": "redis"},
            )

        body = handler_client.get("/api/test-details").json()

        assert body["details"] == {"setting": "RATE_LIMIT_REDIS_URL", "backend": "redis"}

    def test_store_error_returns_503(self, handler_client, app_with_handlers) -> None:
        @app_with_handlers.get("/api/test-store")
        async def endpoint():
            raise StoreAppError(code="rate_limit_store_unavailable", message="Store down")

        resp = handler_client.get("/api/test-store")

        assert resp.status_code == 503
        assert resp.json()["code"] == "rate_limit_store_unavailable"

    def test_base_app_error_returns_500(self, handler_client, app_with_handlers) -> None:
        @app_with_handlers.get("/api/test-base")
        async def endpoint():
            raise AppError(code="unexpected", message="Something broke")

        assert handler_client.get("/api/test-base").status_code == 500


class TestNotFound:
    def test_api_path_returns_json_envelope(self, handler_client) -> None:
        resp = handler_client.get("/api/missing")

        assert resp.status_code == 404
        body = resp.json()
        assert body["status"] == "fail"
        assert body["request_url"] == "/api/missing"
        assert body["message"] == NOT_FOUND_MESSAGE
        assert body["data"] == []

    def test_page_path_renders_html(self, handler_client) -> None:
        resp = handler_client.get("/missing-page")

        assert resp.status_code == 404
        assert resp.headers["content-type"].startswith("text/html")
        assert "Page not found" in resp.text


class TestRequestValidation:
    def test_invalid_query_returns_400(self, handler_client, app_with_handlers) -> None:
        @app_with_handlers.get("/api/items")
        async def endpoint(limit: int):
            return {"limit": limit}

        resp = handler_client.get("/api/items?limit=abc")

        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_handler_registered(self, app_with_handlers) -> None:
        assert Exception in app_with_handlers.exception_handlers

    def test_general_exception_handler_never_leaks_details(self) -> None:
        request = AsyncMock()
        request.url.path = "/api/test"
        request.url.query = ""
        request.method = "GET"

        exc = RuntimeError("Unexpected error: redis password=hunter2")
        response = asyncio.run(general_exception_handler(request, exc))

        body = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert body["code"] == "internal_server_error"
        assert body["message"] == INTERNAL_ERROR_MESSAGE
        assert "hunter2" not in json.dumps(body)
        assert "RuntimeError" not in json.dumps(body)
        assert "Traceback" not in json.dumps(body)


def test_multiple_handler_setups_does_not_fail() -> None:
    app = FastAPI()

    setup_exception_handlers(app)
    setup_exception_handlers(app)

    assert AppError in app.exception_handlers
