"""Global exception handlers for consistent error responses.

Every JSON error uses the same envelope as the rest of the API:
``{"status": "fail", "request_url": ..., "message": ..., "data": []}``
plus a machine-readable ``code`` and the ``request_id``.

Design:
- AppError subclasses -> appropriate HTTP status (400, 503)
- 404 -> JSON envelope under /api, not-found HTML page elsewhere
- Request validation errors -> 400
- Unexpected Exception -> generic 500 (safety net)
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import AppError, StoreAppError, ValidationAppError
from app.core.logging import get_request_id
from app.core.rate_limit import original_url
from app.core.templates import templates
from app.schemas.envelope import fail_body

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "The resource does not exist!"
INTERNAL_ERROR_MESSAGE = (
    "The server encountered an internal error or misconfiguration "
    "and was unable to complete your request!"
)
NOT_FOUND_TEMPLATE = "not-found.html"


def is_api_request(request: Request) -> bool:
    """True for requests under the /api prefix, which always get JSON errors."""

    path = request.url.path
    return path == "/api" or path.startswith("/api/")


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: dict | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build the failure envelope used by every JSON error response."""

    content = fail_body(original_url(request), message)
    content["code"] = code
    content["request_id"] = get_request_id()
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle application errors with the failure envelope.

    Routes errors to HTTP status codes:
    - ValidationAppError -> 400 Bad Request (client or config fault)
    - StoreAppError -> 503 Service Unavailable (backend fault)

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    if isinstance(exc, StoreAppError):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif not isinstance(exc, ValidationAppError):
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        },
    )

    return error_response(
        request,
        status_code=status_code,
        code=exc.code,
        message=exc.message,
        details=dict(exc.details) if exc.details else None,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Render framework HTTP errors, with an HTML page for unknown non-API URLs."""

    if exc.status_code == status.HTTP_404_NOT_FOUND:
        if not is_api_request(request):
            return templates.TemplateResponse(
                request,
                NOT_FOUND_TEMPLATE,
                {"title": "Not Found"},
                status_code=status.HTTP_404_NOT_FOUND,
            )
        return error_response(
            request,
            status_code=status.HTTP_404_NOT_FOUND,
            code="not_found",
            message=NOT_FOUND_MESSAGE,
        )

    return error_response(
        request,
        status_code=exc.status_code,
        code="http_error",
        message=str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Turn request validation failures into a 400 envelope."""

    errors = exc.errors()
    message = "; ".join(str(err.get("msg", "")) for err in errors) or "Invalid request"
    return error_response(
        request,
        status_code=status.HTTP_400_BAD_REQUEST,
        code="validation_error",
        message=message,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic message;
    no stack traces reach the client.

    Args:
        request: FastAPI request object.
        exc: Exception instance (unexpected).

    Returns:
        JSONResponse with generic error (no implementation details leaked).
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return error_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="internal_server_error",
        message=INTERNAL_ERROR_MESSAGE,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(general_exception_handler)
