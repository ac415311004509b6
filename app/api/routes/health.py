from __future__ import annotations

from fastapi import APIRouter, Request

from app.core.rate_limit import HEALTH_CHECK_PATH, original_url
from app.schemas.envelope import HealthCheckResponse

router = APIRouter(tags=["Health"])


@router.get(HEALTH_CHECK_PATH, response_model=HealthCheckResponse)
def health_check(request: Request, cache: str | None = None) -> HealthCheckResponse:
    """Health check endpoint.

    Verifies the service is running and responsive. It is never rate limited,
    so load balancers and monitors can poll it freely.

    Returns:
        HealthCheckResponse: Success envelope with message "ok".
    """

    return HealthCheckResponse(
        status="success",
        request_url=original_url(request),
        message="ok",
        cache=cache,
        data=[],
    )
