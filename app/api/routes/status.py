from __future__ import annotations

from fastapi import APIRouter, Request

from app.core.rate_limit import RequestAdmissionFilter, original_url
from app.schemas.envelope import PolicyInfo, StatusResponse

router = APIRouter(tags=["Status"])


@router.get("/status", response_model=StatusResponse)
def api_status(request: Request) -> StatusResponse:
    """Describe the rate limit policies currently enforced by the service."""

    admission_filter: RequestAdmissionFilter = request.app.state.admission_filter
    policies = [
        PolicyInfo(
            name=policy.name,
            window_ms=policy.window_ms,
            max_requests=policy.max_requests,
            exempt_paths=sorted(policy.exempt_paths),
        )
        for policy in admission_filter.policies.values()
    ]
    message = "ok" if admission_filter.enabled else "ok (rate limiting disabled)"
    return StatusResponse(
        status="success",
        request_url=original_url(request),
        message=message,
        data=policies,
    )
