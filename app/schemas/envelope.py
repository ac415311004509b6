"""Pydantic schemas for the JSON response envelope shared by all endpoints."""

from __future__ import annotations

from typing import Any, List, Literal

from pydantic import BaseModel, Field


class Envelope(BaseModel):
    """Standard JSON body: status, request URL, message and a data list."""

    status: Literal["success", "fail"] = Field(
        ..., description="'success' for handled requests, 'fail' for rejected ones."
    )
    request_url: str = Field(
        ..., description="Original request URL (path plus query string)."
    )
    message: str = Field(..., description="Human-readable outcome message.")
    data: List[Any] = Field(
        default_factory=list,
        description="Payload items; empty for failures.",
    )


class HealthCheckResponse(Envelope):
    """Health check body; echoes the optional ``cache`` query parameter."""

    cache: str | None = Field(
        default=None,
        description="Value of the 'cache' query parameter, if provided.",
    )


class PolicyInfo(BaseModel):
    """Public description of one rate limit policy."""

    name: str = Field(..., description="Route group the policy protects ('api' or 'app').")
    window_ms: int = Field(..., description="Window length in milliseconds.")
    max_requests: int = Field(..., description="Requests admitted per client per window.")
    exempt_paths: List[str] = Field(
        default_factory=list, description="URLs that are never counted."
    )


class StatusResponse(Envelope):
    """Status body listing the declared rate limit policies."""

    data: List[PolicyInfo] = Field(default_factory=list)


def fail_body(request_url: str, message: str) -> dict[str, Any]:
    """Build the plain dict form of a failure envelope."""

    return Envelope(status="fail", request_url=request_url, message=message).model_dump()
