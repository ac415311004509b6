"""Request admission control for FastAPI routes.

This module decides, for every inbound request, whether it is admitted or
throttled, and builds the response for throttled requests.

Strategy:
- Fixed window per client identity, one window per policy. The window opens
  on the client's first request and closes ``window_ms`` later.
- Two policies: ``api`` for everything under ``/api`` and ``app`` for the
  remaining pages. Exempt URLs (``/health-check``) are never counted.
- Rejections answer 429 with a JSON envelope when the request declares
  ``Content-Type: application/json`` and with a static HTML page otherwise.

Because windows are fixed, a client can land up to ``2 * max`` requests
around a window boundary. That is the expected behavior of the policy.
"""

from __future__ import annotations

import enum
import hashlib
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, Mapping, Sequence

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from app.adapters.rate_limit.base import AbstractWindowStore
from app.adapters.rate_limit.factory import create_window_store
from app.core.config import RateLimitSettings, settings
from app.core.errors import StoreAppError
from app.core.templates import templates
from app.schemas.envelope import fail_body

logger = logging.getLogger(__name__)


RATE_LIMIT_MESSAGE = "Too many requests, please try again later?"
HEALTH_CHECK_PATH = "/health-check"
JSON_CONTENT_TYPE = "application/json"
RATE_LIMIT_TEMPLATE = "rate-limit.html"

# Ordered most specific first; "" matches every path.
DEFAULT_ROUTE_GROUPS: tuple[tuple[str, str], ...] = (
    ("/api", "api"),
    ("", "app"),
)


@dataclass(frozen=True)
class RateLimitPolicy:
    """Immutable limits for one protected route group.

    Attributes:
        name: Route group name (used to namespace counter keys).
        window_ms: Window length in milliseconds.
        max_requests: Requests admitted per client per window.
        exempt_paths: Original URLs that bypass counting entirely.
        standard_headers: Emit ``RateLimit-*`` headers.
        legacy_headers: Emit ``X-RateLimit-*`` headers.
        message: Text used in the JSON rejection envelope.
        skip: Optional extra predicate; a True result bypasses counting.
    """

    name: str
    window_ms: int
    max_requests: int
    exempt_paths: frozenset[str] = frozenset({HEALTH_CHECK_PATH})
    standard_headers: bool = True
    legacy_headers: bool = False
    message: str = RATE_LIMIT_MESSAGE
    skip: Callable[[Request], bool] | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.window_ms < 1:
            raise ValueError("window_ms must be >= 1")
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")

    @property
    def window_seconds(self) -> int:
        return math.ceil(self.window_ms / 1000)

    def is_exempt(self, request: Request) -> bool:
        """Return True when the request must not be counted under this policy."""
        if original_url(request) in self.exempt_paths:
            return True
        return bool(self.skip and self.skip(request))


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of evaluating one request against one policy.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Max requests per window.
        count: Requests counted in the current window, including this one.
        remaining: Requests left in the current window (0 when blocked).
        reset_at_ms: UNIX epoch milliseconds when the window ends.
        reset_after_seconds: Seconds until the window ends, rounded up.
        skipped: True when the request bypassed counting.
    """

    allowed: bool
    limit: int
    count: int
    remaining: int
    reset_at_ms: int
    reset_after_seconds: int
    skipped: bool = False

    @property
    def retry_after_seconds(self) -> int | None:
        return None if self.allowed else self.reset_after_seconds

    @classmethod
    def bypass(cls, policy: RateLimitPolicy) -> "AdmissionDecision":
        return cls(
            allowed=True,
            limit=policy.max_requests,
            count=0,
            remaining=policy.max_requests,
            reset_at_ms=0,
            reset_after_seconds=0,
            skipped=True,
        )


def original_url(request: Request) -> str:
    """Return the request path plus its query string, as sent by the client."""

    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


def client_identity(request: Request, *, trust_proxy: bool = False) -> str:
    """Resolve the network identity used to bucket a client's requests.

    Args:
        request: FastAPI request.
        trust_proxy: Use the first ``X-Forwarded-For`` hop when present.

    Returns:
        str: Client address, or ``"unknown"`` when none is available.
    """

    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    return request.client.host if request.client else "unknown"


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


class RequestAdmissionFilter:
    """Classify requests as admitted or throttled.

    The filter owns the policy registry and a counter store shared by all
    policies; counter keys are namespaced by policy name so each route group
    keeps its own budget.
    """

    def __init__(
        self,
        store: AbstractWindowStore,
        policies: Mapping[str, RateLimitPolicy],
        *,
        enabled: bool = True,
        trust_proxy: bool = False,
        route_groups: Sequence[tuple[str, str]] = DEFAULT_ROUTE_GROUPS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._policies = dict(policies)
        self._enabled = enabled
        self._trust_proxy = trust_proxy
        self._route_groups = tuple(route_groups)
        self._clock = clock

    @property
    def store(self) -> AbstractWindowStore:
        return self._store

    @property
    def policies(self) -> Mapping[str, RateLimitPolicy]:
        return self._policies

    @property
    def enabled(self) -> bool:
        return self._enabled

    def policy_for(self, path: str) -> RateLimitPolicy | None:
        """Return the policy guarding ``path``, or None when unprotected."""
        for prefix, name in self._route_groups:
            if not prefix or path == prefix or path.startswith(prefix + "/"):
                return self._policies.get(name)
        return None

    async def evaluate(self, request: Request, policy: RateLimitPolicy) -> AdmissionDecision:
        """Count the request under ``policy`` and decide allow or reject.

        A counter store outage admits the request (fail open).

        Args:
            request: FastAPI request.
            policy: Policy of the route group the request targets.

        Returns:
            AdmissionDecision for the request.
        """

        if not self._enabled or policy.is_exempt(request):
            logger.debug(
                "rate_limit.skipped",
                extra={"policy": policy.name, "route": request.url.path},
            )
            return AdmissionDecision.bypass(policy)

        key = f"{policy.name}:{client_identity(request, trust_proxy=self._trust_proxy)}"
        key_hash = _hash_limiter_key(key)

        try:
            window = await self._store.increment(key, policy.window_ms)
        except StoreAppError as exc:
            logger.error(
                "rate_limit.store_unavailable",
                extra={
                    "policy": policy.name,
                    "key_hash": key_hash,
                    "error_code": exc.code,
                },
            )
            return AdmissionDecision.bypass(policy)

        now_ms = int(self._clock() * 1000)
        reset_after = max(0, math.ceil((window.reset_at_ms - now_ms) / 1000))
        allowed = window.count <= policy.max_requests
        decision = AdmissionDecision(
            allowed=allowed,
            limit=policy.max_requests,
            count=window.count,
            remaining=max(0, policy.max_requests - window.count),
            reset_at_ms=window.reset_at_ms,
            reset_after_seconds=reset_after,
        )

        log_extra = {
            "policy": policy.name,
            "key_hash": key_hash,
            "limit": decision.limit,
            "remaining": decision.remaining,
            "window_ms": policy.window_ms,
        }
        if allowed:
            logger.info("rate_limit.allowed", extra=log_extra)
        else:
            logger.warning(
                "rate_limit.exceeded",
                extra={**log_extra, "retry_after_s": decision.retry_after_seconds},
            )

        return decision


def build_policies(
    rate_limit_settings: RateLimitSettings | None = None,
) -> dict[str, RateLimitPolicy]:
    """Build the declared ``api`` and ``app`` policies from configuration."""

    cfg = rate_limit_settings or settings.rate_limit
    exempt_paths = frozenset(
        path.strip() for path in cfg.exempt_paths.split(",") if path.strip()
    )
    common = {
        "exempt_paths": exempt_paths,
        "standard_headers": cfg.standard_headers,
        "legacy_headers": cfg.legacy_headers,
    }
    return {
        "api": RateLimitPolicy(
            name="api", window_ms=cfg.api_window_ms, max_requests=cfg.api_max, **common
        ),
        "app": RateLimitPolicy(
            name="app", window_ms=cfg.app_window_ms, max_requests=cfg.app_max, **common
        ),
    }


def build_admission_filter(
    rate_limit_settings: RateLimitSettings | None = None,
    *,
    store: AbstractWindowStore | None = None,
) -> RequestAdmissionFilter:
    """Create the admission filter described by configuration.

    Args:
        rate_limit_settings: Optional settings; defaults to global settings.
        store: Optional counter store; built by the store factory if omitted.

    Returns:
        RequestAdmissionFilter: Configured filter instance.
    """

    cfg = rate_limit_settings or settings.rate_limit
    return RequestAdmissionFilter(
        store or create_window_store(cfg),
        build_policies(cfg),
        enabled=cfg.enabled,
        trust_proxy=cfg.trust_proxy,
    )


def build_rate_limit_headers(
    decision: AdmissionDecision, policy: RateLimitPolicy
) -> dict[str, str]:
    """Build the quota disclosure headers the policy enables.

    Returns an empty dict for requests that bypassed counting.
    """

    if decision.skipped:
        return {}

    headers: dict[str, str] = {}
    if policy.standard_headers:
        headers["RateLimit-Policy"] = f"{policy.max_requests};w={policy.window_seconds}"
        headers["RateLimit-Limit"] = str(decision.limit)
        headers["RateLimit-Remaining"] = str(decision.remaining)
        headers["RateLimit-Reset"] = str(decision.reset_after_seconds)
    if policy.legacy_headers:
        headers["X-RateLimit-Limit"] = str(decision.limit)
        headers["X-RateLimit-Remaining"] = str(decision.remaining)
        headers["X-RateLimit-Reset"] = str(math.ceil(decision.reset_at_ms / 1000))
    if headers and not decision.allowed:
        headers["Retry-After"] = str(decision.retry_after_seconds)
    return headers


class RejectionFormat(str, enum.Enum):
    """Body formats available for throttled requests."""

    JSON = "json"
    HTML = "html"


def select_rejection_format(content_type: str | None) -> RejectionFormat:
    """Pick the rejection format from the request's declared Content-Type.

    Only an exact ``application/json`` selects JSON; anything else, including
    a missing header, selects the HTML page.
    """

    if content_type == JSON_CONTENT_TYPE:
        return RejectionFormat.JSON
    return RejectionFormat.HTML


def _json_rejection(
    request: Request, policy: RateLimitPolicy, headers: dict[str, str]
) -> Response:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=fail_body(original_url(request), policy.message),
        headers=headers or None,
    )


def _html_rejection(
    request: Request, policy: RateLimitPolicy, headers: dict[str, str]
) -> Response:
    return templates.TemplateResponse(
        request,
        RATE_LIMIT_TEMPLATE,
        {"title": "Rate Limited"},
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        headers=headers or None,
    )


_REJECTION_RESPONDERS: dict[
    RejectionFormat, Callable[[Request, RateLimitPolicy, dict[str, str]], Response]
] = {
    RejectionFormat.JSON: _json_rejection,
    RejectionFormat.HTML: _html_rejection,
}


def build_rejection_response(
    request: Request, decision: AdmissionDecision, policy: RateLimitPolicy
) -> Response:
    """Build the 429 response for a throttled request."""

    responder = _REJECTION_RESPONDERS[select_rejection_format(request.headers.get("content-type"))]
    return responder(request, policy, build_rate_limit_headers(decision, policy))
