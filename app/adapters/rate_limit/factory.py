"""Factory for creating counter store instances."""

from app.adapters.rate_limit.base import AbstractWindowStore
from app.adapters.rate_limit.in_memory import InMemoryWindowStore
from app.adapters.rate_limit.redis_store import RedisWindowStore
from app.core.config import RateLimitSettings, settings
from app.core.errors import ValidationAppError


def create_window_store(rate_limit_settings: RateLimitSettings | None = None) -> AbstractWindowStore:
    """Instantiate the counter store selected by configuration.

    Args:
        rate_limit_settings: Optional settings; defaults to global settings.

    Returns:
        AbstractWindowStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend is unknown or misconfigured.
    """
    cfg = rate_limit_settings or settings.rate_limit
    backend = cfg.backend.lower()

    if backend == "memory":
        return InMemoryWindowStore()

    if backend == "redis":
        if not cfg.redis_url:
            raise ValidationAppError(
                code="rate_limit_missing_redis_url",
                message="Redis backend requires RATE_LIMIT_REDIS_URL environment variable",
                details={"setting": "RATE_LIMIT_REDIS_URL", "backend": "redis"},
            )
        return RedisWindowStore.from_url(cfg.redis_url)

    raise ValidationAppError(
        code="rate_limit_unknown_backend",
        message=(
            f"Unknown rate limit backend: '{backend}'. Supported backends: memory, redis"
        ),
        details={"setting": "RATE_LIMIT_BACKEND"},
    )
