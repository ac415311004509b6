"""Rate limiting adapters.

This package provides a small abstraction layer so the service can start
with an in-memory counter store and move to Redis for multi-instance
deployments without changing the HTTP layer.
"""

from app.adapters.rate_limit.base import AbstractWindowStore, WindowCount
from app.adapters.rate_limit.factory import create_window_store
from app.adapters.rate_limit.in_memory import InMemoryWindowStore
from app.adapters.rate_limit.redis_store import RedisWindowStore

__all__ = [
    "AbstractWindowStore",
    "InMemoryWindowStore",
    "RedisWindowStore",
    "WindowCount",
    "create_window_store",
]
