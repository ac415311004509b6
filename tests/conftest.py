"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It pins the environment before any app module reads settings.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Any, Callable

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.adapters.rate_limit.in_memory import InMemoryWindowStore
from app.core.app_factory import create_app
from app.core.config import RateLimitSettings
from app.core.rate_limit import RequestAdmissionFilter, build_policies


class FakeTime:
    """Deterministic clock shared by the store and the filter."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def time(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def make_app(fake_time: FakeTime) -> Callable[..., FastAPI]:
    """Build an app whose admission filter runs on the fake clock.

    Keyword arguments override RateLimitSettings fields.
    """

    def _make(**overrides: Any) -> FastAPI:
        cfg = RateLimitSettings(**overrides)
        admission_filter = RequestAdmissionFilter(
            InMemoryWindowStore(clock=fake_time.time),
            build_policies(cfg),
            enabled=cfg.enabled,
            trust_proxy=cfg.trust_proxy,
            clock=fake_time.time,
        )
        return create_app(admission_filter)

    return _make


@pytest.fixture
def client(make_app: Callable[..., FastAPI]) -> TestClient:
    """Test client for an app with default policies and proxy trust on."""
    return TestClient(make_app(trust_proxy=True))
