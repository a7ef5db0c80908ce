"""Root test fixtures shared across all test types.

This conftest contains fixtures that can be used by both unit and integration tests.
Database-specific fixtures are in tests/integration/conftest.py.
"""

import os

# Set APP_ENV to testing before any app imports to disable rate limiting
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("JWT_SECRET_KEY", "test-signing-secret-0123456789abcdef-0123456789")
# Agents are started explicitly by the tests that want one
os.environ.setdefault("AGENT_AUTOSTART_ENABLED", "false")
# Cheap hashing keeps the suite fast
os.environ.setdefault("ARGON2_TIME_COST", "1")
os.environ.setdefault("ARGON2_MEMORY_COST", "8192")

# ruff: noqa: E402 - Imports must be after env var setup
from collections.abc import Generator

import pytest
import structlog
from structlog.testing import CapturingLogger

from src.theaterpos.core import rate_limit
from src.theaterpos.core.config import get_settings
from src.theaterpos.core.logging import clear_request_context

# Clear settings cache to ensure test environment variables are picked up
get_settings.cache_clear()


@pytest.fixture
def reset_rate_limit_buckets() -> Generator[None]:
    """Reset rate limit in-memory state."""
    rate_limit._rate_limit_buckets.clear()
    yield
    rate_limit._rate_limit_buckets.clear()


@pytest.fixture
def capturing_logger() -> Generator[CapturingLogger]:
    """Route every structlog call into a CapturingLogger."""
    cap_logger = CapturingLogger()
    structlog.configure(
        processors=[structlog.contextvars.merge_contextvars],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=lambda *args: cap_logger,
        cache_logger_on_first_use=False,
    )
    clear_request_context()
    yield cap_logger
    clear_request_context()
    structlog.reset_defaults()
