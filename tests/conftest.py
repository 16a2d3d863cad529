"""Pytest configuration and fixtures."""

import os
from unittest.mock import patch

import pytest

from tests.fakes.fake_supabase import FakeSupabase

# Modules that hold their own reference to get_supabase
DB_MODULES = ("app.db.verticals", "app.db.sessions", "app.db.matrix", "app.db.dfd")


# Set before any app module is imported during collection
os.environ["SUPABASE_URL"] = "https://test.supabase.co"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
os.environ["ENGINE_ENV"] = "test"
os.environ.pop("LLM_PROVIDER", None)


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Start every session from freshly loaded settings."""
    from app.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_supabase():
    """Route every db module to one in-memory Supabase."""
    db = FakeSupabase()
    patchers = [patch(f"{module}.get_supabase", return_value=db) for module in DB_MODULES]
    for patcher in patchers:
        patcher.start()
    yield db
    for patcher in patchers:
        patcher.stop()


@pytest.fixture
def fresh_registry():
    """Give each test its own process-wide job registry."""
    from app.core.job_registry import get_job_registry

    get_job_registry.cache_clear()
    yield get_job_registry()
    get_job_registry.cache_clear()
