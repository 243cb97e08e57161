# ============================================================================
# TEST FIXTURES
# ============================================================================
# STATUS: Tests - Shared fixtures
# PURPOSE: Isolate global config/hooks, provide default fakes
# ============================================================================
"""
Shared fixtures for the health tests.
"""

import pytest

from core.config import HealthConfig, reset_config
from health.hooks import HealthHookRegistry, reset_hooks

from fakes import FakeDatastore, make_synced_cache


@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset process-wide config and hooks around every test."""
    reset_config()
    reset_hooks()
    yield
    reset_config()
    reset_hooks()


@pytest.fixture
def config(tmp_path):
    return HealthConfig(app_root=str(tmp_path), platform_version="6.8.1", schema_version=57155)


@pytest.fixture
def hooks():
    return HealthHookRegistry()


@pytest.fixture
def datastore():
    return FakeDatastore()


@pytest.fixture
def cache(datastore):
    return make_synced_cache(datastore)
