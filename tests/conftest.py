"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from datetime import datetime
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import get_settings  # noqa: E402
from src.review.state_store import Problem, StateStore, User  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (use a SQLite file)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(autouse=True)
def fresh_settings():
    """Drop cached settings so env overrides in one test don't leak."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def now():
    """A fixed mid-day reference time."""
    return datetime(2024, 3, 15, 12, 0, 0)


@pytest.fixture
def store(tmp_path):
    """StateStore backed by a throwaway SQLite file."""
    state_store = StateStore(db_path=tmp_path / "state.db")
    yield state_store
    state_store.close()


@pytest.fixture
def two_sum():
    """Provide a sample problem for testing."""
    return Problem(id="1", title="Two Sum", title_slug="two-sum", difficulty=1)


@pytest.fixture
def lru_cache_problem():
    return Problem(id="146", title="LRU Cache", title_slug="lru-cache", difficulty=2)


@pytest.fixture
def alice():
    return User(id="alice", email="alice@example.com", name="Alice")
