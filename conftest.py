"""
ShieldNet - pytest Configuration

Shared fixtures and configuration for all tests.
"""

from datetime import datetime, timezone

import pytest


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires external services)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection based on markers."""
    # Skip integration tests by default unless explicitly requested
    if not config.getoption("--run-integration", default=False):
        skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="run integration tests that require external services"
    )


# =============================================================================
# CLOCK & LOCATION FIXTURES
# =============================================================================

class FakeClock:
    """Settable clock for services that take a `clock` callable."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock():
    """Clock fixed at Wednesday 2024-03-13 14:00 UTC."""
    return FakeClock(datetime(2024, 3, 13, 14, 0, tzinfo=timezone.utc))


@pytest.fixture
def nairobi_cbd():
    """Nairobi CBD (Kenyatta Avenue)."""
    from shieldnet.models import GeoLocation
    return GeoLocation(latitude=-1.2864, longitude=36.8172)


@pytest.fixture
def westlands():
    """Westlands, about 2 km from the CBD."""
    from shieldnet.models import GeoLocation
    return GeoLocation(latitude=-1.2676, longitude=36.8108)


@pytest.fixture
def mombasa():
    """Mombasa, about 440 km from Nairobi."""
    from shieldnet.models import GeoLocation
    return GeoLocation(latitude=-4.0435, longitude=39.6682)


# =============================================================================
# STORE & SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def memory_store():
    from shieldnet.store.memory import InMemoryAlertStore
    return InMemoryAlertStore()


@pytest.fixture
def alert_service(memory_store, clock):
    from shieldnet.community.alerts import AlertService
    return AlertService(memory_store, clock=clock)


# =============================================================================
# CONFIGURATION FIXTURES
# =============================================================================

@pytest.fixture
def test_config():
    """Create a test configuration."""
    from shieldnet.config import ShieldNetConfig, Environment

    return ShieldNetConfig(
        environment=Environment.DEVELOPMENT,
    )


@pytest.fixture(autouse=True)
def reset_config_fixture():
    """Reset global configuration before each test."""
    from shieldnet.config import reset_config
    reset_config()
    yield
    reset_config()
