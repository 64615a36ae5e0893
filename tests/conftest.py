"""Shared pytest configuration and fixtures for the barcode relay test suite."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "hardware: mark test as requiring a physical scanner"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--run-hardware",
        action="store_true",
        default=False,
        help="Run tests that require a physical scanner",
    )


def pytest_collection_modifyitems(config, items):
    """Skip hardware tests unless --run-hardware is specified."""
    if config.getoption("--run-hardware"):
        return

    skip_hardware = pytest.mark.skip(reason="Need --run-hardware option to run")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_hardware)


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def queue_path(tmp_path) -> Path:
    """Location for a throwaway durable queue file."""
    return tmp_path / "state" / "queue.json"


# =============================================================================
# Mock Fixtures
# =============================================================================

@pytest.fixture
def scanner_descriptor():
    """Descriptor of a typical scanner interface with a serial number."""
    from tests.infrastructure.mocks.hid_mocks import make_descriptor
    return make_descriptor()


@pytest.fixture
def fake_transport(scanner_descriptor):
    """Fake HID transport with one scanner plugged in."""
    from tests.infrastructure.mocks.hid_mocks import FakeHidTransport
    return FakeHidTransport([scanner_descriptor])


@pytest.fixture
def fake_client():
    """Delivery client that answers 200 unless told otherwise."""
    from tests.infrastructure.mocks.delivery_mocks import FakeDeliveryClient
    return FakeDeliveryClient()
