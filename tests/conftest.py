"""
tests/conftest.py — Shared fixtures and path setup for all tests.

Adds the project root to sys.path so tests can import without installing:
    from stepstone.health import CheckDetail, CheckResult
    from stepstone.config.settings import Settings
"""
import pathlib
import sys

import pytest

# Make project root importable without installing as a package
PROJECT_ROOT = pathlib.Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from stepstone.config.settings import Settings  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    """Short timeouts so a hung fake fails the test quickly."""
    return Settings(
        CONNECT_TIMEOUT_SECONDS=1.0,
        OPERATION_TIMEOUT_SECONDS=1.0,
        PERF_TIMEOUT_SECONDS=2.0,
    )
