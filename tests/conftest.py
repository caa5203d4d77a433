"""
Pytest configuration and shared fixtures for Geeked tests.

This conftest.py:
1. Adds project root to sys.path for imports
2. Provides commonly-used fixtures via pytest's autodiscovery
3. Configures pytest markers and settings
"""

import sys
from pathlib import Path

import pytest

# =============================================================================
# Path Setup - Must happen before any local imports
# =============================================================================

# Get the project root (parent of tests/)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_TESTS_ROOT = Path(__file__).resolve().parent

# Add both project root and tests root to sys.path
for _path in [str(_PROJECT_ROOT), str(_TESTS_ROOT)]:
    if _path not in sys.path:
        sys.path.insert(0, _path)

# =============================================================================
# Import fixtures using importlib (more robust for pytest loading)
# =============================================================================

import importlib

# Import fixture modules
_common = importlib.import_module("fixtures.common")
_service = importlib.import_module("fixtures.fake_service")

# Extract factory functions
make_constants = _common.make_constants
make_challenge = _common.make_challenge
make_script = _common.make_script
make_key_material = _common.make_key_material

FakeGeetest = _service.FakeGeetest
FakeStore = _service.FakeStore
FakeTransport = _service.FakeTransport


# =============================================================================
# Pytest Fixtures (autodiscovered by pytest)
# =============================================================================

@pytest.fixture
def constants():
    """Provide default ProtocolConstants wired to the test RSA key."""
    return make_constants()


@pytest.fixture
def challenge():
    """Provide a default pt=1 Challenge with a 4-bit md5 proof of work."""
    return make_challenge()


@pytest.fixture
def script():
    """Provide a synthetic obfuscated script carrying the test RSA key."""
    return make_script(public_key=make_key_material())


@pytest.fixture
def fake_service():
    """Provide a fresh scripted service."""
    return FakeGeetest()


@pytest.fixture
def runtime_config(tmp_path):
    """RuntimeConfig with a temporary cache directory and no retry delay."""
    from core.config import RuntimeConfig

    config = RuntimeConfig()
    config.protocol.cache_dir = str(tmp_path / "cache")
    config.http.retry_delay = 0.0
    config.http.max_retries = 1
    return config


@pytest.fixture(autouse=True)
def _clean_geeked_env(monkeypatch):
    """Keep a developer's GEEKED_* environment out of the tests."""
    import os

    for name in list(os.environ):
        if name.startswith("GEEKED_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _fresh_shared_stores():
    """Each test starts without process-wide constants stores."""
    from orchestrator.geeked import reset_shared_stores

    reset_shared_stores()
    yield
    reset_shared_stores()


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
