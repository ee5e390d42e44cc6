"""
Shared test fixtures and configuration for ovbatch tests.

This module provides common fixtures used across all test types:
- An isolated config directory (never touches ~/.ovbatch)
- Sample provisioning requests and CSV files
- A thread-safe fake oVirt connection
"""

from pathlib import Path

import pytest

from ovbatch.config_manager import ConfigManager
from tests.mocks.ovirt_mock import FakeConnection, make_request

# ============================================================================
# CONFIG ISOLATION
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path, monkeypatch):
    """Point ConfigManager at a temporary directory.

    Tests must NEVER read or modify the real ~/.ovbatch/config.toml.
    """
    config_dir = tmp_path / ".ovbatch"
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_DIR", config_dir)
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_FILE", config_dir / "config.toml")
    monkeypatch.delenv("OVBATCH_PASSWORD", raising=False)
    return config_dir


# ============================================================================
# REQUEST / CSV FIXTURES
# ============================================================================


@pytest.fixture
def sample_request():
    """A single valid provisioning request."""
    return make_request()


@pytest.fixture
def write_csv(tmp_path):
    """Write CSV lines to a temporary file and return its path."""

    def _write(*lines: str, name: str = "vms.csv") -> Path:
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


# ============================================================================
# FAKE OVIRT CONNECTION
# ============================================================================


@pytest.fixture
def fake_connection():
    """Fake connection that knows the rhel9-base template."""
    return FakeConnection()
