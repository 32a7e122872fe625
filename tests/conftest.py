"""Shared fixtures: keep the real Keychain and any CLI logging setup out of every test."""
from __future__ import annotations

from unittest.mock import patch

import pytest
import structlog


@pytest.fixture(autouse=True)
def no_keychain():
    with patch("grafana_dashboards.config.retrieve_secret", return_value=None) as mock_secret:
        yield mock_secret


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()
