# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import powerboot  # noqa: F401
except ImportError:
    raise ImportError("powerboot is not installed. Run: pip install -e '.[dev]'") from None

import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tests._fakes import FakeListener, RecordingLifecycle, fake_browser, make_dist


def pytest_collection_modifyitems(config, items):
    """Skip browser-marked tests unless POWERBOOT_BROWSER_TESTS=1."""
    if os.environ.get("POWERBOOT_BROWSER_TESTS") == "1":
        return
    skip_marker = pytest.mark.skip(reason="set POWERBOOT_BROWSER_TESTS=1 to run against real Chromium")
    for item in items:
        if item.get_closest_marker("browser"):
            item.add_marker(skip_marker)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep host environment overrides out of manifest and boot-option tests."""
    for name in ("APP_CONFIG", "ALL_CONFIG", "EXPERIMENTAL_RENDER_MODE_SERIALIZE", "POWERBOOT_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def dist(tmp_path):
    return make_dist(tmp_path)


@pytest.fixture
def lifecycle():
    return RecordingLifecycle()


@pytest.fixture
def no_listener():
    """Swap the loopback listener for an in-memory one."""
    with patch("powerboot.pool.LoopbackServer", FakeListener):
        yield


@pytest.fixture
def user_browser(no_listener):
    """A user-supplied browser double (not owned by the pool)."""
    return fake_browser()


@pytest.fixture
def mock_pw(no_listener):
    """Patch async_playwright so the pool 'launches' a fake browser."""
    browser = fake_browser()
    pw = AsyncMock()
    pw.chromium.launch = AsyncMock(return_value=browser)
    pw.stop = AsyncMock()
    with patch("powerboot.pool.async_playwright") as mock_apw:
        mock_apw.return_value = MagicMock()
        mock_apw.return_value.start = AsyncMock(return_value=pw)
        yield pw, browser
