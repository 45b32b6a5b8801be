# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import pageeval  # noqa: F401
except ImportError:
    raise ImportError("pageeval is not installed. Run: pip install -e '.[dev]'") from None

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tests._fakes import FakePage, make_fake_browser

FIXTURES = Path(__file__).resolve().parent / "fixtures"


def _chromium_available() -> bool:
    """True when Playwright's bundled Chromium is installed."""
    try:
        from playwright.sync_api import sync_playwright

        with sync_playwright() as p:
            return Path(p.chromium.executable_path).exists()
    except Exception:
        return False


def pytest_collection_modifyitems(config, items):
    """Skip browser-marked tests when Chromium is not installed."""
    if not any("browser" in item.keywords for item in items):
        return
    if _chromium_available():
        return
    skip_marker = pytest.mark.skip(reason="Playwright Chromium not installed (playwright install chromium)")
    for item in items:
        if "browser" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture(autouse=True)
def _clear_debug_env(monkeypatch):
    """Debug mode disables teardown; never let the caller's shell leak it into tests."""
    monkeypatch.delenv("CHROME_PAGE_EVAL_DEBUGGING", raising=False)


@pytest.fixture
def sample_html() -> str:
    return str(FIXTURES / "sample.html")


@pytest.fixture
def fake_page() -> FakePage:
    return FakePage()


@pytest.fixture
def mock_pw(fake_page):
    """Patch async_playwright so launches return a fake browser serving ``fake_page``.

    Yields (playwright, browser, page).
    """
    browser = make_fake_browser(fake_page)
    pw = MagicMock()
    pw.chromium.launch = AsyncMock(return_value=browser)
    pw.stop = AsyncMock(return_value=None)
    with patch("pageeval.browser_session.async_playwright") as mock_apw:
        mock_apw.return_value.start = AsyncMock(return_value=pw)
        yield pw, browser, fake_page
