# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Playwright browser session management for PageEval.

Owns the Chromium lifecycle for one evaluation: launch (or reuse of a
kept-alive session), page creation, and an idempotent teardown.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any

from playwright.async_api import Browser, Page, Playwright, async_playwright

from .errors import BrowserError, ValidationError

logger = logging.getLogger(__name__)

DEBUG_ENV_VAR = "CHROME_PAGE_EVAL_DEBUGGING"

_PAGE_CLOSE_TIMEOUT = 5.0  # seconds


@dataclass
class BrowserConfig:
    """Browser launch configuration.

    ``debug`` keeps Chromium visible (non-headless) and disables every
    automatic teardown so the page can be inspected after the run.
    """

    headless: bool = True
    args: list[str] = field(default_factory=list)
    launch_options: dict[str, Any] = field(default_factory=dict)
    debug: bool = False

    @classmethod
    def from_env(cls, launch_options: dict[str, Any] | None = None, **kwargs: Any) -> BrowserConfig:
        """Build a config, enabling debug mode when CHROME_PAGE_EVAL_DEBUGGING is set."""
        kwargs.setdefault("debug", os.environ.get(DEBUG_ENV_VAR) is not None)
        return cls(launch_options=dict(launch_options or {}), **kwargs)

    def launch_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``chromium.launch``; debug mode wins over headless."""
        merged: dict[str, Any] = {"headless": self.headless}
        if self.args:
            merged["args"] = list(self.args)
        merged.update(self.launch_options)
        if self.debug:
            merged["headless"] = False
        return merged


_PAGE_CRASH_PATTERNS = (
    "target crashed",
    "page crashed",
)

_BROWSER_DEAD_PATTERNS = (
    *_PAGE_CRASH_PATTERNS,
    "target closed",
    "browser has been closed",
    "connection closed",
    "browser disconnected",
)


def is_browser_dead_error(exc: BaseException) -> bool:
    """Detect browser crash/disconnect errors."""
    msg = str(exc).lower()
    return any(p in msg for p in _BROWSER_DEAD_PATTERNS)


def is_page_crash_error(exc: BaseException) -> bool:
    """Detect errors caused by the renderer crashing (as opposed to a clean close)."""
    msg = str(exc).lower()
    return any(p in msg for p in _PAGE_CRASH_PATTERNS)


# ── Chromium auto-install ─────────────────────────────────────────

_chromium_install_attempted = False
_AUTO_INSTALL_TIMEOUT = 300  # seconds — Chromium ~140MB download


async def _auto_install_chromium() -> bool:
    """Run ``playwright install chromium`` once per process.

    Returns True if install succeeded, False otherwise.
    """
    global _chromium_install_attempted  # noqa: PLW0603
    if _chromium_install_attempted:
        return False
    _chromium_install_attempted = True

    logger.info("Chromium not found — running 'playwright install chromium' …")
    try:
        proc = await asyncio.create_subprocess_exec(
            sys.executable,
            "-m",
            "playwright",
            "install",
            "chromium",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=_AUTO_INSTALL_TIMEOUT)
        if proc.returncode == 0:
            logger.info("Chromium installed successfully")
            return True
        logger.warning(
            "playwright install chromium failed (rc=%d): %s",
            proc.returncode,
            stderr.decode(errors="replace")[:500],
        )
        return False
    except TimeoutError:
        logger.warning("Chromium install timed out after %ds", _AUTO_INSTALL_TIMEOUT)
        return False
    except Exception:
        logger.warning("Chromium auto-install failed", exc_info=True)
        return False


class EvalSession:
    """Browser + page handles for one evaluation (or a kept-alive chain of them).

    ``close()`` is idempotent: the closed flag is set before the first
    await, so concurrent or repeated calls close the browser only once.
    """

    def __init__(
        self,
        browser: Browser,
        *,
        playwright: Playwright | None = None,
        page: Page | None = None,
    ) -> None:
        self.browser = browser
        self.page = page
        self._playwright = playwright
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> bool:
        """Close the page, the browser, then Playwright.

        Returns False when the session was already closed. Failures of the
        individual steps are logged and suppressed.
        """
        if self._closed:
            return False
        self._closed = True

        if self.page is not None:
            page, self.page = self.page, None
            if not page.is_closed():
                try:
                    # A renderer stuck in a script can stall close(); browser.close() still kills it
                    async with asyncio.timeout(_PAGE_CLOSE_TIMEOUT):
                        await page.close()
                except Exception:
                    logger.warning("Page close failed during teardown", exc_info=True)

        try:
            await self.browser.close()
        except Exception:
            logger.warning("Browser close failed during teardown", exc_info=True)

        if self._playwright is not None:
            playwright, self._playwright = self._playwright, None
            with suppress(Exception):
                await playwright.stop()

        logger.debug("Browser session closed")
        return True

    async def __aenter__(self) -> EvalSession:
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()


class SessionController:
    """Acquire, configure and tear down :class:`EvalSession` objects.

    The debug switch comes from ``config`` and is fixed for the lifetime
    of the controller.
    """

    def __init__(self, config: BrowserConfig | None = None) -> None:
        self.config = config or BrowserConfig()
        if self.config.debug:
            logger.info(
                "Debugging mode enabled: Chromium runs non-headless and sessions are never closed automatically"
            )

    async def acquire(self, existing: EvalSession | None = None) -> EvalSession:
        """Reuse ``existing`` or launch a fresh Chromium.

        Launch errors propagate unchanged, after Playwright has been stopped.
        """
        if existing is not None:
            if existing.closed:
                raise ValidationError("`session` option refers to a session that has already been closed")
            logger.debug("Reusing existing browser session")
            return existing

        launch_kwargs = self.config.launch_kwargs()
        logger.debug("Launching Chromium with options: %s", launch_kwargs)
        playwright = await async_playwright().start()
        try:
            browser = await self._launch(playwright, launch_kwargs)
        except BaseException:
            with suppress(Exception):
                await playwright.stop()
            raise

        logger.debug("Running evaluation in Chromium %s", browser.version)
        return EvalSession(browser, playwright=playwright)

    async def _launch(self, playwright: Playwright, launch_kwargs: dict[str, Any]) -> Browser:
        """Launch Chromium, auto-installing on first 'executable not found' error."""
        try:
            return await playwright.chromium.launch(**launch_kwargs)
        except Exception as exc:
            if "executable doesn't exist" not in str(exc).lower():
                raise
            if await _auto_install_chromium():
                return await playwright.chromium.launch(**launch_kwargs)
            raise BrowserError(
                "Chromium is not installed and auto-install failed. Please run: playwright install chromium"
            ) from exc

    async def new_page(self, session: EvalSession, viewport: dict[str, int] | None = None) -> Page:
        """Open the session's page unless it already has one."""
        if session.page is not None:
            return session.page

        page = await session.browser.new_page()
        session.page = page
        if viewport is not None:
            logger.debug("Using custom viewport: %s", viewport)
            await page.set_viewport_size({"width": viewport["width"], "height": viewport["height"]})
        else:
            logger.debug("Using default Playwright viewport")
        return page

    async def teardown(self, session: EvalSession | None, *, keep_alive: bool = False) -> bool:
        """Close ``session`` unless debugging or ``keep_alive``. Never raises.

        Returns True only when this call actually closed the browser.
        """
        if session is None:
            return False
        if self.config.debug:
            logger.info("Debugging mode is enabled: not closing Chromium")
            return False
        if keep_alive:
            logger.debug("Keep-alive requested: session handed back to caller")
            return False
        try:
            return await session.close()
        except Exception:
            logger.warning("Browser teardown failed", exc_info=True)
            return False
