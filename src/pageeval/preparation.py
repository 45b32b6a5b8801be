# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Navigation & preparation stage.

Loads the target document into a fresh page and gets it ready for the
script: navigation timeout, document load, style injection, and the
optional readiness wait. Every step checks the timeout token first and
returns early once the deadline has fired.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from playwright.async_api import ConsoleMessage, Page
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .browser_session import is_page_crash_error
from .deadline import TimeoutToken
from .errors import BrowserCrashError, EvalTimeoutError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_READY_VAR = "CHROME_PAGE_EVAL_READY"

# Puppeteer spellings accepted for wait_until
_WAIT_UNTIL_ALIASES = {
    "networkidle0": "networkidle",
    "networkidle2": "networkidle",
}

# Static JS, styles passed as an argument (no interpolation)
_INJECT_STYLES_JS = """(styles) => {
  const fragment = document.createDocumentFragment();
  for (const css of styles) {
    const style = document.createElement('style');
    style.type = 'text/css';
    style.appendChild(document.createTextNode(css));
    fragment.appendChild(style);
  }
  let head = document.head;
  if (!head) {
    head = document.createElement('head');
    document.documentElement.insertBefore(head, document.documentElement.firstChild);
  }
  head.insertBefore(fragment, head.firstChild);
  return styles.length;
}"""

_READY_FLAG_JS = "(name) => window[name] === true"

_FROM_PAGE = {"origin": "page"}


def resolve_document_url(html: str | Path) -> str:
    """Return the ``file://`` URL for an absolute document path."""
    path = Path(html)
    if not path.is_absolute():
        raise ValidationError("`html` option must be an absolute path to a file")
    return path.as_uri()


def normalize_wait_until(wait_until: str | None) -> str | None:
    if wait_until is None:
        return None
    return _WAIT_UNTIL_ALIASES.get(wait_until, wait_until)


def attach_diagnostics(page: Page) -> Callable[[], None]:
    """Log browser console output and uncaught page errors.

    Observational only. Returns a function that detaches both listeners.
    """

    def _on_console(message: ConsoleMessage) -> None:
        logger.debug("Message from console [%s]: %s", message.type, message.text, extra=_FROM_PAGE)

    def _on_page_error(error: PlaywrightError) -> None:
        logger.warning("Uncaught error in page: %s", error, extra=_FROM_PAGE)

    page.on("console", _on_console)
    page.on("pageerror", _on_page_error)

    def _detach() -> None:
        page.remove_listener("console", _on_console)
        page.remove_listener("pageerror", _on_page_error)

    return _detach


async def load_document(
    page: Page,
    token: TimeoutToken,
    *,
    timeout_ms: float,
    html: str | Path | None = None,
    content: str | None = None,
    wait_until: str | None = None,
) -> bool:
    """Set the navigation timeout and load the document.

    Returns False when the deadline fired before the load started.
    """
    if token.expired:
        return False
    page.set_default_navigation_timeout(timeout_ms)
    logger.debug("Configured navigation timeout: %sms", timeout_ms)

    wait_until = normalize_wait_until(wait_until)
    options = {"wait_until": wait_until} if wait_until is not None else {}

    try:
        if content is not None:
            logger.debug("Loading inline document (%d chars, wait until: %s)", len(content), wait_until or "<default>")
            await page.set_content(content, **options)
        else:
            url = resolve_document_url(html)
            logger.debug("Loading page from %s (wait until: %s)", url, wait_until or "<default>")
            await page.goto(url, **options)
    except PlaywrightError as exc:
        if is_page_crash_error(exc):
            raise BrowserCrashError(f"page crashed while loading the document: {exc.message}") from exc
        raise
    return not token.expired


async def inject_styles(page: Page, token: TimeoutToken, styles: list[str]) -> bool:
    """Insert one <style> per text at the very start of <head>, in order."""
    if token.expired:
        return False
    if not styles:
        return True
    count = await page.evaluate(_INJECT_STYLES_JS, list(styles))
    logger.debug("Injected %d style element(s)", count)
    return not token.expired


async def wait_for_ready_flag(page: Page, token: TimeoutToken, var_name: str, timeout_ms: float) -> bool:
    """Block until ``window[var_name] === true`` in the page.

    Bounded by the evaluation timeout; the driver's own timeout surfaces as
    :class:`EvalTimeoutError` like the deadline's.
    """
    if token.expired:
        return False
    logger.debug("Waiting for window.%s === true", var_name)
    try:
        await page.wait_for_function(_READY_FLAG_JS, arg=var_name, timeout=timeout_ms)
    except PlaywrightTimeoutError as exc:
        raise EvalTimeoutError(
            f"Timeout Error: readiness flag window.{var_name} not set after {timeout_ms}ms",
            timeout_ms=timeout_ms,
            stage="readiness",
        ) from exc
    logger.debug("Readiness flag window.%s observed", var_name)
    return not token.expired
