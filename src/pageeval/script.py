# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Script execution stage.

The caller's script is the source text of a function expression, e.g.
``function (x, y) { return x + y }``. It is evaluated in the page's
global scope, checked to be callable, and applied to the positional
arguments. Arguments and results cross the Playwright bridge, so only
structurally cloneable values survive the trip.
"""

from __future__ import annotations

import logging
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .browser_session import is_browser_dead_error, is_page_crash_error
from .errors import BrowserCrashError, BrowserError, ScriptRuntimeError, ScriptSyntaxError, ScriptTypeError

logger = logging.getLogger(__name__)

# Result envelope keeps wrapper failures apart from whatever the script returns
_STATUS_OK = "ok"
_STATUS_SYNTAX = "syntax-error"
_STATUS_NOT_FUNCTION = "not-function"

_RUN_SCRIPT_JS = """async ([fnSource, args]) => {
  let fn;
  try {
    fn = window.eval(`(function result() {
      return (${fnSource})
    })()`);
  } catch (e) {
    if (e instanceof SyntaxError) {
      return { status: 'syntax-error', message: e.message };
    }
    throw e;
  }
  if (typeof fn !== 'function') {
    return { status: 'not-function', type: typeof fn };
  }
  const value = await fn.apply(null, args);
  return { status: 'ok', value: value };
}"""


def normalize_script_source(source: str) -> str:
    """Trim whitespace and drop exactly one trailing statement terminator."""
    text = source.strip()
    if text.endswith(";"):
        text = text[:-1]
    return text


async def run_script(page: Page, source: str, args: list[Any] | tuple[Any, ...] = ()) -> Any:
    """Evaluate ``source`` in ``page`` and call it with ``args``.

    Raises:
        ScriptSyntaxError: source is not a valid expression.
        ScriptTypeError: source does not evaluate to a function.
        ScriptRuntimeError: the function threw.
        BrowserCrashError: the renderer crashed mid-call.
        BrowserError: the page or browser died mid-call.
    """
    fn_source = normalize_script_source(source)
    logger.debug("Evaluating script with %d arg(s)", len(args))
    try:
        envelope = await page.evaluate(_RUN_SCRIPT_JS, [fn_source, list(args)])
    except PlaywrightError as exc:
        if is_page_crash_error(exc):
            raise BrowserCrashError(f"page crashed while the evaluation was running: {exc.message}") from exc
        if is_browser_dead_error(exc):
            raise BrowserError(f"browser went away during script evaluation: {exc.message}") from exc
        raise ScriptRuntimeError(exc.message) from exc

    status = envelope.get("status") if isinstance(envelope, dict) else None
    if status == _STATUS_SYNTAX:
        raise ScriptSyntaxError(f"script code passed as `script_fn` option has syntax error: {envelope['message']}")
    if status == _STATUS_NOT_FUNCTION:
        raise ScriptTypeError(
            f"script code passed as `script_fn` option is not a function (got {envelope.get('type', 'unknown')})"
        )
    if status != _STATUS_OK:
        raise ScriptRuntimeError(f"unexpected evaluation envelope: {envelope!r}")

    result = envelope.get("value")
    logger.debug("Evaluation completed with result of type %s", type(result).__name__)
    return result
