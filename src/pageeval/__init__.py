# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PageEval: evaluate JavaScript functions against rendered pages in Chromium.

Loads a local document (absolute path or inline markup), optionally injects
styles and waits for a page-side readiness flag, runs a caller-supplied
function expression with arguments, and always releases the browser.
"""

from __future__ import annotations

from .browser_session import BrowserConfig, EvalSession
from .errors import (
    BrowserCrashError,
    BrowserError,
    EvalTimeoutError,
    PageEvalError,
    ScriptError,
    ScriptRuntimeError,
    ScriptSyntaxError,
    ScriptTypeError,
    ValidationError,
)
from .evaluator import EvalRequest, KeptAliveResult, PageEvaluator, create_evaluator

__all__ = [
    "BrowserConfig",
    "BrowserCrashError",
    "BrowserError",
    "EvalRequest",
    "EvalSession",
    "EvalTimeoutError",
    "KeptAliveResult",
    "PageEvalError",
    "PageEvaluator",
    "ScriptError",
    "ScriptRuntimeError",
    "ScriptSyntaxError",
    "ScriptTypeError",
    "ValidationError",
    "create_evaluator",
]
