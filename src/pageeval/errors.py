# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PageEval exception hierarchy.

All PageEval-specific errors inherit from PageEvalError, allowing callers
to catch the base class for any evaluation failure or specific subclasses
for targeted handling. Each class carries a ``kind`` slug used by the CLI.
"""

from __future__ import annotations


class PageEvalError(Exception):
    """Base exception for all PageEval errors."""

    kind = "error"


class ValidationError(PageEvalError, ValueError):
    """Invalid request options. Raised before any browser is launched."""

    kind = "validation"


class BrowserError(PageEvalError):
    """Browser launch, navigation, or connection failure."""

    kind = "browser"


class BrowserCrashError(BrowserError):
    """The page crashed while the evaluation was in flight."""

    kind = "browser-crash"


class ScriptError(PageEvalError):
    """Base class for failures of the evaluated script itself."""

    kind = "script"


class ScriptSyntaxError(ScriptError):
    """Script source could not be parsed as an expression."""

    kind = "script-syntax"


class ScriptTypeError(ScriptError):
    """Script source evaluated to something that is not a function."""

    kind = "script-type"


class ScriptRuntimeError(ScriptError):
    """The script function threw while running in the page."""

    kind = "script-runtime"


class EvalTimeoutError(PageEvalError, TimeoutError):
    """The whole evaluation exceeded its configured timeout."""

    kind = "timeout"

    def __init__(self, message: str, *, timeout_ms: float = 0, stage: str | None = None) -> None:
        super().__init__(message)
        self.timeout_ms = timeout_ms
        self.stage = stage
