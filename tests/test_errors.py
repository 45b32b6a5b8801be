# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the PageEval error taxonomy."""

from __future__ import annotations

import pytest

from pageeval.errors import (
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


@pytest.mark.parametrize(
    ("cls", "kind"),
    [
        (ValidationError, "validation"),
        (BrowserError, "browser"),
        (BrowserCrashError, "browser-crash"),
        (ScriptSyntaxError, "script-syntax"),
        (ScriptTypeError, "script-type"),
        (ScriptRuntimeError, "script-runtime"),
        (EvalTimeoutError, "timeout"),
    ],
)
def test_kind_slugs(cls, kind):
    assert cls.kind == kind
    assert issubclass(cls, PageEvalError)


def test_script_errors_share_base():
    for cls in (ScriptSyntaxError, ScriptTypeError, ScriptRuntimeError):
        assert issubclass(cls, ScriptError)


def test_crash_is_browser_error():
    assert issubclass(BrowserCrashError, BrowserError)


def test_builtin_compatibility():
    assert issubclass(ValidationError, ValueError)
    assert issubclass(EvalTimeoutError, TimeoutError)


def test_timeout_error_attributes():
    err = EvalTimeoutError("Timeout Error: 5ms", timeout_ms=5, stage="evaluation")
    assert str(err) == "Timeout Error: 5ms"
    assert err.timeout_ms == 5
    assert err.stage == "evaluation"
