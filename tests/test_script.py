# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the script execution stage (fake page, no browser)."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from hypothesis import given
from hypothesis import strategies as st
from playwright.async_api import Error as PlaywrightError

from pageeval.errors import BrowserCrashError, BrowserError, ScriptRuntimeError, ScriptSyntaxError, ScriptTypeError
from pageeval.script import normalize_script_source, run_script
from tests._fakes import FakePage, ok


class TestNormalizeScriptSource:
    def test_trims_whitespace(self):
        assert normalize_script_source("\n  function () {}  \n") == "function () {}"

    def test_strips_one_terminator(self):
        assert normalize_script_source("function () {};") == "function () {}"

    def test_strips_only_one_terminator(self):
        assert normalize_script_source("function () {};;") == "function () {};"

    def test_terminator_before_trailing_whitespace(self):
        assert normalize_script_source("function () {} ;  ") == "function () {} "

    def test_empty(self):
        assert normalize_script_source("   ") == ""

    @given(st.text())
    def test_result_is_stripped_source_minus_terminator(self, text):
        result = normalize_script_source(text)
        assert result == text.strip() or result == text.strip()[:-1]
        assert len(result) <= len(text)

    @given(st.text())
    def test_idempotent_without_terminator(self, text):
        once = normalize_script_source(text)
        if not once.endswith(";") and once == once.strip():
            assert normalize_script_source(once) == once


class TestRunScript:
    async def test_returns_value(self):
        page = FakePage()
        page.evaluate = AsyncMock(return_value=ok({"a": [1, 2]}))
        assert await run_script(page, "function () { return {a: [1, 2]} }") == {"a": [1, 2]}

    async def test_sends_normalized_source_and_args(self):
        page = FakePage()
        page.evaluate = AsyncMock(return_value=ok(3))
        await run_script(page, "  function (x, y) { return x + y };  ", (1, 2))
        _js, payload = page.evaluate.await_args.args
        assert payload == ["function (x, y) { return x + y }", [1, 2]]

    async def test_wrapper_evaluates_in_global_scope(self):
        page = FakePage()
        await run_script(page, "function () {}")
        js = page.evaluate.await_args.args[0]
        assert "window.eval" in js
        assert "fn.apply(null, args)" in js

    async def test_undefined_result_is_none(self):
        page = FakePage()
        page.evaluate = AsyncMock(return_value={"status": "ok"})
        assert await run_script(page, "function () {}") is None

    async def test_syntax_error_keeps_message(self):
        page = FakePage()
        page.evaluate = AsyncMock(return_value={"status": "syntax-error", "message": "Unexpected end of input"})
        with pytest.raises(ScriptSyntaxError, match="syntax error: Unexpected end of input"):
            await run_script(page, "function () {")

    async def test_not_a_function(self):
        page = FakePage()
        page.evaluate = AsyncMock(return_value={"status": "not-function", "type": "number"})
        with pytest.raises(ScriptTypeError, match=r"not a function \(got number\)"):
            await run_script(page, "1 + 2")

    async def test_runtime_error_chained(self):
        page = FakePage()
        original = PlaywrightError("Error: kaboom\n    at result")
        page.evaluate = AsyncMock(side_effect=original)
        with pytest.raises(ScriptRuntimeError, match="kaboom") as exc_info:
            await run_script(page, "function () { throw new Error('kaboom') }")
        assert exc_info.value.__cause__ is original

    async def test_browser_death_is_browser_error(self):
        page = FakePage()
        page.evaluate = AsyncMock(side_effect=PlaywrightError("Target closed"))
        with pytest.raises(BrowserError, match="Target closed") as exc_info:
            await run_script(page, "function () {}")
        assert exc_info.value.kind == "browser"

    @pytest.mark.parametrize("message", ["Target crashed", "Page crashed"])
    async def test_renderer_crash_is_crash_error(self, message):
        page = FakePage()
        page.evaluate = AsyncMock(side_effect=PlaywrightError(message))
        with pytest.raises(BrowserCrashError, match=message) as exc_info:
            await run_script(page, "function () {}")
        assert exc_info.value.kind == "browser-crash"

    async def test_unexpected_envelope(self):
        page = FakePage()
        page.evaluate = AsyncMock(return_value=42)
        with pytest.raises(ScriptRuntimeError, match="unexpected"):
            await run_script(page, "function () {}")
