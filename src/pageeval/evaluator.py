# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Outcome coordinator: run one evaluation against a deadline.

Pipeline, in order::

    launch → page → navigation → styles → readiness → evaluation

The pipeline runs as one asyncio task. Its completion, the deadline, and
the page ``crash`` event all feed one :class:`~pageeval.deadline.Outcome`;
whichever arrives first decides the result. A single ``finally`` block
then cancels the deadline, drains the pipeline task, detaches listeners,
and tears the session down (at most once).
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
from playwright.async_api import Page

from . import pipeline_timer as stages
from .browser_session import BrowserConfig, EvalSession, SessionController
from .deadline import Deadline, Outcome, TimeoutToken
from .errors import BrowserCrashError, ValidationError
from .pipeline_timer import PipelineTimer
from .preparation import (
    DEFAULT_READY_VAR,
    attach_diagnostics,
    inject_styles,
    load_document,
    wait_for_ready_flag,
)
from .script import run_script

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30000


@dataclass(frozen=True)
class EvalRequest:
    """Options for one evaluation. Validated on construction."""

    script_fn: str | None = None
    html: str | Path | None = None
    content: str | None = None
    args: list[Any] = field(default_factory=list)
    viewport: dict[str, int] | None = None
    styles: list[str] = field(default_factory=list)
    wait_for_js: bool = False
    wait_for_js_var_name: str = DEFAULT_READY_VAR
    wait_until: str | None = None
    timeout: float = DEFAULT_TIMEOUT_MS
    keep_alive: bool = False
    session: EvalSession | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        reusing = self.session is not None
        if reusing and not isinstance(self.session, EvalSession):
            raise ValidationError("`session` option must be the session returned by a `keep_alive` evaluation")
        if self.html is None and self.content is None and not reusing:
            raise ValidationError("required `html` option not specified")
        if self.html is not None and self.content is not None:
            raise ValidationError("`html` and `content` options are mutually exclusive")
        if self.script_fn is None:
            raise ValidationError("required `script_fn` option not specified")
        if not isinstance(self.script_fn, str):
            raise ValidationError("`script_fn` option must be a string")
        if isinstance(self.timeout, bool) or not isinstance(self.timeout, int | float):
            raise ValidationError("`timeout` option must be a number")
        if self.html is not None and not Path(self.html).is_absolute():
            raise ValidationError("`html` option must be an absolute path to a file")
        if not isinstance(self.args, list | tuple):
            raise ValidationError("`args` option must be a list")
        if self.viewport is not None and not {"width", "height"} <= set(self.viewport):
            raise ValidationError("`viewport` option must define `width` and `height`")

    @property
    def reuses_session(self) -> bool:
        return self.session is not None


@dataclass(frozen=True, slots=True)
class KeptAliveResult:
    """Success value when ``keep_alive`` was requested.

    The caller owns ``session`` and must eventually ``await session.close()``.
    """

    session: EvalSession
    result: Any


class _Invocation:
    """Mutable per-run state shared by the pipeline and the cleanup block."""

    __slots__ = ("request", "token", "timer", "outcome", "session", "_detachers", "invocation_id")

    def __init__(self, request: EvalRequest) -> None:
        self.request = request
        self.token = TimeoutToken()
        self.timer = PipelineTimer()
        self.outcome = Outcome()
        self.session: EvalSession | None = None
        self._detachers: list[Callable[[], None]] = []
        self.invocation_id = uuid.uuid4().hex[:12]

    def watch_page(self, page: Page) -> None:
        """Attach crash + diagnostic listeners; a crash rejects the outcome at once."""

        def _on_crash(_page: Page) -> None:
            logger.error("Page crashed during evaluation")
            self.outcome.reject(BrowserCrashError("page crashed while the evaluation was running"))

        page.on("crash", _on_crash)
        self._detachers.append(lambda: page.remove_listener("crash", _on_crash))
        self._detachers.append(attach_diagnostics(page))

    def detach_listeners(self) -> None:
        while self._detachers:
            detach = self._detachers.pop()
            try:
                detach()
            except Exception:
                logger.debug("Listener detach failed", exc_info=True)


class PageEvaluator:
    """Evaluate script functions against local documents in Chromium.

    Usage::

        evaluator = PageEvaluator()
        result = await evaluator(html="/abs/page.html", script_fn="function () { return document.title }")
    """

    def __init__(
        self,
        config: BrowserConfig | None = None,
        *,
        launch_options: dict[str, Any] | None = None,
    ) -> None:
        if config is None:
            config = BrowserConfig.from_env(launch_options)
        elif launch_options:
            config.launch_options = {**config.launch_options, **launch_options}
        self.controller = SessionController(config)

    @property
    def config(self) -> BrowserConfig:
        return self.controller.config

    async def __call__(self, **options: Any) -> Any:
        return await self.run(EvalRequest(**options))

    async def run(self, request: EvalRequest) -> Any:
        """Run one evaluation and return the script result.

        Returns a :class:`KeptAliveResult` instead when ``request.keep_alive``.
        Raises exactly one :class:`~pageeval.errors.PageEvalError` (or the
        driver's own launch/navigation error) on failure.
        """
        inv = _Invocation(request)
        with structlog.contextvars.bound_contextvars(invocation_id=inv.invocation_id):
            return await self._coordinate(inv)

    async def _coordinate(self, inv: _Invocation) -> Any:
        request = inv.request
        deadline = Deadline(request.timeout, inv.token, inv.outcome, inv.timer)
        logger.debug("Starting evaluation (timeout=%sms, reuse=%s)", request.timeout, request.reuses_session)

        pipeline = asyncio.ensure_future(self._pipeline(inv))
        pipeline.add_done_callback(inv.outcome.settle_from)
        deadline.start()
        succeeded = False
        try:
            result = await inv.outcome
            succeeded = True
        except Exception as exc:
            logger.debug("Evaluation failed after %sms: %s", inv.timer.total_ms, exc)
            raise
        finally:
            deadline.cancel()
            inv.timer.finalize()
            if not pipeline.done():
                pipeline.cancel()
                await asyncio.wait({pipeline})
            inv.detach_listeners()
            await self.controller.teardown(inv.session, keep_alive=succeeded and request.keep_alive)

        logger.debug("Evaluation completed in %sms: %s", inv.timer.total_ms, inv.timer.elapsed_per_stage())
        if request.keep_alive:
            return KeptAliveResult(session=inv.session, result=result)
        return result

    async def _pipeline(self, inv: _Invocation) -> Any:
        request, token, timer = inv.request, inv.token, inv.timer

        timer.stage(stages.LAUNCH)
        inv.session = await self.controller.acquire(request.session)
        if token.expired:
            return None

        timer.stage(stages.PAGE)
        page = await self.controller.new_page(inv.session, request.viewport)
        inv.watch_page(page)
        if token.expired:
            return None

        if not request.reuses_session:
            timer.stage(stages.NAVIGATION)
            if not await load_document(
                page,
                token,
                timeout_ms=request.timeout,
                html=request.html,
                content=request.content,
                wait_until=request.wait_until,
            ):
                return None

            if request.styles:
                timer.stage(stages.STYLES)
                if not await inject_styles(page, token, request.styles):
                    return None

            if request.wait_for_js:
                timer.stage(stages.READINESS)
                if not await wait_for_ready_flag(page, token, request.wait_for_js_var_name, request.timeout):
                    return None

        if token.expired:
            return None
        timer.stage(stages.EVALUATION)
        return await run_script(page, request.script_fn, request.args)


def create_evaluator(
    launch_options: dict[str, Any] | None = None,
    *,
    config: BrowserConfig | None = None,
) -> PageEvaluator:
    """Create an evaluator; ``launch_options`` are passed to ``chromium.launch``."""
    logger.debug("Creating a new evaluator with launch options: %s", launch_options)
    return PageEvaluator(config, launch_options=launch_options)
