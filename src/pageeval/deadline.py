# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Deadline timer, timeout token, and the one-shot outcome cell.

Three independent sources can finish an evaluation: the pipeline task,
the deadline, and the page ``crash`` event. They all settle the same
:class:`Outcome`, which accepts only the first value or error it is given.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .errors import EvalTimeoutError
from .pipeline_timer import PipelineTimer

logger = logging.getLogger(__name__)


class TimeoutToken:
    """Cooperative cancellation flag shared by every pipeline stage.

    Tripped at most once, by the deadline. Stages check ``expired`` before
    each browser call and return early once it is set.
    """

    __slots__ = ("_error",)

    def __init__(self) -> None:
        self._error: EvalTimeoutError | None = None

    @property
    def expired(self) -> bool:
        return self._error is not None

    @property
    def error(self) -> EvalTimeoutError | None:
        return self._error

    def trip(self, error: EvalTimeoutError) -> bool:
        """Record the timeout. Returns False if it was already tripped."""
        if self._error is not None:
            return False
        self._error = error
        return True


class Outcome:
    """Single-assignment result cell backed by an asyncio future."""

    __slots__ = ("_future",)

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._future: asyncio.Future = (loop or asyncio.get_running_loop()).create_future()

    @property
    def settled(self) -> bool:
        return self._future.done()

    def resolve(self, value: Any) -> bool:
        if self._future.done():
            return False
        self._future.set_result(value)
        return True

    def reject(self, error: BaseException) -> bool:
        if self._future.done():
            logger.debug("Outcome already settled, dropping %s: %s", type(error).__name__, error)
            return False
        self._future.set_exception(error)
        return True

    def settle_from(self, task: asyncio.Task) -> None:
        """Done-callback for the pipeline task.

        A cancelled task never settles: cancellation only happens after the
        outcome was decided elsewhere.
        """
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.reject(exc)
        else:
            self.resolve(task.result())

    def __await__(self):
        return self._future.__await__()


class Deadline:
    """Wall-clock timeout around one evaluation.

    On expiry: trips ``token`` and rejects ``outcome`` with an
    :class:`EvalTimeoutError` naming ``timeout_ms``. Expiry after the
    outcome settled is a no-op. The duration is not validated here.
    """

    def __init__(
        self,
        timeout_ms: float,
        token: TimeoutToken,
        outcome: Outcome,
        timer: PipelineTimer | None = None,
    ) -> None:
        self.timeout_ms = timeout_ms
        self._token = token
        self._outcome = outcome
        self._timer = timer
        self._handle: asyncio.TimerHandle | None = None

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(max(self.timeout_ms, 0) / 1000, self._expire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def _expire(self) -> None:
        self._handle = None
        if self._outcome.settled:
            return
        stage = self._timer.current_stage if self._timer else None
        detail = self._timer.describe_timeout() if self._timer else ""
        error = EvalTimeoutError(
            f"Timeout Error: evaluation not completed after {self.timeout_ms}ms{detail}",
            timeout_ms=self.timeout_ms,
            stage=stage,
        )
        self._token.trip(error)
        self._outcome.reject(error)
        logger.info("Deadline of %sms expired (stage=%s)", self.timeout_ms, stage)
