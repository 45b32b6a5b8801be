# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Stage timer for one evaluation pipeline.

Owned by the coordinator rather than the pipeline task, so it survives
cancellation of that task and the deadline can report which stage was
running when it fired.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

# Stage names, in pipeline order
LAUNCH = "launch"
PAGE = "page"
NAVIGATION = "navigation"
STYLES = "styles"
READINESS = "readiness"
EVALUATION = "evaluation"

_HINTS = {
    LAUNCH: "Chromium did not start in time. Check the executable and launch options.",
    PAGE: "Browser is unresponsive while opening a page.",
    NAVIGATION: "Document is slow to load. Try a weaker wait_until condition.",
    STYLES: "Style injection is stalling; the page may be busy running scripts.",
    READINESS: "Readiness flag was never set to true by the page.",
    EVALUATION: "Script did not return. Check for infinite loops or never-settling promises.",
}


@dataclass(slots=True)
class StageRecord:
    name: str
    start_ns: int
    end_ns: int = 0

    @property
    def elapsed_ms(self) -> float:
        return round((self.end_ns - self.start_ns) / 1e6, 1)


class PipelineTimer:
    """Track pipeline stage transitions for timeout diagnostics."""

    __slots__ = ("_stages", "_current", "_start_ns")

    def __init__(self) -> None:
        self._stages: list[StageRecord] = []
        self._current: StageRecord | None = None
        self._start_ns: int = time.monotonic_ns()

    def stage(self, name: str) -> None:
        """End previous stage + start new stage."""
        now = time.monotonic_ns()
        if self._current is not None:
            self._current.end_ns = now
            self._stages.append(self._current)
        self._current = StageRecord(name=name, start_ns=now)

    def finalize(self) -> None:
        """End current stage. Safe to call more than once."""
        if self._current is not None:
            self._current.end_ns = time.monotonic_ns()
            self._stages.append(self._current)
            self._current = None

    @property
    def current_stage(self) -> str | None:
        return self._current.name if self._current else None

    @property
    def total_ms(self) -> float:
        return round((time.monotonic_ns() - self._start_ns) / 1e6, 1)

    def elapsed_per_stage(self) -> dict[str, float]:
        """Return {stage_name: elapsed_ms} for all stages (including current)."""
        now = time.monotonic_ns()
        result = {s.name: s.elapsed_ms for s in self._stages}
        if self._current is not None:
            result[self._current.name] = round((now - self._current.start_ns) / 1e6, 1)
        return result

    def describe_timeout(self) -> str:
        """One-line suffix for timeout messages: running stage + hint."""
        stage = self.current_stage
        if stage is None:
            return ""
        return f" (timed out during '{stage}' stage: {hint_for_stage(stage)})"


def hint_for_stage(stage: str) -> str:
    return _HINTS.get(stage, f"Timed out during '{stage}' stage.")
