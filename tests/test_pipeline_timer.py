# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for PipelineTimer stage tracking and timeout descriptions."""

from __future__ import annotations

from pageeval import pipeline_timer as stages
from pageeval.pipeline_timer import PipelineTimer, hint_for_stage


class TestPipelineTimer:
    def test_stage_tracking(self):
        timer = PipelineTimer()
        timer.stage(stages.LAUNCH)
        timer.stage(stages.PAGE)
        timer.stage(stages.EVALUATION)
        timer.finalize()

        elapsed = timer.elapsed_per_stage()
        assert list(elapsed.keys()) == ["launch", "page", "evaluation"]
        assert all(isinstance(v, float) for v in elapsed.values())

    def test_current_stage(self):
        timer = PipelineTimer()
        assert timer.current_stage is None

        timer.stage(stages.NAVIGATION)
        assert timer.current_stage == "navigation"

        timer.finalize()
        assert timer.current_stage is None

    def test_finalize_twice_is_harmless(self):
        timer = PipelineTimer()
        timer.stage(stages.LAUNCH)
        timer.finalize()
        timer.finalize()
        assert list(timer.elapsed_per_stage()) == ["launch"]

    def test_elapsed_includes_running_stage(self):
        timer = PipelineTimer()
        timer.stage(stages.READINESS)
        assert "readiness" in timer.elapsed_per_stage()

    def test_total_ms_is_float(self):
        assert isinstance(PipelineTimer().total_ms, float)


class TestDescribeTimeout:
    def test_no_stage_gives_empty_suffix(self):
        assert PipelineTimer().describe_timeout() == ""

    def test_mentions_stage_and_hint(self):
        timer = PipelineTimer()
        timer.stage(stages.EVALUATION)
        text = timer.describe_timeout()
        assert "'evaluation' stage" in text
        assert "infinite loops" in text

    def test_hint_for_known_stages(self):
        assert "Chromium" in hint_for_stage("launch")
        assert "wait_until" in hint_for_stage("navigation")
        assert "Readiness flag" in hint_for_stage("readiness")

    def test_hint_for_unknown_stage(self):
        assert hint_for_stage("mystery") == "Timed out during 'mystery' stage."
