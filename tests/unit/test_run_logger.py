"""Unit tests for deterministic run log lines."""

from __future__ import annotations

import io

from linkin_lark.telemetry.cost_tracker import CostTracker, estimate_cost_usd
from linkin_lark.telemetry.logger import RunLogger


def test_chapter_lines_are_deterministic_and_sanitized() -> None:
    """Context keys should be sorted and unsafe characters replaced."""

    sink = io.StringIO()
    logger = RunLogger(sink=sink)

    logger.log_chapter("complete", 2, "My Intro")

    assert sink.getvalue().strip() == (
        "[phase] level=INFO stage=chapter event=complete ordinal=2 title=My_Intro"
    )


def test_failure_and_retry_levels() -> None:
    """Failures log at ERROR and retries at WARNING with two-decimal delays."""

    sink = io.StringIO()
    logger = RunLogger(sink=sink)

    logger.log_chapter("failed", 0, "", error_type="ServerError")
    logger.log_retry(1, "rate_limited", 5)
    logger.log_stage_failure("convert", "UnauthorizedError")

    lines = sink.getvalue().strip().splitlines()
    assert lines == [
        "[phase] level=ERROR stage=chapter event=failed error_type=ServerError ordinal=0 title=none",
        "[phase] level=WARNING stage=tts event=retry attempt=1 delay_seconds=5.00 failure_kind=rate_limited",
        "[phase] level=ERROR stage=convert event=failure error_type=UnauthorizedError",
    ]


def test_level_filters_lower_priority_lines() -> None:
    """A higher threshold should drop informational lines."""

    sink = io.StringIO()
    logger = RunLogger(sink=sink, level="WARNING")

    logger.log_stage_start("parse", source="book.pdf")
    logger.log_warning("state", "stale_state_discarded")

    assert sink.getvalue().strip() == (
        "[phase] level=WARNING stage=state event=warning reason=stale_state_discarded"
    )


def test_cost_tracker_accumulates_characters() -> None:
    """Tracked characters should price at the per-million rate."""

    tracker = CostTracker()
    tracker.add_characters(500_000)
    tracker.add_characters(-10)
    tracker.add_characters(500_000)

    assert tracker.characters == 1_000_000
    assert tracker.cost_usd == 30.0
    assert estimate_cost_usd(0) == 0.0
