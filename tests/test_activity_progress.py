"""Tests for pass progress reporters."""

import logging
import pytest
from unittest.mock import Mock, patch

from habitsync.activity.progress import (
    LoggingReporter,
    SilentReporter,
    TqdmReporter,
    create_reporter,
)


def run_pass(reporter, outcomes):
    reporter.start_pass(len(outcomes), "test pass")
    for index, outcome in enumerate(outcomes):
        name = f"task-{index}"
        reporter.task_start(name)
        if outcome == "ok":
            reporter.task_complete(name)
        elif outcome == "fail":
            reporter.task_failed(name, "boom")
        else:
            reporter.task_skipped(name, "gone")
    reporter.end_pass("fail" not in outcomes)


class TestReporters:
    """Test reporter counters and output."""

    def test_counters(self):
        """Test that each outcome is counted once."""
        reporter = SilentReporter()
        run_pass(reporter, ["ok", "ok", "fail", "skip"])

        assert reporter.stats.total_tasks == 4
        assert reporter.stats.succeeded == 2
        assert reporter.stats.failed == 1
        assert reporter.stats.skipped == 1
        assert reporter.stats.finished_at is not None

    def test_new_pass_resets_counters(self):
        """Test that nothing carries over from a previous pass."""
        reporter = SilentReporter()
        run_pass(reporter, ["ok", "fail"])
        run_pass(reporter, ["ok"])

        assert reporter.stats.succeeded == 1
        assert reporter.stats.failed == 0

    def test_logging_summary(self, caplog):
        """Test that the logging reporter logs failures and a pass summary."""
        logger = logging.getLogger("test.progress")
        reporter = LoggingReporter("activity sync", logger=logger)

        with caplog.at_level(logging.INFO, logger="test.progress"):
            run_pass(reporter, ["ok", "fail"])

        messages = [r.getMessage() for r in caplog.records]
        assert "Failed: task-1 (boom)" in messages
        assert any(m.startswith("Activity sync completed with failures - 1 succeeded, 1 failed") for m in messages)

    def test_tqdm_bar_lifecycle(self):
        """Test that the bar advances per task and closes at the end."""
        with patch("habitsync.activity.progress.tqdm") as mock_tqdm:
            bar = Mock()
            mock_tqdm.return_value = bar
            reporter = TqdmReporter("cleanup")

            run_pass(reporter, ["ok", "skip", "fail"])

        mock_tqdm.assert_called_once_with(total=3, desc="cleanup", leave=True, unit="item")
        assert bar.update.call_count == 3
        bar.write.assert_called_once()
        bar.close.assert_called_once()
        assert reporter.pbar is None

    def test_create_reporter(self):
        """Test reporter selection by name."""
        assert isinstance(create_reporter("logging", name="x"), LoggingReporter)
        assert isinstance(create_reporter("tqdm", name="x", logger=logging.getLogger("x")), TqdmReporter)
        assert create_reporter("silent", name="x", logger=None).name == "x"

        with pytest.raises(ValueError):
            create_reporter("fancy")
