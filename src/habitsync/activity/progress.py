"""
Progress reporting for sync and cleanup passes.

A pass is a fixed number of tasks, each finishing as succeeded, failed or
skipped. Reporters keep per-pass counters only; nothing is retained once
the next pass starts.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from tqdm import tqdm


class TaskOutcome(Enum):
    """How a single task in a pass finished."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class PassStats:
    """Counters for one pass."""
    total_tasks: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def count(self, outcome: TaskOutcome):
        if outcome is TaskOutcome.SUCCEEDED:
            self.succeeded += 1
        elif outcome is TaskOutcome.FAILED:
            self.failed += 1
        else:
            self.skipped += 1

    @property
    def elapsed_time(self) -> float:
        """Elapsed seconds."""
        if not self.started_at:
            return 0
        return ((self.finished_at or datetime.now()) - self.started_at).total_seconds()

    def summary(self) -> str:
        return (f"{self.succeeded} succeeded, {self.failed} failed, {self.skipped} skipped "
                f"in {self.elapsed_time:.1f}s")


class ProgressReporter:
    """Base reporter: tracks counters and forwards to output hooks.

    Subclasses override the ``_on_*`` hooks they care about.
    """

    def __init__(self, name: str = "sync"):
        self.name = name
        self.stats = PassStats()

    def start_pass(self, total_tasks: int, description: str = ""):
        self.stats = PassStats(total_tasks=total_tasks, started_at=datetime.now())
        self._on_pass_start(description)

    def end_pass(self, success: bool = True):
        self.stats.finished_at = datetime.now()
        self._on_pass_end(success)

    def task_start(self, task_name: str):
        self._on_task_start(task_name)

    def task_complete(self, task_name: str, details: str = ""):
        self._finish(task_name, TaskOutcome.SUCCEEDED, details)

    def task_failed(self, task_name: str, error: str = ""):
        self._finish(task_name, TaskOutcome.FAILED, error)

    def task_skipped(self, task_name: str, reason: str = ""):
        self._finish(task_name, TaskOutcome.SKIPPED, reason)

    def _finish(self, task_name: str, outcome: TaskOutcome, detail: str):
        self.stats.count(outcome)
        self._on_task_end(task_name, outcome, detail)

    def _on_pass_start(self, description: str):
        pass

    def _on_pass_end(self, success: bool):
        pass

    def _on_task_start(self, task_name: str):
        pass

    def _on_task_end(self, task_name: str, outcome: TaskOutcome, detail: str):
        pass


class LoggingReporter(ProgressReporter):
    """Reports through standard logging."""

    def __init__(self, name: str = "sync", logger: Optional[logging.Logger] = None,
                 log_level: int = logging.INFO):
        super().__init__(name)
        self.logger = logger or logging.getLogger(f"{__name__}.{name}")
        self.log_level = log_level

    def _on_pass_start(self, description: str):
        self.logger.log(self.log_level, f"Starting {self.name}: {description}")

    def _on_pass_end(self, success: bool):
        status = "completed" if success else "completed with failures"
        self.logger.log(self.log_level, f"{self.name.capitalize()} {status} - {self.stats.summary()}")

    def _on_task_start(self, task_name: str):
        self.logger.debug(f"Starting: {task_name}")

    def _on_task_end(self, task_name: str, outcome: TaskOutcome, detail: str):
        if outcome is TaskOutcome.FAILED:
            self.logger.warning(f"Failed: {task_name} ({detail})")
        else:
            self.logger.debug(f"{outcome.value.capitalize()}: {task_name}")


class TqdmReporter(ProgressReporter):
    """Reports through a tqdm progress bar."""

    def __init__(self, name: str = "sync", leave: bool = True):
        super().__init__(name)
        self.leave = leave
        self.pbar: Optional[tqdm] = None

    def _on_pass_start(self, description: str):
        self.pbar = tqdm(total=self.stats.total_tasks, desc=self.name, leave=self.leave, unit="item")

    def _on_pass_end(self, success: bool):
        if self.pbar:
            self.pbar.close()
            self.pbar = None

    def _on_task_end(self, task_name: str, outcome: TaskOutcome, detail: str):
        if self.pbar:
            self.pbar.update(1)
            if outcome is TaskOutcome.FAILED:
                self.pbar.write(f"failed: {task_name} ({detail})")


class SilentReporter(ProgressReporter):
    """Counts without output."""


def create_reporter(reporter_type: str, **kwargs) -> ProgressReporter:
    """Create a reporter by name: logging, tqdm or silent."""
    if reporter_type == "logging":
        return LoggingReporter(**kwargs)
    elif reporter_type == "tqdm":
        kwargs.pop("logger", None)
        return TqdmReporter(**kwargs)
    elif reporter_type == "silent":
        return SilentReporter(name=kwargs.get("name", "sync"))
    else:
        raise ValueError(f"Unknown reporter type: {reporter_type}")
