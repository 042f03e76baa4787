"""Simple timers that report average durations every few cycles."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

__all__ = ["Timer", "TimeProfiler"]

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class Timer:
    """Accumulates durations, in milliseconds, measured with a clock."""

    def __init__(self, clock: Clock = time.process_time) -> None:
        self._clock = clock
        self._init_time = 0.0
        self._end_time = 0.0
        self._average_duration = 0.0

    def reset_average_duration(self) -> None:
        """Clear the accumulated duration."""
        self._average_duration = 0.0

    def start(self) -> None:
        """Record the initial time."""
        self._init_time = self._clock()

    def stop(self) -> None:
        """Record the final time."""
        self._end_time = self._clock()

    def evaluate_duration(self) -> None:
        """Add the last measured interval to the accumulated duration."""
        self._average_duration += (self._end_time - self._init_time) * 1000.0

    @property
    def average_duration(self) -> float:
        """Accumulated duration in milliseconds."""
        return self._average_duration


class TimeProfiler:
    """A set of named timers reported together every ``period`` cycles."""

    def __init__(self, period: int = 1, clock: Clock = time.process_time) -> None:
        self._clock = clock
        self._counter = 0
        self._max_counter = period
        self._timers: dict[str, Timer] = {}

    def set_period(self, max_counter: int) -> None:
        """Set how many cycles pass between two reports."""
        self._max_counter = max_counter

    def add_timer(self, key: str) -> None:
        """Add a timer; the name must be new."""
        if key in self._timers:
            raise ValueError(f"the timer {key} already exists")
        self._timers[key] = Timer(self._clock)

    def _timer(self, key: str) -> Timer:
        try:
            return self._timers[key]
        except KeyError:
            raise KeyError(f"unable to find the timer {key}") from None

    def start(self, key: str) -> None:
        """Record the initial time of the named timer."""
        self._timer(key).start()

    def stop(self, key: str) -> None:
        """Record the final time of the named timer."""
        self._timer(key).stop()

    def profiling(self) -> str | None:
        """Close one cycle; on every ``period``-th cycle log and return the report."""
        self._counter += 1
        report_due = self._counter == self._max_counter
        parts = []
        for key in sorted(self._timers):
            timer = self._timers[key]
            timer.evaluate_duration()
            if report_due:
                average = timer.average_duration / self._counter
                parts.append(f"{key}: {average:.6f} ms ")
                timer.reset_average_duration()
        if not report_due:
            return None
        self._counter = 0
        report = "".join(parts)
        logger.info(report)
        return report