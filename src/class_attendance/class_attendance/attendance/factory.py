from __future__ import annotations

from dataclasses import dataclass

from .strategies.base import AttendanceStrategy
from .strategies.late_strategy import LateStrategy
from .strategies.on_time_strategy import OnTimeStrategy


@dataclass
class AttendanceStrategyFactory:
    """Factory Pattern: choose appropriate strategy based on rules."""

    def for_mark(self, *, minutes_late: int, threshold_minutes: int) -> AttendanceStrategy:
        if minutes_late <= threshold_minutes:
            return OnTimeStrategy()
        return LateStrategy()
