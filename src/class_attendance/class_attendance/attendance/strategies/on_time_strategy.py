from __future__ import annotations

from ...core.enums import AttendanceStatus
from .base import AttendanceStrategy, StatusDecision, lateness_note


class OnTimeStrategy(AttendanceStrategy):
    """Mark within the lateness threshold."""

    def decide_mark(self, *, minutes_late: int) -> StatusDecision:
        return StatusDecision(status=AttendanceStatus.PRESENT, note=lateness_note(minutes_late))
