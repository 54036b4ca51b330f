from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ...core.enums import AttendanceStatus


@dataclass(frozen=True)
class StatusDecision:
    status: AttendanceStatus
    note: Optional[str] = None


def lateness_note(minutes_late: int) -> Optional[str]:
    if minutes_late <= 0:
        return None
    return f"Marked {minutes_late} minutes after session start"


class AttendanceStrategy(ABC):
    """Strategy Pattern: encapsulate how we decide an attendance status."""

    @abstractmethod
    def decide_mark(self, *, minutes_late: int) -> StatusDecision:
        raise NotImplementedError
