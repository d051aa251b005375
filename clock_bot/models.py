from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .timeutil import hours_between, to_iso_utc

SCHEMA_VERSION = 1


@dataclass(frozen=True, slots=True)
class SessionLog:
    start: datetime
    end: datetime
    hours: float

    @classmethod
    def between(cls, start: datetime, end: datetime) -> SessionLog:
        if end <= start:
            raise ValueError("Session end must be after its start")
        return cls(start=start, end=end, hours=hours_between(start, end))

    def to_dict(self) -> dict:
        return {
            "start": to_iso_utc(self.start),
            "end": to_iso_utc(self.end),
            "hours": self.hours,
        }


@dataclass(slots=True)
class SessionRecord:
    user_id: str
    display_name: str
    active: datetime | None = None
    logs: list[SessionLog] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.active is not None

    @property
    def total_hours(self) -> float:
        return sum(log.hours for log in self.logs)

    def to_dict(self) -> dict:
        return {
            "version": SCHEMA_VERSION,
            "userId": self.user_id,
            "displayName": self.display_name,
            "active": to_iso_utc(self.active) if self.active else None,
            "logs": [log.to_dict() for log in self.logs],
        }


@dataclass(frozen=True, slots=True)
class TimesheetView:
    user_id: str
    display_name: str
    entries: list[SessionLog]
    total_hours: float
