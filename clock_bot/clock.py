from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from .errors import AlreadyActive, ClockSkew, NotActive
from .models import SessionLog, SessionRecord, TimesheetView
from .store import RecordStore
from .timeutil import local_day_bounds, utc_now


class TimeClock:
    """Clock-in/clock-out transitions over a RecordStore.

    Each operation reads, checks and writes without awaiting, so two events
    for the same user can never interleave inside a transition.
    """

    def __init__(self, store: RecordStore, tz: ZoneInfo, logger: logging.Logger | None = None) -> None:
        self.store = store
        self.tz = tz
        self.logger = logger or logging.getLogger(__name__)

    def is_clocked_in(self, user_id: str) -> bool:
        record = self.store.get(user_id)
        return record is not None and record.is_active

    def clocked_in_user_ids(self) -> list[str]:
        return [record.user_id for record in self.store.records() if record.is_active]

    def clock_in(self, user_id: str, display_name: str, now: datetime | None = None) -> SessionRecord:
        record = self.store.get(user_id)
        if record is not None and record.is_active:
            raise AlreadyActive()

        record = self.store.get_or_create(user_id, display_name)
        record.display_name = display_name
        record.active = now or utc_now()
        self.store.flush()
        self.logger.info("Clocked in: user=%s", user_id)
        return record

    def clock_out(self, user_id: str, now: datetime | None = None) -> SessionLog:
        record = self.store.get(user_id)
        if record is None or record.active is None:
            raise NotActive()
        return self._close_session(record, now or utc_now())

    def force_clock_out(self, user_id: str, now: datetime | None = None, reason: str = "") -> SessionLog | None:
        record = self.store.get(user_id)
        if record is None or record.active is None:
            self.logger.debug("Ignoring forced clock-out for inactive user=%s", user_id)
            return None

        log = self._close_session(record, now or utc_now())
        self.logger.info("Forced clock-out: user=%s reason=%s", user_id, reason or "unspecified")
        return log

    def _close_session(self, record: SessionRecord, ended: datetime) -> SessionLog:
        # Wall clock stepped back past the clock-in stamp; keep the session open.
        if ended <= record.active:
            raise ClockSkew()
        log = SessionLog.between(record.active, ended)
        record.logs.append(log)
        record.active = None
        self.store.flush()
        self.logger.info("Clocked out: user=%s hours=%.2f", record.user_id, log.hours)
        return log

    def status(self, user_id: str, now: datetime | None = None) -> tuple[SessionRecord | None, timedelta | None]:
        record = self.store.get(user_id)
        if record is None or record.active is None:
            return record, None
        return record, (now or utc_now()) - record.active

    def timesheet(
        self,
        user_id: str,
        start: str | None = None,
        end: str | None = None,
        display_name: str = "",
    ) -> TimesheetView:
        start_utc, end_utc = local_day_bounds(start, end, self.tz)
        record = self.store.get(user_id)
        logs = record.logs if record else []

        entries = [
            log
            for log in logs
            if (start_utc is None or log.start >= start_utc) and (end_utc is None or log.start <= end_utc)
        ]
        name = display_name or (record.display_name if record else "") or f"User {user_id}"
        return TimesheetView(
            user_id=user_id,
            display_name=name,
            entries=entries,
            total_hours=sum(log.hours for log in entries),
        )

    def total_hours(self, user_id: str | None = None) -> float:
        if user_id is not None:
            record = self.store.get(user_id)
            return record.total_hours if record else 0.0
        return sum(record.total_hours for record in self.store.records())

    def reset(self, start: str | None = None, end: str | None = None, now: datetime | None = None) -> int:
        cutoff = None
        if start or end:
            start_utc, end_utc = local_day_bounds(start, end, self.tz)
            cutoff = (
                start_utc or datetime.min.replace(tzinfo=timezone.utc),
                end_utc or datetime.max.replace(tzinfo=timezone.utc),
            )
        return self.store.archive_and_reset(cutoff, archived_at=now)
