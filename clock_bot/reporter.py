from __future__ import annotations

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from .models import SessionLog, TimesheetView

MESSAGE_LIMIT = 2000


def format_hours(hours: float) -> str:
    return f"{max(0.0, hours):.2f}h"


def format_elapsed(elapsed: timedelta) -> str:
    """Render a duration as HH:MM:SS for status output."""
    safe_seconds = max(0, int(elapsed.total_seconds()))
    hours, remainder = divmod(safe_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def _date_label(value: datetime) -> str:
    return f"{value:%B} {value.day}, {value.year}"


def _time_label(value: datetime) -> str:
    hour = value.hour % 12 or 12
    return f"{hour}:{value:%M} {'AM' if value.hour < 12 else 'PM'}"


def format_session(log: SessionLog, tz: ZoneInfo) -> str:
    start = log.start.astimezone(tz)
    end = log.end.astimezone(tz)

    date_part = _date_label(start)
    if end.date() != start.date():
        date_part = f"{date_part} - {_date_label(end)}"
    return f"{date_part}, {_time_label(start)} - {_time_label(end)}"


def build_timesheet_content(view: TimesheetView, tz: ZoneInfo, limit: int = MESSAGE_LIMIT) -> str:
    header = f"**{view.display_name}**\nTotal: **{format_hours(view.total_hours)}**"

    if not view.entries:
        return f"{header}\n\nNo sessions found."

    lines = [
        f"{index}. {format_session(log, tz)} ({format_hours(log.hours)})"
        for index, log in enumerate(view.entries, start=1)
    ]
    body = "\n".join(lines)
    # Discord rejects longer messages; keep the newest sessions visible.
    while len(header) + len(body) + 40 > limit and len(lines) > 1:
        lines.pop(0)
        body = f"... {len(view.entries) - len(lines)} earlier sessions omitted\n" + "\n".join(lines)
    return f"{header}\n\n{body}"
