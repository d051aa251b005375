from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from clock_bot.models import SessionLog, TimesheetView
from clock_bot.reporter import build_timesheet_content, format_elapsed, format_hours, format_session

UTC = ZoneInfo("UTC")


def make_log(day: int, hours: int) -> SessionLog:
    start = datetime(2024, 1, day, 9, 0, tzinfo=timezone.utc)
    return SessionLog.between(start, start + timedelta(hours=hours))


def test_format_hours_and_elapsed() -> None:
    assert format_hours(2.5) == "2.50h"
    assert format_hours(-1) == "0.00h"
    assert format_elapsed(timedelta(seconds=3661)) == "01:01:01"


def test_format_session_same_day() -> None:
    log = SessionLog.between(
        datetime(2024, 1, 1, 9, 5, tzinfo=timezone.utc),
        datetime(2024, 1, 1, 13, 30, tzinfo=timezone.utc),
    )

    assert format_session(log, UTC) == "January 1, 2024, 9:05 AM - 1:30 PM"


def test_format_session_across_midnight() -> None:
    log = SessionLog.between(
        datetime(2024, 1, 1, 23, 0, tzinfo=timezone.utc),
        datetime(2024, 1, 2, 1, 0, tzinfo=timezone.utc),
    )

    assert format_session(log, UTC) == "January 1, 2024 - January 2, 2024, 11:00 PM - 1:00 AM"


def test_timesheet_content_lists_sessions() -> None:
    view = TimesheetView(user_id="1", display_name="Alice", entries=[make_log(1, 2), make_log(2, 1)], total_hours=3.0)

    content = build_timesheet_content(view, UTC)

    assert "**Alice**" in content
    assert "Total: **3.00h**" in content
    assert "1. January 1, 2024, 9:00 AM - 11:00 AM (2.00h)" in content
    assert "2. January 2, 2024" in content


def test_no_sessions_message() -> None:
    view = TimesheetView(user_id="1", display_name="Alice", entries=[], total_hours=0.0)

    assert "No sessions found." in build_timesheet_content(view, UTC)


def test_long_timesheet_is_truncated_to_newest() -> None:
    entries = [make_log(day, 1) for day in range(1, 29)]
    view = TimesheetView(user_id="1", display_name="Alice", entries=entries, total_hours=28.0)

    content = build_timesheet_content(view, UTC, limit=400)

    assert len(content) <= 400
    assert "earlier sessions omitted" in content
    assert "28. January 28, 2024" in content
    assert "1. January 1, 2024" not in content
