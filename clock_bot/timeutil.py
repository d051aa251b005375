from __future__ import annotations

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from .errors import InvalidDateRange


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso_utc(value: str | None) -> datetime | None:
    """Parse an ISO timestamp and normalize to UTC."""
    if not value:
        return None

    # Timestamps written by the old JavaScript bot end in "Z".
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"

    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        # Stored values should be timezone-aware; treat naive values as UTC for resilience.
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso_utc(value: datetime) -> str:
    if value.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware")
    return value.astimezone(timezone.utc).isoformat()


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600


def parse_user_date(value: str) -> date:
    """Accept MM/DD/YYYY (what members have always typed) or YYYY-MM-DD."""
    text = value.strip()
    try:
        if "/" in text:
            return datetime.strptime(text, "%m/%d/%Y").date()
        return date.fromisoformat(text)
    except ValueError as exc:
        raise InvalidDateRange(f"Invalid date `{value}`. Use MM/DD/YYYY.") from exc


def local_day_bounds(
    start: str | None,
    end: str | None,
    tz: ZoneInfo,
) -> tuple[datetime | None, datetime | None]:
    """Resolve an inclusive local-date range to UTC instants.

    A start date means local midnight, an end date the last microsecond of
    that local day. Either side may be omitted.
    """
    start_utc = None
    end_utc = None

    try:
        if start:
            start_local = datetime.combine(parse_user_date(start), time.min, tzinfo=tz)
            start_utc = start_local.astimezone(timezone.utc)
        if end:
            end_local = datetime.combine(parse_user_date(end), time.max, tzinfo=tz)
            end_utc = end_local.astimezone(timezone.utc)
    except OverflowError as exc:
        raise InvalidDateRange("Date is out of range.") from exc

    if start_utc is not None and end_utc is not None and start_utc > end_utc:
        raise InvalidDateRange("Start date must not be after end date.")
    return start_utc, end_utc
