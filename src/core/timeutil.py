"""Calendar and snooze-window helpers — pure functions, no I/O.

Due dates are compared as calendar days in the owner's timezone, never as
absolute instants. Stored timestamps are ISO-8601 UTC with second
precision so that string comparison matches time order.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from src.data.models import SnoozePreset

_LATER_TODAY_HOURS = 6


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Normalize an aware datetime to the stored UTC string form."""
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds")


def parse_iso(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_hhmm(value: str) -> time:
    """Parse "HH:MM". Raises ValueError on malformed input."""
    hour, minute = (int(p) for p in value.split(":"))
    return time(hour, minute)


def local_today(tz: ZoneInfo, now: datetime) -> date:
    """The owner's calendar date at the instant `now`."""
    return now.astimezone(tz).date()


def tomorrow(day: date) -> date:
    return day + timedelta(days=1)


def add_days(day: date, days: int) -> date:
    return day + timedelta(days=days)


def days_between(start: date, end: date) -> int:
    """Whole calendar days from start to end (negative if end is earlier)."""
    return (end - start).days


def start_of_local_day(tz: ZoneInfo, now: datetime) -> datetime:
    """Local midnight of the current day, as an aware datetime."""
    return datetime.combine(local_today(tz, now), time(0, 0), tzinfo=tz)


def _at_local_time(day: date, at: time, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, at, tzinfo=tz)


def snooze_until(
    preset: SnoozePreset,
    now: datetime,
    morning_time: str = "07:00",
    tz: ZoneInfo | None = None,
) -> datetime:
    """Compute the instant a snoozed reminder becomes visible again.

    Args:
        preset: Named snooze offset.
        now: Current aware instant.
        morning_time: The owner's morning-digest time, "HH:MM".
        tz: The owner's timezone (UTC if omitted).

    `tomorrow` and `next_week` land on the morning-digest time of a local
    calendar day. Next Monday from a Sunday is the following day; from a
    Monday it is a week later.
    """
    tz = tz or ZoneInfo("UTC")

    if preset is SnoozePreset.ONE_HOUR:
        return now + timedelta(hours=1)
    if preset is SnoozePreset.LATER_TODAY:
        return now + timedelta(hours=_LATER_TODAY_HOURS)

    at = parse_hhmm(morning_time)
    today = local_today(tz, now)
    if preset is SnoozePreset.TOMORROW:
        return _at_local_time(tomorrow(today), at, tz)
    if preset is SnoozePreset.NEXT_WEEK:
        weekday = today.weekday()  # Monday == 0, Sunday == 6
        days_until_monday = 7 - weekday
        return _at_local_time(add_days(today, days_until_monday), at, tz)

    raise ValueError(f"Unknown snooze preset: {preset!r}")


def is_in_quiet_hours(
    now: datetime,
    quiet_start: str = "22:00",
    quiet_end: str = "07:00",
    tz: ZoneInfo | None = None,
) -> bool:
    """Check whether the local hour falls inside the quiet window.

    Hour-granular. Handles windows that wrap past midnight (22:00-07:00).
    """
    tz = tz or ZoneInfo("UTC")
    hour = now.astimezone(tz).hour
    start_h = parse_hhmm(quiet_start).hour
    end_h = parse_hhmm(quiet_end).hour

    if start_h > end_h:
        return hour >= start_h or hour < end_h
    return start_h <= hour < end_h
