"""Quiet hours arithmetic in the user's local wall-clock time."""

import datetime
import re
from zoneinfo import ZoneInfo

_CLOCK_RE = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")

MINUTES_PER_DAY = 24 * 60


def parse_clock(value: str | None) -> int | None:
    """Parse ``H:MM``/``HH:MM`` into minutes since midnight.

    Returns None for a missing or empty value. Raises ValueError for
    anything else that is not a valid 24-hour clock time.
    """
    if value is None or not value.strip():
        return None
    match = _CLOCK_RE.match(value.strip())
    if match is None:
        raise ValueError(f"Invalid clock time: {value!r} (use HH:MM)")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def to_local(now: datetime.datetime, timezone: str) -> datetime.datetime:
    """Convert *now* into the IANA *timezone*; naive values are taken as UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=datetime.UTC)
    return now.astimezone(ZoneInfo(timezone))


def is_in_quiet_hours(current: int, start: int, end: int) -> bool:
    """Check a minute-of-day against a window, inclusive on both ends.

    Handles wrap-around: start=22:00, end=08:00 covers 22:00 → midnight →
    08:00. A window whose start equals its end is disabled.
    """
    if start == end:
        return False
    if start < end:
        return start <= current <= end
    return current >= start or current <= end


def is_quiet(
    quiet_hours_start: str | None,
    quiet_hours_end: str | None,
    timezone: str,
    now: datetime.datetime,
) -> bool:
    start = parse_clock(quiet_hours_start)
    end = parse_clock(quiet_hours_end)
    if start is None or end is None:
        return False

    local = to_local(now, timezone)
    return is_in_quiet_hours(local.hour * 60 + local.minute, start, end)


def delay_until_end(
    quiet_hours_end: str | None,
    timezone: str,
    now: datetime.datetime,
) -> datetime.timedelta:
    """Elapsed time from *now* until the next local ``quiet_hours_end``.

    If today's end minute is already behind the current minute the end is
    taken from tomorrow. While still inside the end minute itself the
    delay is zero. The difference is taken in UTC so a daylight saving
    change during the night shortens or lengthens the delay.
    """
    end = parse_clock(quiet_hours_end)
    if end is None:
        return datetime.timedelta(0)

    local = to_local(now, timezone)
    end_local = local.replace(
        hour=end // 60, minute=end % 60, second=0, microsecond=0
    )
    if end_local < local.replace(second=0, microsecond=0):
        end_local += datetime.timedelta(days=1)

    elapsed = end_local.astimezone(datetime.UTC) - local.astimezone(datetime.UTC)
    return max(elapsed, datetime.timedelta(0))
