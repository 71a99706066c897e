"""Calendar helpers shared by the rule engine.

Every instant is reduced to a naive wall-clock ``datetime`` in the evaluation
timezone before any arithmetic happens. Naive ISO strings are taken as
wall-clock already; strings with an offset (or a trailing ``Z``) are converted
into the evaluation timezone first.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta, tzinfo
from typing import Optional

_MONTH_KEY_RE = re.compile(r"\d{4}-(0[1-9]|1[0-2])")


def month_key_of(day: date) -> str:
    """Return the ``YYYY-MM`` key of a calendar date."""

    return f"{day.year:04d}-{day.month:02d}"


def validate_month_key(month_key: str) -> str:
    if not isinstance(month_key, str) or not _MONTH_KEY_RE.fullmatch(month_key):
        raise ValueError(f"invalid month key {month_key!r}, expected YYYY-MM")
    return month_key


def in_month(iso: Optional[str], month_key: str) -> bool:
    # Prefix match on the raw string, independent of the evaluation timezone.
    if not iso:
        return False
    return iso[:7] == month_key


def parse_instant(iso: Optional[str], tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Parse an ISO-8601 string to a wall-clock datetime, or ``None``."""

    if not iso or not isinstance(iso, str):
        return None
    text = iso.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        return parsed
    # astimezone(None) converts to the process local zone.
    return parsed.astimezone(tz).replace(tzinfo=None)


def now_local(tz: Optional[tzinfo] = None) -> datetime:
    return datetime.now(tz).replace(tzinfo=None) if tz else datetime.now()


def date_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d")


def is_weekday(moment: datetime) -> bool:
    return moment.weekday() < 5


def minutes_between(start: datetime, end: datetime) -> int:
    # Half-minutes round up, also for negative gaps.
    return math.floor((end - start).total_seconds() / 60.0 + 0.5)


def end_time(start: datetime, duration_min: float) -> datetime:
    return start + timedelta(minutes=duration_min)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)
