"""Date keys and ISO-8601 week ids.

Dates are stored as ``YYYY-MM-DD`` strings and weeks as ``YYYY-Www``
(Monday-Sunday, ISO 8601). Every week computation in the app goes through
this module.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional

WEEK_ID_RE = re.compile(r"^(\d{4})-W(\d{2})$")
DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class WeekIdError(ValueError):
    """Raised for malformed or out-of-range week ids."""


def today() -> date:
    return datetime.now(timezone.utc).date()


def date_key(d: date) -> str:
    return d.isoformat()


def parse_date_key(key: str) -> date:
    if not is_date_key(key):
        raise ValueError(f"Not a YYYY-MM-DD date: {key!r}")
    return date.fromisoformat(key)


def is_date_key(key: str) -> bool:
    return bool(DATE_KEY_RE.match(key or ""))


def offset_date_key(key: str, days: int) -> str:
    """Shift a date key by ``days`` (negative goes back)."""
    return date_key(parse_date_key(key) + timedelta(days=days))


def days_between(start: str, end: str) -> int:
    return (parse_date_key(end) - parse_date_key(start)).days


def week_id_for(d: date) -> str:
    iso_year, iso_week, _ = d.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def parse_week_id(week_id: str) -> tuple[int, int]:
    match = WEEK_ID_RE.match(week_id or "")
    if not match:
        raise WeekIdError(f"Invalid week id: {week_id!r}")
    year, week = int(match.group(1)), int(match.group(2))
    try:
        date.fromisocalendar(year, week, 1)
    except ValueError as exc:
        raise WeekIdError(f"Invalid week id: {week_id!r}") from exc
    return year, week


def week_monday(week_id: str) -> date:
    year, week = parse_week_id(week_id)
    return date.fromisocalendar(year, week, 1)


def week_date_range(week_id: str) -> tuple[str, str]:
    """(Monday, Sunday) date keys for a week id."""
    monday = week_monday(week_id)
    return date_key(monday), date_key(monday + timedelta(days=6))


def get_current_week_id(on: Optional[date] = None) -> str:
    return week_id_for(on or today())


def get_previous_week_id(on: Optional[date] = None) -> str:
    """Week id of the week before ``on`` (defaults to today, UTC).

    Monday 2026-02-16 is in 2026-W08, so this returns "2026-W07".
    """
    return week_id_for((on or today()) - timedelta(days=7))


def previous_week_of(week_id: str) -> str:
    """The week immediately before ``week_id``, across year boundaries."""
    return week_id_for(week_monday(week_id) - timedelta(days=7))
