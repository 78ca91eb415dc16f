"""Habit event log for the history timeline."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

import redis

from nelson.store.documents import doc_path, list_documents, set_document

logger = logging.getLogger(__name__)


class HabitEventType:
    LEVEL_UP = "level_up"
    MOVED_TO_STACK = "moved_to_stack"
    STREAK_SAVER_EARNED = "streak_saver_earned"
    STREAK_SAVER_USED = "streak_saver_used"
    NEW_PRIMARY = "new_primary"
    MILESTONE_7DAY = "milestone_7day"
    MILESTONE_30DAY = "milestone_30day"
    MILESTONE_100DAY = "milestone_100day"


def _events_collection(email: str) -> str:
    return doc_path("users", email, "habitEvents")


def log_habit_event(
    email: str,
    event_type: str,
    date: str,
    r: redis.Redis | None = None,
    **details: Any,
) -> dict:
    """Persist an event. ``details`` carries habitKey, fromLevel, toLevel, etc."""
    event_id = f"{date}_{event_type}_{time.time_ns()}"
    event = {
        "id": event_id,
        "type": event_type,
        "date": date,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **details,
    }
    set_document(f"{_events_collection(email)}/{event_id}", event, r=r)
    logger.info(f"Habit event logged: {event_type} {details.get('habitKey', '')}")
    return event


def _all_events(email: str, r: redis.Redis | None) -> list[dict]:
    return [data for _, data in list_documents(_events_collection(email), r)]


def recent_habit_events(email: str, limit: int = 50, r: redis.Redis | None = None) -> list[dict]:
    """Newest first."""
    events = sorted(_all_events(email, r), key=lambda e: e.get("timestamp", ""), reverse=True)
    return events[:limit]


def events_for_date(email: str, date: str, r: redis.Redis | None = None) -> list[dict]:
    return [e for e in _all_events(email, r) if e.get("date") == date]


def level_up_history(email: str, r: redis.Redis | None = None) -> list[dict]:
    """Level-up events, oldest first."""
    ups = [e for e in _all_events(email, r) if e.get("type") == HabitEventType.LEVEL_UP]
    return sorted(ups, key=lambda e: e.get("timestamp", ""))


def describe_event(event: dict) -> str:
    event_type: Optional[str] = event.get("type")
    if event_type == HabitEventType.LEVEL_UP:
        return f"Leveled up to {event.get('toLevel')} min walk"
    if event_type == HabitEventType.MOVED_TO_STACK:
        return f"Moved {event.get('habitName') or 'habit'} to stack"
    if event_type == HabitEventType.STREAK_SAVER_EARNED:
        return f"Earned streak saver ({event.get('saversRemaining')}/3)"
    if event_type == HabitEventType.STREAK_SAVER_USED:
        return f"Used streak saver to maintain {event.get('streakLength')}-day streak"
    if event_type == HabitEventType.NEW_PRIMARY:
        return f"Started {event.get('habitName')} as primary focus"
    if event_type == HabitEventType.MILESTONE_7DAY:
        return "7-day check-in streak milestone"
    if event_type == HabitEventType.MILESTONE_30DAY:
        return "30-day check-in streak milestone"
    if event_type == HabitEventType.MILESTONE_100DAY:
        return "100-day check-in streak milestone"
    return "Habit event"
