"""Daily check-in submission and range queries.

Writing a check-in is the only path that creates a real momentum document.
Everything downstream (weekly patterns, coaching, level-up) reads what is
written here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Mapping, Optional

import redis

from nelson.config.settings import DEFAULT_EXERCISE_TARGET_MINUTES
from nelson.engine.gaps import detect_and_fill_missed_checkins, find_last_real_checkin
from nelson.engine.momentum import HISTORY_DAYS, calculate_daily_score, calculate_momentum
from nelson.models.behaviors import answers_to_behavior_grades, behavior_order, get_rating
from nelson.models.checkin import CheckIn, CheckinType
from nelson.models.habit import CurrentFocus
from nelson.services.insights import log_insight
from nelson.store.documents import add_document, doc_path, list_document_ids, list_documents, set_document
from nelson.utils.dates import is_date_key, offset_date_key

logger = logging.getLogger(__name__)


class CheckinError(ValueError):
    """Raised when a check-in cannot be accepted."""


def _momentum_collection(email: str) -> str:
    return doc_path("users", email, "momentum")


def _sessions_collection(email: str) -> str:
    return doc_path("users", email, "sessions")


# ── Sessions ─────────────────────────────────────────────────────────────

def log_session(email: str, date: str, duration_min: float, r: redis.Redis | None = None) -> str:
    """Record a timed exercise session (walk timer output)."""
    if not is_date_key(date):
        raise CheckinError(f"Invalid date: {date!r}")
    return add_document(_sessions_collection(email), {
        "date": date,
        "durationMin": duration_min,
        "createdAt": datetime.now(timezone.utc).isoformat(),
    }, r=r)


def derive_exercise_completed(
    email: str,
    date: str,
    exercise_declared: bool = False,
    r: redis.Redis | None = None,
) -> tuple[bool, int]:
    """(completed, target minutes). Declared, or any session that day meeting the target."""
    focus = CurrentFocus.from_store(email, r)
    target = focus.target if focus and focus.target else DEFAULT_EXERCISE_TARGET_MINUTES
    session_hit = any(
        s.get("date") == date and (s.get("durationMin") or 0) >= target
        for _, s in list_documents(_sessions_collection(email), r)
    )
    return exercise_declared or session_hit, target


# ── Range queries ────────────────────────────────────────────────────────

def get_checkins_in_range(email: str, start: str, end: str, r: redis.Redis | None = None) -> list[CheckIn]:
    """Momentum documents dated start..end inclusive, oldest first.

    Non-date documents in the collection (currentFocus, commitment) are skipped.
    """
    days = []
    for doc_id, data in list_documents(_momentum_collection(email), r):
        if not is_date_key(doc_id) or not (start <= doc_id <= end):
            continue
        data.setdefault("date", doc_id)
        days.append(CheckIn.from_dict(data))
    return days


def count_checkins_in_range(email: str, start: str, end: str, r: redis.Redis | None = None) -> int:
    return sum(
        1 for doc_id in list_document_ids(_momentum_collection(email), r)
        if is_date_key(doc_id) and start <= doc_id <= end
    )


def _previous_momentum(yesterday: Optional[CheckIn]) -> Optional[int]:
    if yesterday is None:
        return None
    # Gap fills hold (or decay) the displayed score; real days carry the raw one
    if yesterday.checkin_type == CheckinType.GAP_FILL:
        return yesterday.momentum_score
    return yesterday.raw_momentum_score


# ── Submission ───────────────────────────────────────────────────────────

def submit_checkin(
    email: str,
    date: str,
    answers: Mapping[str, str],
    exercise_declared: bool = False,
    note: str = "",
    r: redis.Redis | None = None,
) -> CheckIn:
    """Grade the answers, compute momentum and write the day's document.

    Raises CheckinError for a malformed date, an unknown rating, or a second
    real check-in on the same date.
    """
    if not is_date_key(date):
        raise CheckinError(f"Invalid date: {date!r}")
    for behavior_id in behavior_order():
        rating = answers.get(behavior_id)
        if rating is not None and get_rating(rating) is None:
            raise CheckinError(f"Unknown rating {rating!r} for {behavior_id}")

    existing = CheckIn.from_store(email, date, r)
    if existing is not None and existing.is_real:
        raise CheckinError(f"Already checked in for {date}")

    grades = answers_to_behavior_grades(answers)
    daily_score = calculate_daily_score(grades)

    # Missed days become gap fills first, so yesterday always reflects the gap
    detect_and_fill_missed_checkins(email, date, r)
    yesterday = CheckIn.from_store(email, offset_date_key(date, -1), r)
    last_real = yesterday if yesterday is not None and yesterday.is_real else find_last_real_checkin(email, date, r)
    total_real = (last_real.total_real_checkins or 0) + 1 if last_real else 1

    current_streak = (yesterday.current_streak or 0) + 1 if yesterday is not None else 1
    lifetime_streak = max(current_streak, (last_real.lifetime_streak or 0) if last_real else 0)

    # Missing days count as zero so a long absence is visible to the engine
    last_days = []
    for back in range(HISTORY_DAYS, 0, -1):
        day = CheckIn.from_store(email, offset_date_key(date, -back), r)
        last_days.append(day.daily_score if day else 0)

    exercise_completed, target = derive_exercise_completed(email, date, exercise_declared, r)
    focus = CurrentFocus.from_store(email, r)

    result = calculate_momentum(
        today_score=daily_score,
        last_days=last_days,
        current_streak=current_streak,
        total_real_checkins=total_real,
        previous_momentum=_previous_momentum(yesterday),
    )

    checkin = CheckIn(
        date=date,
        checkin_type=CheckinType.REAL,
        behavior_ratings=dict(answers),
        behavior_grades=grades,
        daily_score=daily_score,
        raw_momentum_score=result.raw_score,
        momentum_score=result.proposed_score,
        momentum_trend=result.trend,
        momentum_delta=result.delta,
        momentum_message=result.message,
        total_real_checkins=total_real,
        current_streak=current_streak,
        lifetime_streak=lifetime_streak,
        exercise_completed=exercise_completed,
        exercise_target_minutes=target,
        primary={"habitKey": focus.habit_key, "done": exercise_completed} if focus else {},
        note=note,
    )
    checkin.to_store(email, r)
    set_document(doc_path("users", email), {"lastCheckInDate": date}, merge=True, r=r)
    logger.info(
        f"Check-in {date} for {email}: score {daily_score}, momentum {result.proposed_score} "
        f"({result.trend}), total {total_real}"
    )

    log_insight(email, result.message, {
        "date": date,
        "dailyScore": daily_score,
        "momentumScore": result.proposed_score,
        "currentStreak": current_streak,
    }, r=r)
    return checkin
