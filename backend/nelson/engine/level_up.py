"""Level-up target selection and eligibility.

The selector and the eligibility rules are pure functions; the last section
loads their inputs from the store.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import redis

from nelson.engine.checkins import get_checkins_in_range
from nelson.models.checkin import CheckinType
from nelson.models.habit import CurrentFocus
from nelson.services.habit_events import level_up_history
from nelson.store.documents import doc_path, list_document_ids
from nelson.utils.dates import days_between, is_date_key, offset_date_key

# Minute targets offered by the level-up slider
TARGET_LADDER: tuple[int, ...] = (1, 2, 3, 4, 5, 7, 10, 12, 15, 20, 25, 30, 35, 40, 45, 60)

INCREASE = "increase"
DECREASE = "decrease"

MIN_ACCOUNT_AGE_DAYS = 7
LEVEL_UP_COOLDOWN_DAYS = 7
MIN_HITS_TO_LEVEL_UP = 5


@dataclass
class TargetOptions:
    available: list[int]
    anchor: int
    initial: Optional[int]  # None when the ladder has nothing in that direction

    @property
    def anchor_available(self) -> bool:
        return self.anchor in self.available


def anchor_target(current_target: int, last_proven_target: int, direction: str) -> int:
    """Suggested next target before snapping to the ladder."""
    if direction == INCREASE:
        return current_target + 2 if current_target < 10 else current_target + 5
    return min(last_proven_target, current_target - 2)


def target_options(current_target: int, last_proven_target: int, direction: str) -> TargetOptions:
    """Ladder values past the current target, plus the starting selection.

    The selection starts on the anchor when the ladder contains it, otherwise
    on the first available value (closest above for increases, lowest for
    decreases).
    """
    if direction not in (INCREASE, DECREASE):
        raise ValueError(f"Unknown direction: {direction!r}")
    if direction == INCREASE:
        available = [v for v in TARGET_LADDER if v > current_target]
    else:
        available = [v for v in TARGET_LADDER if v < current_target]
    anchor = anchor_target(current_target, last_proven_target, direction)
    if anchor in available:
        initial = anchor
    else:
        initial = available[0] if available else None
    return TargetOptions(available=available, anchor=anchor, initial=initial)


def selection_hint(selected: int, options: TargetOptions, last_proven_target: int, direction: str) -> Optional[str]:
    if direction == INCREASE and selected == options.anchor:
        return "based_on_last_week"
    if direction == DECREASE and selected == last_proven_target:
        return "last_proven"
    return None


# ── Eligibility ──────────────────────────────────────────────────────────

@dataclass
class EligibilityResult:
    is_eligible: bool
    reason: Optional[str] = None
    days_hit: Optional[int] = None

    def to_dict(self) -> dict:
        return {"isEligible": self.is_eligible, "reason": self.reason, "daysHit": self.days_hit}


def check_level_up_eligibility(
    daily_docs_last7: list[dict],
    current_habit: str,
    last_level_up_date: Optional[str],
    account_age_days: int,
) -> EligibilityResult:
    """Eligible after 5 real hits of the current habit in the last 7 days.

    ``daily_docs_last7`` are momentum documents, oldest first, each with
    ``date``, optional ``primary`` ({habitKey, done}) and ``checkinType``.
    """
    if account_age_days < MIN_ACCOUNT_AGE_DAYS:
        return EligibilityResult(False, reason="account_too_new")

    if not daily_docs_last7:
        return EligibilityResult(False, reason="no_recent_data")

    if last_level_up_date:
        since = days_between(last_level_up_date, daily_docs_last7[-1]["date"])
        if since < LEVEL_UP_COOLDOWN_DAYS:
            return EligibilityResult(False, reason="cooldown")

    hits = 0
    for d in daily_docs_last7:
        primary = d.get("primary") or {}
        if (
            primary.get("habitKey") == current_habit
            and primary.get("done") is True
            and (d.get("checkinType") or CheckinType.REAL) == CheckinType.REAL
        ):
            hits += 1

    if hits < MIN_HITS_TO_LEVEL_UP:
        return EligibilityResult(False, reason="insufficient_hits", days_hit=hits)

    return EligibilityResult(True, days_hit=hits)


# ── Store access ─────────────────────────────────────────────────────────

def account_age_days(email: str, today: str, r: redis.Redis | None = None) -> int:
    """Days since the first momentum document, counting both ends; 0 for a new user."""
    dates = [
        doc_id for doc_id in list_document_ids(doc_path("users", email, "momentum"), r)
        if is_date_key(doc_id) and doc_id <= today
    ]
    if not dates:
        return 0
    return days_between(min(dates), today) + 1


def level_up_eligibility(email: str, today: str, r: redis.Redis | None = None) -> EligibilityResult:
    """Eligibility for the user's current focus, from the last 7 days of documents."""
    focus = CurrentFocus.from_store(email, r)
    if focus is None:
        return EligibilityResult(False, reason="no_focus")

    window = get_checkins_in_range(email, offset_date_key(today, -(LEVEL_UP_COOLDOWN_DAYS - 1)), today, r)
    history = level_up_history(email, r)
    return check_level_up_eligibility(
        [d.to_dict() for d in window],
        focus.habit_key,
        history[-1]["date"] if history else None,
        account_age_days(email, today, r),
    )
