"""Missed check-ins: gap-fill documents and single-day gap reconciliation.

A missed day is not an off day. Each day between the last real check-in and
today gets a ``gap_fill`` momentum document that breaks the streak, carries
the held momentum and starts out unresolved. A lone missed day can later be
reconciled by the user saying whether they exercised on it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import redis

from nelson.config.settings import PATTERN_LIFETIME_LOOKBACK_DAYS
from nelson.models.checkin import CheckIn, CheckinType, MomentumTrend
from nelson.utils.dates import days_between, offset_date_key

logger = logging.getLogger(__name__)

# Momentum multiplier for a reconciled gap day without exercise
GAP_DECAY = 0.92
# Gaps this long or longer drop held momentum to zero
RESET_AFTER_DAYS = 7


class GapError(KeyError):
    """The requested gap day does not exist or is not a gap fill."""


@dataclass
class MissedCheckins:
    had_gap: bool
    days_missed: int
    last_checkin_date: Optional[str]
    frozen_momentum: int
    should_reset: bool

    def to_dict(self) -> dict:
        return {
            "hadGap": self.had_gap,
            "daysMissed": self.days_missed,
            "lastCheckInDate": self.last_checkin_date,
            "frozenMomentum": self.frozen_momentum,
            "shouldReset": self.should_reset,
            "message": missed_checkin_message(self.days_missed, self.frozen_momentum),
        }


@dataclass
class GapCheck:
    needs_reconciliation: bool
    gap_date: Optional[str] = None
    gap_momentum: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "needsReconciliation": self.needs_reconciliation,
            "gapDate": self.gap_date,
            "gapMomentum": self.gap_momentum,
        }


def find_last_real_checkin(
    email: str,
    before: str,
    r: redis.Redis | None = None,
    max_days_back: int = PATTERN_LIFETIME_LOOKBACK_DAYS,
) -> Optional[CheckIn]:
    """Most recent real check-in strictly before ``before``, within the lookback."""
    for back in range(1, max_days_back + 1):
        day = CheckIn.from_store(email, offset_date_key(before, -back), r)
        if day is not None and day.is_real:
            return day
    return None


def gap_fill_document(date: str, held_momentum: int) -> CheckIn:
    return CheckIn(
        date=date,
        checkin_type=CheckinType.GAP_FILL,
        raw_momentum_score=0,
        momentum_score=held_momentum,
        momentum_trend=MomentumTrend.DOWN,
        momentum_message="Missed check-in",
        primary={"habitKey": "", "done": False},
        gap_resolved=False,
    )


def detect_and_fill_missed_checkins(
    email: str,
    today: str,
    r: redis.Redis | None = None,
) -> MissedCheckins:
    """Write a gap fill for every empty day between the last real check-in and ``today``."""
    last = find_last_real_checkin(email, today, r)
    if last is None:
        return MissedCheckins(False, 0, None, 0, False)

    frozen = last.raw_momentum_score or last.momentum_score or 0
    days_missed = days_between(last.date, today) - 1
    if days_missed <= 0:
        return MissedCheckins(False, 0, last.date, frozen, False)

    should_reset = days_missed >= RESET_AFTER_DAYS
    held = 0 if should_reset else frozen
    filled = 0
    for i in range(1, days_missed + 1):
        date = offset_date_key(last.date, i)
        if CheckIn.from_store(email, date, r) is None:
            gap_fill_document(date, held).to_store(email, r)
            filled += 1
    logger.info(f"Gap for {email}: {days_missed} days missed since {last.date}, {filled} filled")
    return MissedCheckins(True, days_missed, last.date, frozen, should_reset)


def missed_checkin_message(days_missed: int, frozen_momentum: int) -> str:
    if days_missed >= RESET_AFTER_DAYS:
        return "Let's rebuild. First brick back in place."
    if days_missed > 1:
        return f"It's been {days_missed} days. The experiment paused. Momentum needs data."
    if days_missed == 1:
        return (
            f"You missed yesterday. Your momentum held at {frozen_momentum}%. "
            "Check in today to keep building."
        )
    return ""


def check_for_unresolved_gap(email: str, today: str, r: redis.Redis | None = None) -> GapCheck:
    """Yesterday is an unresolved gap fill and the day before it is not a gap."""
    gap_date = offset_date_key(today, -1)
    yesterday = CheckIn.from_store(email, gap_date, r)
    if yesterday is None or yesterday.checkin_type != CheckinType.GAP_FILL or yesterday.gap_resolved is not False:
        return GapCheck(False)

    day_before = CheckIn.from_store(email, offset_date_key(today, -2), r)
    if day_before is not None and day_before.checkin_type == CheckinType.GAP_FILL:
        return GapCheck(False)
    return GapCheck(True, gap_date=gap_date, gap_momentum=yesterday.momentum_score or 0)


def resolve_gap(
    email: str,
    gap_date: str,
    exercise_completed: bool,
    r: redis.Redis | None = None,
) -> int:
    """Record the user's answer for a gap day and return its final momentum.

    Exercising holds momentum; otherwise it decays. Raises GapError when the
    date holds no gap fill.
    """
    day = CheckIn.from_store(email, gap_date, r)
    if day is None or day.checkin_type != CheckinType.GAP_FILL:
        raise GapError(f"No gap day at {gap_date}")

    held = day.momentum_score or 0
    day.gap_resolved = True
    day.exercise_completed = exercise_completed
    if exercise_completed:
        day.momentum_trend = MomentumTrend.STABLE
        day.momentum_message = "Gap reconciled"
    else:
        day.momentum_score = round(held * GAP_DECAY)
        day.momentum_trend = MomentumTrend.DOWN
        day.momentum_message = "Missed check-in"
    day.to_store(email, r)
    logger.info(f"Gap {gap_date} resolved for {email}: exercise={exercise_completed}, momentum={day.momentum_score}")
    return day.momentum_score
