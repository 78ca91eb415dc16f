"""Momentum calculation: pure functions, no store access.

Momentum is behavioral inertia. Recent daily scores set the velocity, the
current streak resists drops, and a run of bad days removes that resistance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from nelson.models.checkin import MomentumTrend

# 5-day window: three older days at 13.3% each, yesterday and today at 30%
HISTORY_WEIGHTS = (0.133, 0.133, 0.133, 0.30)
TODAY_WEIGHT = 0.30
HISTORY_DAYS = 4

BAD_DAY_BELOW = 50
TREND_DEADBAND = 2
LONG_GAP_DAYS = 4
SOFT_RESET_CHECKINS = 3

# (minimum streak, share of a drop absorbed)
STREAK_DAMPENING = (
    (30, 0.90),
    (21, 0.85),
    (14, 0.70),
    (7, 0.50),
)


@dataclass
class MomentumResult:
    proposed_score: int
    raw_score: int
    dampening_applied: float
    trend: str
    delta: int
    message: str


def calculate_daily_score(behavior_grades: list[dict]) -> int:
    """Rounded mean of the day's grades, 0 for an empty day."""
    if not behavior_grades:
        return 0
    total = sum(bg.get("grade", 0) for bg in behavior_grades)
    return round(total / len(behavior_grades))


def weighted_average(today_score: int, last_days: list[int]) -> int:
    """Oldest-first history; short histories are padded with today's score."""
    history = list(last_days[-HISTORY_DAYS:])
    while len(history) < HISTORY_DAYS:
        history.insert(0, today_score)
    weighted = sum(s * w for s, w in zip(history, HISTORY_WEIGHTS)) + today_score * TODAY_WEIGHT
    return round(weighted)


def streak_dampening(current_streak: int) -> float:
    for min_streak, share in STREAK_DAMPENING:
        if current_streak >= min_streak:
            return share
    return 0.0


def bad_day_multiplier(today_score: int, last_days: list[int]) -> float:
    """One bad day is noise, two is a forming pattern, three is signal."""
    bad = sum(1 for s in [*last_days, today_score] if s < BAD_DAY_BELOW)
    if bad >= 3:
        return 0.0
    if bad == 2:
        return 0.5
    return 1.0


def trailing_gap_days(last_days: list[int]) -> int:
    gap = 0
    for score in reversed(last_days):
        if score != 0:
            break
        gap += 1
    return gap


def ramp_cap(score: int, checkin_count: int) -> tuple[int, str]:
    """Cap momentum for new users; no cap from the 11th check-in on."""
    if checkin_count <= 1:
        return 0, "Initializing"
    if checkin_count == 2:
        return round(score * 0.20), "Building a foundation"
    if checkin_count == 3:
        return round(score * 0.30), "Finding your rhythm"
    if checkin_count <= 6:
        return round(score * 0.60), "Momentum is forming"
    if checkin_count <= 10:
        return round(score * 0.80), "Momentum is forming"
    return score, ""


def momentum_message(momentum: int, trend: str, streak: int, dampening: float) -> str:
    if trend == MomentumTrend.DOWN and streak >= 7 and dampening > 0:
        if streak >= 21:
            return "Rough data point. Your pattern is strong - one day doesn't erase who you're becoming."
        return "Off day logged. Your streak absorbed most of the drop."
    if trend == MomentumTrend.UP and momentum < 75:
        return "Bouncing back. That's what consistency looks like."
    if momentum >= 80:
        return "Building momentum" if trend == MomentumTrend.UP else "Solid pattern. Keep building."
    if momentum >= 70:
        return "Solid performance. This is exactly where you should be."
    if momentum >= 50:
        return "Gaining traction. A few more solid days and you're on track."
    if momentum >= 30:
        return "Every day is a fresh start. Let's build from here."
    return "Today starts a new pattern. One solid check-in at a time."


def trend_for(delta: int) -> str:
    if delta > TREND_DEADBAND:
        return MomentumTrend.UP
    if delta < -TREND_DEADBAND:
        return MomentumTrend.DOWN
    return MomentumTrend.STABLE


def calculate_momentum(
    today_score: int,
    last_days: list[int],
    current_streak: int,
    total_real_checkins: int,
    previous_momentum: Optional[int] = None,
) -> MomentumResult:
    """Compute today's momentum from the daily score and up to 4 prior days."""
    raw = weighted_average(today_score, last_days)
    prev = previous_momentum or 0

    score = raw
    dampening = 0.0
    if raw < prev:
        dampening = streak_dampening(current_streak) * bad_day_multiplier(today_score, last_days)
        score = round(prev - (prev - raw) * (1 - dampening))

    effective = total_real_checkins
    if trailing_gap_days(last_days) >= LONG_GAP_DAYS and total_real_checkins > SOFT_RESET_CHECKINS:
        effective = SOFT_RESET_CHECKINS

    ramp_note = ""
    if effective <= 10:
        score, ramp_note = ramp_cap(score, effective)

    score = max(0, min(100, score))
    delta = score - prev if previous_momentum is not None else 0
    trend = trend_for(delta) if previous_momentum is not None else MomentumTrend.STABLE

    message = ramp_note or momentum_message(score, trend, current_streak, dampening)
    return MomentumResult(
        proposed_score=score,
        raw_score=raw,
        dampening_applied=dampening,
        trend=trend,
        delta=delta,
        message=message,
    )
