"""Weekly pattern classification.

``classify_week`` is a pure function over one week of momentum documents;
``detect_weekly_pattern`` loads the week from the store and calls it.
Rules run in priority order and the first match wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from statistics import mean, pstdev
from typing import Optional

import redis

from nelson.config import settings
from nelson.engine.checkins import get_checkins_in_range
from nelson.models.behaviors import behavior_order, canonical_behavior_name
from nelson.models.checkin import CheckIn, CheckinType
from nelson.models.coaching import NON_COACHABLE_PATTERNS, PatternType, WeeklyPattern
from nelson.utils.dates import offset_date_key, week_date_range

logger = logging.getLogger(__name__)

DAYS_IN_WEEK = 7

RECOVERY_BEHAVIORS = ("sleep", "mindset")
MOVEMENT_BEHAVIOR = "movement"


@dataclass(frozen=True)
class PatternThresholds:
    min_week_checkins: int = settings.PATTERN_MIN_WEEK_CHECKINS
    min_lifetime_checkins: int = settings.PATTERN_MIN_LIFETIME_CHECKINS
    exercise_days_high: int = settings.PATTERN_EXERCISE_DAYS_HIGH
    momentum_flat_below: float = settings.PATTERN_MOMENTUM_FLAT_BELOW
    recovery_low_below: float = settings.PATTERN_RECOVERY_LOW_BELOW
    recovery_low_days: int = settings.PATTERN_RECOVERY_LOW_DAYS
    other_behaviors_low_below: float = settings.PATTERN_OTHER_BEHAVIORS_LOW_BELOW
    variance_high_above: float = settings.PATTERN_VARIANCE_HIGH_ABOVE
    trend_delta: float = settings.PATTERN_TREND_DELTA


DEFAULT_THRESHOLDS = PatternThresholds()


# ── Statistics ───────────────────────────────────────────────────────────

def behavior_averages(days: list[CheckIn]) -> dict[str, float]:
    """Mean grade per behavior over the days that recorded it."""
    grades: dict[str, list[int]] = {}
    for day in days:
        for bg in day.behavior_grades:
            name = canonical_behavior_name(bg.get("name", ""))
            grades.setdefault(name, []).append(bg.get("grade") or 0)
    return {name: mean(values) for name, values in grades.items() if values}


def grade_deviation(days: list[CheckIn]) -> float:
    """Population standard deviation of every grade recorded in ``days``."""
    all_grades = [bg.get("grade") or 0 for day in days for bg in day.behavior_grades]
    if not all_grades:
        return 0.0
    return pstdev(all_grades)


def momentum_trend_delta(days: list[CheckIn]) -> float:
    """Second-half mean momentum minus first-half mean; 0 with fewer than 3 days."""
    if len(days) < 3:
        return 0.0
    half = len(days) // 2
    first = mean(d.momentum_score for d in days[:half])
    second = mean(d.momentum_score for d in days[half:])
    return second - first


def trend_label(days: list[CheckIn], threshold: float) -> str:
    """"stable" when there are too few days to tell, else upward, downward or flat."""
    if len(days) < 3:
        return "stable"
    delta = momentum_trend_delta(days)
    if delta > threshold:
        return "upward"
    if delta < -threshold:
        return "downward"
    return "flat"


def low_recovery_days(days: list[CheckIn], below: float) -> int:
    return sum(
        1 for d in days
        if mean(d.grade_for(name) for name in RECOVERY_BEHAVIORS) < below
    )


# ── Classification ───────────────────────────────────────────────────────

def classify_week(
    days: list[CheckIn],
    lifetime_total: int,
    week_id: str,
    date_range: dict,
    thresholds: PatternThresholds = DEFAULT_THRESHOLDS,
) -> WeeklyPattern:
    """Classify one week of momentum documents (oldest first)."""
    real = [d for d in days if d.checkin_type == CheckinType.REAL]
    n_real = len(real)

    def result(pattern: PatternType, evidence: list[str]) -> WeeklyPattern:
        return WeeklyPattern(
            primary_pattern=pattern,
            evidence_points=evidence,
            week_id=week_id,
            date_range=date_range,
            can_coach=pattern not in NON_COACHABLE_PATTERNS,
            days_analyzed=DAYS_IN_WEEK,
            real_checkins_this_week=n_real,
            total_lifetime_checkins=lifetime_total,
        )

    if n_real < thresholds.min_week_checkins:
        return result(PatternType.INSUFFICIENT_DATA, [f"Only {n_real} check-ins this week"])

    if lifetime_total < thresholds.min_lifetime_checkins:
        return result(PatternType.BUILDING_FOUNDATION, [
            f"Total check-ins: {lifetime_total}",
            f"Week check-ins: {n_real}/7",
        ])

    unresolved = [d for d in days if d.checkin_type == CheckinType.GAP_FILL and d.gap_resolved is False]
    if unresolved:
        plural = "s" if len(unresolved) > 1 else ""
        return result(PatternType.GAP_DISRUPTION, [
            f"{len(unresolved)} unresolved gap{plural} this week",
            f"Real check-ins: {n_real}/7",
        ])

    # Exercise counts every day, reconciled gaps included
    exercise_days = sum(1 for d in days if d.exercise_completed)
    current_momentum = days[-1].momentum_score if days else 0
    averages = behavior_averages(real)
    sleep_avg = averages.get("sleep", 0)
    mindset_avg = averages.get("mindset", 0)

    if exercise_days >= thresholds.exercise_days_high and current_momentum < thresholds.momentum_flat_below:
        return result(PatternType.COMMITMENT_MISALIGNED, [
            f"Exercise: {exercise_days}/7 days",
            f"Momentum: {round(current_momentum)}%",
            f"Nutrition average: {round(averages.get('nutrition_pattern', 0))}%",
            f"Energy balance average: {round(averages.get('energy_balance', 0))}%",
        ])

    low_days = low_recovery_days(real, thresholds.recovery_low_below)
    if low_days >= thresholds.recovery_low_days:
        return result(PatternType.RECOVERY_DEFICIT, [
            f"Sleep average: {round(sleep_avg)}%",
            f"Mindset average: {round(mindset_avg)}%",
            f"Low recovery days: {low_days}/7",
        ])

    others = [b for b in behavior_order() if b != MOVEMENT_BEHAVIOR]
    others_avg = mean(averages.get(b, 0) for b in others)
    if exercise_days >= thresholds.exercise_days_high and others_avg < thresholds.other_behaviors_low_below:
        return result(PatternType.EFFORT_INCONSISTENT, [
            f"Exercise: {exercise_days}/7 days",
            f"Other behaviors average: {round(others_avg)}%",
            f"Nutrition: {round(averages.get('nutrition_pattern', 0))}%",
            f"Sleep: {round(sleep_avg)}%",
        ])

    deviation = grade_deviation(real)
    if deviation > thresholds.variance_high_above:
        scores = [d.daily_score for d in real]
        return result(PatternType.VARIANCE_HIGH, [
            f"Behavior variance: {round(deviation)}%",
            f"Check-ins: {n_real}/7",
            f"Daily score range: {min(scores)}-{max(scores)}",
        ])

    delta = momentum_trend_delta(days)
    if delta > thresholds.trend_delta:
        return result(PatternType.BUILDING_MOMENTUM, [
            f"Momentum: {round(current_momentum)}%",
            f"Momentum trend: +{round(delta)} points",
            f"Check-ins: {n_real}/7",
        ])

    return result(PatternType.MOMENTUM_PLATEAU, [
        f"Check-ins: {n_real}/7",
        f"Momentum: {round(current_momentum)}%",
        f"Momentum trend: {trend_label(days, thresholds.trend_delta)}",
        f"Exercise: {exercise_days}/7 days",
    ])


# ── Store access ─────────────────────────────────────────────────────────

def _latest_real_total(days: list[CheckIn]) -> Optional[int]:
    for day in reversed(days):
        if day.is_real and day.total_real_checkins:
            return day.total_real_checkins
    return None


def lifetime_checkins(
    email: str,
    days: list[CheckIn],
    window_end: str,
    r: redis.Redis | None = None,
) -> int:
    """Lifetime real check-ins as of the week.

    Taken from the latest real check-in of the week, falling back to the
    latest one in the preceding lookback period, then 0.
    """
    total = _latest_real_total(days)
    if total:
        return total
    start = offset_date_key(window_end, -settings.PATTERN_LIFETIME_LOOKBACK_DAYS)
    return _latest_real_total(get_checkins_in_range(email, start, window_end, r)) or 0


def detect_weekly_pattern(
    email: str,
    week_id: str,
    r: redis.Redis | None = None,
    thresholds: PatternThresholds = DEFAULT_THRESHOLDS,
) -> WeeklyPattern:
    """Load the Monday-Sunday window of ``week_id`` and classify it."""
    start, end = week_date_range(week_id)
    days = get_checkins_in_range(email, start, end, r)
    lifetime = lifetime_checkins(email, days, end, r)
    pattern = classify_week(days, lifetime, week_id, {"start": start, "end": end}, thresholds)
    logger.info(
        f"Pattern for {email} {week_id}: {pattern.primary_pattern.value} "
        f"({pattern.real_checkins_this_week} real, {lifetime} lifetime)"
    )
    return pattern
