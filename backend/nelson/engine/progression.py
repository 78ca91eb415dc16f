"""Weekly progression type and week-over-week behavior changes.

Both feed the coaching prompt. The progression type is chosen in priority
order: simplify (load is too high), then stabilize (something just changed),
then advance.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from statistics import mean
from typing import Optional

from nelson.models.behaviors import OFF_GRADE, canonical_behavior_name
from nelson.models.checkin import CheckIn

# Mindset is tracked but never drives progression
PROGRESSION_BEHAVIORS = ("nutrition_pattern", "energy_balance", "protein", "hydration", "sleep", "movement")
FOUNDATION_BEHAVIORS = ("sleep", "nutrition_pattern", "hydration")
JUMP_BEHAVIORS = PROGRESSION_BEHAVIORS + ("mindset",)

SOLID_GRADE = 80
FOUNDATION_FLOOR = 50
MAX_OFF_RATINGS = 3
MOMENTUM_DECLINE = 15
EXERCISE_ADVANCE_DAYS = 5
EXERCISE_DROP_BELOW = 3
FOUNDATION_EXERCISE_DAYS = 4
FOUNDATION_SOLID_COUNT = 5
BEHAVIOR_JUMP = 15
CHANGE_FLAT_WITHIN = 5

DEFAULT_REASON = "Maintain forward momentum with current approach"


class ProgressionType(str, Enum):
    ADVANCE = "advance"
    STABILIZE = "stabilize"
    SIMPLIFY = "simplify"


@dataclass
class ProgressionResult:
    type: ProgressionType
    reason: str
    triggers: list[str] = field(default_factory=list)
    exercise_days: int = 0
    previous_exercise_days: int = 0
    momentum_change: int = 0
    off_ratings: int = 0


@dataclass
class BehaviorChange:
    behavior: str
    current_avg: int
    previous_avg: int

    @property
    def delta(self) -> int:
        return self.current_avg - self.previous_avg

    @property
    def direction(self) -> str:
        if self.delta > CHANGE_FLAT_WITHIN:
            return "up"
        if self.delta < -CHANGE_FLAT_WITHIN:
            return "down"
        return "flat"

    @property
    def label(self) -> str:
        return self.behavior.replace("_", " ")


# ── Week metrics ─────────────────────────────────────────────────────────

def _grades(days: list[CheckIn], behavior_id: str) -> list[int]:
    """Recorded grades for one behavior; days without it are left out."""
    return [
        bg.get("grade") or 0
        for d in days for bg in d.behavior_grades
        if canonical_behavior_name(bg.get("name", "")) == behavior_id
    ]


def behavior_average(days: list[CheckIn], behavior_id: str) -> float:
    grades = _grades(days, behavior_id)
    return mean(grades) if grades else 0.0


def has_off_rating(days: list[CheckIn], behavior_id: str) -> bool:
    return OFF_GRADE in _grades(days, behavior_id)


def count_off_ratings(days: list[CheckIn]) -> int:
    return sum(1 for d in days for bg in d.behavior_grades if (bg.get("grade") or 0) == OFF_GRADE)


def exercise_days(days: list[CheckIn]) -> int:
    return sum(1 for d in days if d.exercise_completed)


def momentum_change(current: list[CheckIn], previous: list[CheckIn]) -> int:
    """Last momentum of this week minus last momentum of the week before."""
    now = current[-1].momentum_score if current else 0
    before = previous[-1].momentum_score if previous else 0
    return now - before


# ── Progression type ─────────────────────────────────────────────────────

def _simplify_triggers(current: list[CheckIn], previous: list[CheckIn]) -> list[str]:
    reasons = []
    off = count_off_ratings(current)
    if off >= MAX_OFF_RATINGS:
        reasons.append(f"{off} Off ratings this week (threshold: {MAX_OFF_RATINGS})")

    change = momentum_change(current, previous)
    if change <= -MOMENTUM_DECLINE:
        reasons.append(f"Momentum declined {abs(change)} points (threshold: {MOMENTUM_DECLINE})")

    for behavior_id in FOUNDATION_BEHAVIORS:
        avg = behavior_average(current, behavior_id)
        if avg < FOUNDATION_FLOOR:
            reasons.append(f"{behavior_id} averaged {round(avg)}% (floor: {FOUNDATION_FLOOR}%)")

    now, before = exercise_days(current), exercise_days(previous)
    if before >= EXERCISE_ADVANCE_DAYS and now < EXERCISE_DROP_BELOW:
        reasons.append(f"Exercise dropped from {before} to {now} days")
    return reasons


def _stabilize_triggers(current: list[CheckIn], previous: list[CheckIn]) -> list[str]:
    reasons = []
    now, before = exercise_days(current), exercise_days(previous)
    # A sharp rise in exercise days usually follows a level-up
    if now >= before + 2 and now >= EXERCISE_ADVANCE_DAYS:
        reasons.append(f"Exercise increased from {before} to {now} days")

    for behavior_id in JUMP_BEHAVIORS:
        # A behavior with no grades last week has nothing to jump from
        if not _grades(previous, behavior_id):
            continue
        cur = behavior_average(current, behavior_id)
        prev = behavior_average(previous, behavior_id)
        if cur - prev >= BEHAVIOR_JUMP:
            reasons.append(f"{behavior_id} jumped {round(cur - prev)} points ({round(prev)}% → {round(cur)}%)")
    return reasons


def _advance_triggers(current: list[CheckIn], previous: list[CheckIn]) -> list[str]:
    reasons = []
    now, before = exercise_days(current), exercise_days(previous)
    if now >= EXERCISE_ADVANCE_DAYS and before >= EXERCISE_ADVANCE_DAYS:
        reasons.append(f"Exercised {now} days this week, {before} days last week")

    both_weeks = previous + current
    averages = {b: behavior_average(current, b) for b in PROGRESSION_BEHAVIORS}
    for behavior_id, avg in averages.items():
        if avg >= SOLID_GRADE and not has_off_rating(both_weeks, behavior_id):
            reasons.append(f"{behavior_id} averaged {round(avg)}% with no Off ratings")

    solid = [b for b, avg in averages.items() if avg >= SOLID_GRADE]
    if (
        len(solid) >= FOUNDATION_SOLID_COUNT
        and now >= FOUNDATION_EXERCISE_DAYS
        and not any(has_off_rating(current, b) for b in PROGRESSION_BEHAVIORS)
    ):
        reasons.append(f"{len(solid)} behaviors averaging Solid+ with {now} exercise days")
    return reasons


def derive_progression_type(current: list[CheckIn], previous: list[CheckIn]) -> ProgressionResult:
    """Pick advance, stabilize or simplify from two weeks of real check-ins (oldest first)."""
    base = dict(
        exercise_days=exercise_days(current),
        previous_exercise_days=exercise_days(previous),
        momentum_change=momentum_change(current, previous),
        off_ratings=count_off_ratings(current),
    )
    for progression, triggers in (
        (ProgressionType.SIMPLIFY, _simplify_triggers),
        (ProgressionType.STABILIZE, _stabilize_triggers),
        (ProgressionType.ADVANCE, _advance_triggers),
    ):
        reasons = triggers(current, previous)
        if reasons:
            return ProgressionResult(progression, reasons[0], reasons, **base)
    return ProgressionResult(ProgressionType.ADVANCE, DEFAULT_REASON, [], **base)


# ── Week-over-week ───────────────────────────────────────────────────────

def compare_week_to_week(current: list[CheckIn], previous: list[CheckIn]) -> list[BehaviorChange]:
    """Rounded per-behavior averages for both weeks, in progression order."""
    return [
        BehaviorChange(
            behavior=b,
            current_avg=round(behavior_average(current, b)),
            previous_avg=round(behavior_average(previous, b)),
        )
        for b in PROGRESSION_BEHAVIORS
    ]


def largest_drop(changes: list[BehaviorChange]) -> Optional[BehaviorChange]:
    drops = [c for c in changes if c.direction == "down"]
    return min(drops, key=lambda c: c.delta) if drops else None


_ARROWS = {"up": "↑", "down": "↓", "flat": "→"}


def format_changes_for_prompt(changes: list[BehaviorChange]) -> str:
    if not changes:
        return "No previous week to compare."
    lines = [
        f"- {c.label}: {c.previous_avg} → {c.current_avg} ({'+' if c.delta > 0 else ''}{c.delta}) {_ARROWS[c.direction]}"
        for c in changes
    ]
    drop = largest_drop(changes)
    if drop:
        lines.append(f"LARGEST NEGATIVE CHANGE: {drop.label} (dropped {abs(drop.delta)} points)")
    else:
        lines.append("LARGEST NEGATIVE CHANGE: none detected")
    return "\n".join(lines)


def format_progression_for_prompt(result: ProgressionResult) -> str:
    return f"PROGRESSION TYPE: {result.type.value.upper()}\nReason: {result.reason}"
