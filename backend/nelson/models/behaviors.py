"""Canonical behavior and rating tables for daily check-ins.

Both tables are permanent contract surfaces. Grade vectors are positional, so
BEHAVIORS is never resorted and new behaviors are never inserted in the middle.
Ratings are the source of truth; grades are always derived from them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from nelson.config.settings import DEFAULT_USER_WEIGHT

MAX_PROTEIN_WEIGHT = 240


@dataclass(frozen=True)
class Behavior:
    id: str
    title: str
    prompt: str
    tooltip: str
    icon: str = ""


@dataclass(frozen=True)
class Rating:
    value: str
    label: str
    grade: int
    description: str


RATINGS: tuple[Rating, ...] = (
    Rating("elite", "Elite", 100, "Rare performance"),
    Rating("solid", "Solid", 80, "Hit the standard"),
    Rating("not_great", "Not Great", 50, "Partial execution"),
    Rating("off", "Off", 0, "Missed"),
)

OFF_GRADE = 0

# Stored grades written before the nutrition rename
LEGACY_BEHAVIOR_ALIASES: Mapping[str, str] = {
    "nutrition_quality": "nutrition_pattern",
    "portion_control": "energy_balance",
}


def protein_range(user_weight: Optional[float] = None) -> tuple[int, int]:
    """Daily protein target in grams: 0.6-1.0 g per lb, weight capped at 240."""
    weight = min(user_weight or DEFAULT_USER_WEIGHT, MAX_PROTEIN_WEIGHT)
    return round(weight * 0.6), round(weight * 1.0)


def get_behaviors(user_weight: Optional[float] = None) -> tuple[Behavior, ...]:
    """Behavior table with the protein prompt personalized to body weight."""
    protein_min, protein_max = protein_range(user_weight)
    return (
        Behavior(
            id="nutrition_pattern",
            title="Nutrition Pattern",
            prompt="How was the structure and overall quality of your meals yesterday?",
            tooltip=(
                "Elite: Planned meals, whole foods, perfect execution. "
                "Solid: Intentional choices, mostly whole foods. "
                "Not Great: Random eating, processed foods. "
                "Off: Total chaos or missed meals."
            ),
        ),
        Behavior(
            id="energy_balance",
            title="Energy Balance",
            prompt="Did you undereat, eat as intended, overeat, or have an indulgent day?",
            tooltip=(
                "Elite: Perfect portions, aligned with your goals and hunger. "
                "Solid: Appropriate intake, slight variation okay. "
                "Not Great: Noticeably over or under ate. "
                "Off: Way off target in either direction."
            ),
        ),
        Behavior(
            id="protein",
            title="Protein",
            prompt=f"How did you do with protein yesterday? ({protein_min}-{protein_max}g)",
            tooltip=(
                "Elite: Hit target at every meal (breakfast, lunch, dinner). "
                "Solid: Hit daily target across all meals. "
                "Not Great: Got close but missed by 20-30g. "
                "Off: Way short of target or forgot completely."
            ),
        ),
        Behavior(
            id="hydration",
            title="Hydration",
            prompt="How was your hydration yesterday? (64-100oz)",
            tooltip=(
                "Elite: Exceeded target, urine clear/light yellow all day. "
                "Solid: Hit your daily target consistently. "
                "Not Great: Got close but fell short. "
                "Off: Barely drank water, dark urine."
            ),
        ),
        Behavior(
            id="sleep",
            title="Sleep",
            prompt="How was your sleep last night?",
            tooltip=(
                "Elite: 7-9 hours, woke refreshed, consistent schedule, no screens 1hr before bed. "
                "Solid: 7+ hours, decent quality, woke mostly rested. "
                "Not Great: Under 7 hours or poor quality. "
                "Off: Barely slept or terrible quality."
            ),
        ),
        Behavior(
            id="mindset",
            title="Mindset",
            prompt="How was your overall mindset yesterday?",
            tooltip=(
                "Elite: Clear, focused, positive, handled stress well. "
                "Solid: Steady and productive, normal ups and downs. "
                "Not Great: Foggy, distracted, or low energy. "
                "Off: Overwhelmed, anxious, or completely checked out."
            ),
        ),
        Behavior(
            id="movement",
            title="Movement",
            prompt="How was your movement yesterday?",
            tooltip=(
                "Elite: Completed your commitment PLUS bonus activity (walk, stretch, extra sets). "
                "Solid: Completed your full commitment. "
                "Not Great: Started but didn't finish, partial effort. "
                "Off: Skipped completely."
            ),
        ),
    )


BEHAVIORS: tuple[Behavior, ...] = get_behaviors()


def behavior_order() -> tuple[str, ...]:
    return tuple(b.id for b in BEHAVIORS)


def get_behavior(behavior_id: str) -> Optional[Behavior]:
    return next((b for b in BEHAVIORS if b.id == behavior_id), None)


def get_rating(value: str) -> Optional[Rating]:
    return next((r for r in RATINGS if r.value == value), None)


def get_rating_grade(rating: str) -> int:
    """Grade for a rating value. Unknown ratings grade as 0 instead of raising."""
    found = get_rating(rating)
    return found.grade if found else OFF_GRADE


def answers_to_grades(answers: Mapping[str, str]) -> list[int]:
    """One grade per behavior in canonical order; missing answers count as off."""
    return [get_rating_grade(answers.get(b.id) or "off") for b in BEHAVIORS]


def answers_to_behavior_grades(answers: Mapping[str, str]) -> list[dict]:
    """Named grade list as stored on momentum documents."""
    return [
        {"name": b.id, "grade": grade}
        for b, grade in zip(BEHAVIORS, answers_to_grades(answers))
    ]


def canonical_behavior_name(name: str) -> str:
    return LEGACY_BEHAVIOR_ALIASES.get(name, name)
