"""Weekly calibration: four strategic questions answered once per week.

Answers explain behavior, they never override it. They only influence the
following week's coaching, and low-confidence answer sets are ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import redis

from nelson.store.documents import doc_path, get_document, set_document
from nelson.utils.dates import previous_week_of

logger = logging.getLogger(__name__)


class ForceLevel(str, Enum):
    JUST_ENOUGH = "just_enough"
    STEADY_PUSH = "steady_push"
    DELIBERATE_SHOVE = "deliberate_shove"


class DragSource(str, Enum):
    TIME_LOGISTICS = "time_logistics"
    RECOVERY_ENERGY = "recovery_energy"
    MENTAL_STRESS = "mental_stress"
    NONE = "none"


class StructuralState(str, Enum):
    SOLID = "solid"
    STRESSED_HOLDING = "stressed_holding"
    WARNING_SIGNS = "warning_signs"
    SOMETHING_WRONG = "something_wrong"


class GoalAlignment(str, Enum):
    CLEAR_STEADY = "clear_steady"
    MOSTLY_LESS_URGENT = "mostly_less_urgent"
    NOT_REALLY = "not_really"
    NOT_SURE = "not_sure"


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


FORCE_LABELS = {
    ForceLevel.JUST_ENOUGH: "just enough to keep momentum alive",
    ForceLevel.STEADY_PUSH: "a steady, repeatable push",
    ForceLevel.DELIBERATE_SHOVE: "an intentional push beyond baseline",
}
DRAG_LABELS = {
    DragSource.TIME_LOGISTICS: "time and logistics",
    DragSource.RECOVERY_ENERGY: "recovery and energy",
    DragSource.MENTAL_STRESS: "mental load and stress",
    DragSource.NONE: "nothing significant",
}
STRUCTURE_LABELS = {
    StructuralState.SOLID: "solid",
    StructuralState.STRESSED_HOLDING: "stressed but holding",
    StructuralState.WARNING_SIGNS: "warning signs present",
    StructuralState.SOMETHING_WRONG: "something wrong",
}
GOAL_LABELS = {
    GoalAlignment.CLEAR_STEADY: "clear and steady",
    GoalAlignment.MOSTLY_LESS_URGENT: "mostly aligned but less urgent",
    GoalAlignment.NOT_REALLY: "not really aligned",
    GoalAlignment.NOT_SURE: "uncertain",
}


@dataclass
class WeeklyCalibration:
    week_id: str
    force_level: ForceLevel
    drag_source: DragSource
    structural_state: StructuralState
    goal_alignment: GoalAlignment
    interpretation_confidence: Confidence
    answered_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return {
            "weekId": self.week_id,
            "forceLevel": self.force_level.value,
            "dragSource": self.drag_source.value,
            "structuralState": self.structural_state.value,
            "goalAlignment": self.goal_alignment.value,
            "interpretationConfidence": self.interpretation_confidence.value,
            "answeredAt": self.answered_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> WeeklyCalibration:
        return cls(
            week_id=data["weekId"],
            force_level=ForceLevel(data["forceLevel"]),
            drag_source=DragSource(data["dragSource"]),
            structural_state=StructuralState(data["structuralState"]),
            goal_alignment=GoalAlignment(data["goalAlignment"]),
            interpretation_confidence=Confidence(data["interpretationConfidence"]),
            answered_at=data.get("answeredAt", ""),
        )


def derive_interpretation_confidence(
    force: ForceLevel,
    drag: DragSource,
    structure: StructuralState,
    goal: GoalAlignment,
) -> Confidence:
    """High when the answers tell a coherent story, low when they contradict."""
    # Overreaching
    if (
        force == ForceLevel.DELIBERATE_SHOVE
        and drag == DragSource.RECOVERY_ENERGY
        and structure in (StructuralState.WARNING_SIGNS, StructuralState.SOMETHING_WRONG)
    ):
        return Confidence.HIGH
    # Sustainable build
    if force == ForceLevel.STEADY_PUSH and drag == DragSource.NONE and structure == StructuralState.SOLID:
        return Confidence.HIGH
    # Clear constraint
    if drag != DragSource.NONE and structure in (StructuralState.STRESSED_HOLDING, StructuralState.WARNING_SIGNS):
        return Confidence.HIGH

    if (
        force == ForceLevel.JUST_ENOUGH
        and drag == DragSource.NONE
        and structure == StructuralState.SOLID
        and goal == GoalAlignment.NOT_SURE
    ):
        return Confidence.LOW
    if (
        force == ForceLevel.DELIBERATE_SHOVE
        and drag == DragSource.NONE
        and structure == StructuralState.SOLID
        and goal == GoalAlignment.NOT_REALLY
    ):
        return Confidence.LOW
    if goal in (GoalAlignment.NOT_SURE, GoalAlignment.NOT_REALLY):
        return Confidence.LOW

    return Confidence.MEDIUM


# ── Storage ──────────────────────────────────────────────────────────────

def calibration_path(email: str, week_id: str) -> str:
    return doc_path("users", email, "weeklyCalibrations", week_id)


def save_weekly_calibration(
    email: str,
    week_id: str,
    force_level: str,
    drag_source: str,
    structural_state: str,
    goal_alignment: str,
    r: redis.Redis | None = None,
) -> WeeklyCalibration:
    """Validate, derive confidence and persist. Raises ValueError on unknown answers."""
    force = ForceLevel(force_level)
    drag = DragSource(drag_source)
    structure = StructuralState(structural_state)
    goal = GoalAlignment(goal_alignment)

    calibration = WeeklyCalibration(
        week_id=week_id,
        force_level=force,
        drag_source=drag,
        structural_state=structure,
        goal_alignment=goal,
        interpretation_confidence=derive_interpretation_confidence(force, drag, structure, goal),
    )
    set_document(calibration_path(email, week_id), calibration.to_dict(), r=r)
    logger.info(f"Calibration saved for {week_id}, confidence: {calibration.interpretation_confidence.value}")
    return calibration


def get_weekly_calibration(email: str, week_id: str, r: redis.Redis | None = None) -> Optional[WeeklyCalibration]:
    data = get_document(calibration_path(email, week_id), r)
    if not data:
        return None
    return WeeklyCalibration.from_dict(data)


def get_previous_week_calibration(
    email: str,
    current_week_id: str,
    r: redis.Redis | None = None,
) -> Optional[WeeklyCalibration]:
    return get_weekly_calibration(email, previous_week_of(current_week_id), r)


# ── Coaching inputs ──────────────────────────────────────────────────────

@dataclass
class CalibrationModifiers:
    effort_level: str           # minimal | moderate | high
    primary_limiter: Optional[str]  # time | recovery | mental
    risk_posture: str           # conservative | neutral | aggressive
    goal_valid: bool


def derive_calibration_modifiers(calibration: Optional[WeeklyCalibration]) -> Optional[CalibrationModifiers]:
    if calibration is None or calibration.interpretation_confidence == Confidence.LOW:
        return None

    effort = {
        ForceLevel.JUST_ENOUGH: "minimal",
        ForceLevel.STEADY_PUSH: "moderate",
        ForceLevel.DELIBERATE_SHOVE: "high",
    }[calibration.force_level]

    limiter = {
        DragSource.TIME_LOGISTICS: "time",
        DragSource.RECOVERY_ENERGY: "recovery",
        DragSource.MENTAL_STRESS: "mental",
    }.get(calibration.drag_source)

    risk = "neutral"
    if calibration.structural_state in (StructuralState.WARNING_SIGNS, StructuralState.SOMETHING_WRONG):
        risk = "conservative"
    elif calibration.structural_state == StructuralState.SOLID and calibration.drag_source == DragSource.NONE:
        risk = "aggressive"

    return CalibrationModifiers(
        effort_level=effort,
        primary_limiter=limiter,
        risk_posture=risk,
        goal_valid=calibration.goal_alignment in (GoalAlignment.CLEAR_STEADY, GoalAlignment.MOSTLY_LESS_URGENT),
    )


def allowed_focus_types(calibration: Optional[WeeklyCalibration]) -> list[str]:
    """Warning signs last week restrict coaching to protection only."""
    if calibration is not None and calibration.structural_state == StructuralState.WARNING_SIGNS:
        return ["protect"]
    return ["protect", "hold", "narrow", "ignore"]


def format_calibration_for_prompt(calibration: Optional[WeeklyCalibration]) -> str:
    if calibration is None:
        return "No calibration data from previous week."
    if calibration.interpretation_confidence == Confidence.LOW:
        return "Previous week calibration available but low confidence - use cautiously."

    lines = [
        f"## Last Week's Calibration ({calibration.week_id})",
        f"Confidence: {calibration.interpretation_confidence.value}",
        "",
        f"Force: Exercise felt like {FORCE_LABELS[calibration.force_level]}",
        f"Drag: Primary resistance was {DRAG_LABELS[calibration.drag_source]}",
        f"Structure: Body state was {STRUCTURE_LABELS[calibration.structural_state]}",
        f"Direction: Goal alignment is {GOAL_LABELS[calibration.goal_alignment]}",
        "",
        "USAGE RULES:",
        "- Use calibration to explain behavioral patterns, not override them",
        "- Only quote ONE calibration answer per coaching section (max)",
        "- If calibration confirms what behavior already shows, stay silent",
        "- Mismatches between force/drag/structure are HIGH SIGNAL",
    ]
    return "\n".join(lines)
