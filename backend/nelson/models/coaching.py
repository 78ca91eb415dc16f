"""Weekly pattern and weekly summary records."""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import redis

from nelson.store.documents import doc_path, get_document, set_document


class PatternType(str, Enum):
    # Listed in detection priority order
    INSUFFICIENT_DATA = "insufficient_data"        # < 4 check-ins this week
    BUILDING_FOUNDATION = "building_foundation"    # < 10 lifetime check-ins
    GAP_DISRUPTION = "gap_disruption"              # unresolved gap this week
    COMMITMENT_MISALIGNED = "commitment_misaligned"  # exercise high, momentum flat
    RECOVERY_DEFICIT = "recovery_deficit"          # sleep + mindset low
    EFFORT_INCONSISTENT = "effort_inconsistent"    # exercise on, other behaviors low
    VARIANCE_HIGH = "variance_high"                # grades swing widely
    BUILDING_MOMENTUM = "building_momentum"        # momentum trending up
    MOMENTUM_PLATEAU = "momentum_plateau"          # steady, no movement


NON_COACHABLE_PATTERNS = frozenset({
    PatternType.INSUFFICIENT_DATA,
    PatternType.BUILDING_FOUNDATION,
})

PATTERN_EXPLANATIONS: dict[PatternType, str] = {
    PatternType.INSUFFICIENT_DATA: "Not enough check-ins this week to detect a pattern. Need at least 4.",
    PatternType.BUILDING_FOUNDATION: "Still in early days (< 10 total check-ins). Silence is acceptable while data builds.",
    PatternType.GAP_DISRUPTION: "Recent missed check-ins are affecting rhythm. Focus on getting back to consistency.",
    PatternType.COMMITMENT_MISALIGNED: "Exercise is strong but momentum is flat. Other behaviors need attention.",
    PatternType.RECOVERY_DEFICIT: "Sleep and/or mindset are consistently low. Recovery is the bottleneck.",
    PatternType.EFFORT_INCONSISTENT: "Exercise is on point but other behaviors are lagging. Effort is imbalanced.",
    PatternType.VARIANCE_HIGH: "Behavior ratings swing widely. Inconsistency is the issue, not total effort.",
    PatternType.BUILDING_MOMENTUM: "Momentum is trending upward. The current approach is working.",
    PatternType.MOMENTUM_PLATEAU: "Consistent check-ins but momentum isn't moving.",
}


class FocusType(str, Enum):
    PROTECT = "protect"
    HOLD = "hold"
    NARROW = "narrow"
    IGNORE = "ignore"


class SummaryStatus(str, Enum):
    GENERATED = "generated"
    SKIPPED = "skipped"
    REJECTED = "rejected"


@dataclass
class WeeklyPattern:
    primary_pattern: PatternType
    evidence_points: list[str]
    week_id: str
    date_range: dict            # {"start": YYYY-MM-DD, "end": YYYY-MM-DD}
    can_coach: bool
    days_analyzed: int
    real_checkins_this_week: int
    total_lifetime_checkins: int

    def to_dict(self) -> dict:
        return {
            "primaryPattern": self.primary_pattern.value,
            "evidencePoints": list(self.evidence_points),
            "weekId": self.week_id,
            "dateRange": dict(self.date_range),
            "canCoach": self.can_coach,
            "daysAnalyzed": self.days_analyzed,
            "realCheckInsThisWeek": self.real_checkins_this_week,
            "totalLifetimeCheckIns": self.total_lifetime_checkins,
        }


@dataclass
class WeeklySummaryRecord:
    week_id: str
    pattern_type: PatternType
    can_coach: bool
    status: SummaryStatus
    evidence_points: list[str]
    model_version: str
    days_analyzed: int
    real_checkins_this_week: int
    total_lifetime_checkins: int
    skip_reason: Optional[str] = None
    coaching: Optional[dict] = None
    rejection_reason: Optional[str] = None
    raw_output: Optional[str] = None
    generated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def for_pattern(cls, pattern: WeeklyPattern, status: SummaryStatus, model_version: str, **extra) -> WeeklySummaryRecord:
        return cls(
            week_id=pattern.week_id,
            pattern_type=pattern.primary_pattern,
            can_coach=pattern.can_coach,
            status=status,
            evidence_points=list(pattern.evidence_points),
            model_version=model_version,
            days_analyzed=pattern.days_analyzed,
            real_checkins_this_week=pattern.real_checkins_this_week,
            total_lifetime_checkins=pattern.total_lifetime_checkins,
            **extra,
        )

    def to_dict(self) -> dict:
        d = asdict(self)
        out = {
            "weekId": d["week_id"],
            "patternType": self.pattern_type.value,
            "canCoach": d["can_coach"],
            "skipReason": d["skip_reason"],
            "evidencePoints": d["evidence_points"],
            "modelVersion": d["model_version"],
            "status": self.status.value,
            "generatedAt": d["generated_at"],
            "daysAnalyzed": d["days_analyzed"],
            "realCheckInsThisWeek": d["real_checkins_this_week"],
            "totalLifetimeCheckIns": d["total_lifetime_checkins"],
        }
        if self.coaching is not None:
            out["coaching"] = self.coaching
        if self.rejection_reason is not None:
            out["rejectionReason"] = self.rejection_reason
        if self.raw_output is not None:
            out["rawOutput"] = self.raw_output
        return out

    def to_store(self, email: str, r: redis.Redis | None = None) -> None:
        set_document(summary_path(email, self.week_id), self.to_dict(), r=r)


def summary_path(email: str, week_id: str) -> str:
    return doc_path("users", email, "weeklySummaries", week_id)


def get_weekly_summary(email: str, week_id: str, r: redis.Redis | None = None) -> Optional[dict]:
    return get_document(summary_path(email, week_id), r)
