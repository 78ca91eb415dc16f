"""Daily momentum document (one per user per date).

Stored at users/{email}/momentum/{YYYY-MM-DD}. The same collection also holds
non-date documents such as ``currentFocus``; those are never read as check-ins.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional

import redis

from nelson.models.behaviors import canonical_behavior_name
from nelson.store.documents import doc_path, get_document, set_document


class CheckinType:
    REAL = "real"
    GAP_FILL = "gap_fill"
    STREAK_SAVER = "streak_saver"


class MomentumTrend:
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


def momentum_path(email: str, doc_id: str) -> str:
    return doc_path("users", email, "momentum", doc_id)


@dataclass
class CheckIn:
    date: str                                   # YYYY-MM-DD
    checkin_type: str = CheckinType.REAL
    behavior_ratings: dict = field(default_factory=dict)
    behavior_grades: list = field(default_factory=list)  # [{"name", "grade"}] canonical order
    daily_score: int = 0
    raw_momentum_score: int = 0
    momentum_score: int = 0
    momentum_trend: str = MomentumTrend.STABLE
    momentum_delta: int = 0
    momentum_message: str = ""
    total_real_checkins: int = 0
    current_streak: int = 0
    lifetime_streak: int = 0
    exercise_completed: bool = False
    exercise_target_minutes: int = 0
    primary: dict = field(default_factory=dict)  # {"habitKey", "done"}
    gap_resolved: Optional[bool] = None
    note: str = ""
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # Stored field names follow the app's camelCase document schema
    _FIELD_NAMES = {
        "checkin_type": "checkinType",
        "behavior_ratings": "behaviorRatings",
        "behavior_grades": "behaviorGrades",
        "daily_score": "dailyScore",
        "raw_momentum_score": "rawMomentumScore",
        "momentum_score": "momentumScore",
        "momentum_trend": "momentumTrend",
        "momentum_delta": "momentumDelta",
        "momentum_message": "momentumMessage",
        "total_real_checkins": "totalRealCheckIns",
        "current_streak": "currentStreak",
        "lifetime_streak": "lifetimeStreak",
        "exercise_completed": "exerciseCompleted",
        "exercise_target_minutes": "exerciseTargetMinutes",
        "gap_resolved": "gapResolved",
        "created_at": "createdAt",
    }

    @property
    def is_real(self) -> bool:
        return self.checkin_type == CheckinType.REAL

    def grade_for(self, behavior_id: str) -> int:
        """Grade recorded for a behavior, 0 when absent."""
        for bg in self.behavior_grades:
            if canonical_behavior_name(bg.get("name", "")) == behavior_id:
                return bg.get("grade") or 0
        return 0

    def to_dict(self) -> dict:
        d = asdict(self)
        out = {self._FIELD_NAMES.get(k, k): v for k, v in d.items()}
        if self.gap_resolved is None:
            out.pop("gapResolved")
        return out

    @classmethod
    def from_dict(cls, data: dict) -> CheckIn:
        reverse = {v: k for k, v in cls._FIELD_NAMES.items()}
        kwargs = {}
        for key, value in data.items():
            name = reverse.get(key, key)
            if name in cls.__dataclass_fields__ and not name.startswith("_"):
                kwargs[name] = value
        # Missing type on old documents means a real check-in
        kwargs["checkin_type"] = kwargs.get("checkin_type") or CheckinType.REAL
        for int_field in ("daily_score", "momentum_score", "raw_momentum_score", "total_real_checkins"):
            if kwargs.get(int_field) is None:
                kwargs.pop(int_field, None)
        return cls(**kwargs)

    def to_store(self, email: str, r: redis.Redis | None = None) -> None:
        set_document(momentum_path(email, self.date), self.to_dict(), r=r)

    @classmethod
    def from_store(cls, email: str, date: str, r: redis.Redis | None = None) -> Optional[CheckIn]:
        data = get_document(momentum_path(email, date), r)
        if data is None:
            return None
        data.setdefault("date", date)
        return cls.from_dict(data)
