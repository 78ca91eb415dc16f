"""Habits and the user's current focus.

Foundation habits are binary identity work with no levels. Growth habits
progress along a ladder of minute targets. A habit is a small tagged value;
``to_key`` / ``from_key`` are the only places that touch the stored string.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional, Union

import redis

from nelson.config.settings import DEFAULT_EXERCISE_TARGET_MINUTES
from nelson.store.documents import doc_path, get_document, set_document, update_document

FOUNDATION_HABITS: tuple[str, ...] = (
    "protein_daily",
    "hydration_100oz",
    "sleep_7hr",
    "no_late_eating",
)

GROWTH_LADDERS: dict[str, tuple[int, ...]] = {
    "walk": (10, 12, 15, 20, 25, 30),
}

GROWTH_KEY_SUFFIX = "min"


@dataclass(frozen=True)
class Foundation:
    name: str

    def to_key(self) -> str:
        return self.name


@dataclass(frozen=True)
class Growth:
    kind: str
    level: int  # minutes

    def to_key(self) -> str:
        return f"{self.kind}_{self.level}{GROWTH_KEY_SUFFIX}"

    @property
    def ladder(self) -> tuple[int, ...]:
        return GROWTH_LADDERS[self.kind]

    @property
    def level_index(self) -> int:
        """0-based position on the ladder; off-ladder levels count as 0."""
        return self.ladder.index(self.level) if self.level in self.ladder else 0

    @property
    def is_max_level(self) -> bool:
        return self.level == self.ladder[-1]

    def next_level(self) -> Optional[Growth]:
        if self.level not in self.ladder or self.is_max_level:
            return None
        return Growth(self.kind, self.ladder[self.ladder.index(self.level) + 1])

    def level_description(self) -> str:
        return f"Level {self.level_index + 1} of {len(self.ladder)}"


Habit = Union[Foundation, Growth]


def from_key(habit_key: str) -> Habit:
    """Parse a stored habit key. Unknown keys are treated as foundation habits."""
    kind, sep, rest = habit_key.partition("_")
    if sep and kind in GROWTH_LADDERS and rest.endswith(GROWTH_KEY_SUFFIX):
        minutes = rest[: -len(GROWTH_KEY_SUFFIX)]
        if minutes.isdigit():
            return Growth(kind, int(minutes))
    return Foundation(habit_key)


# ── Current focus document ───────────────────────────────────────────────

def focus_path(email: str) -> str:
    return doc_path("users", email, "momentum", "currentFocus")


@dataclass
class CurrentFocus:
    habit_key: str
    habit: str = ""
    target: int = DEFAULT_EXERCISE_TARGET_MINUTES
    last_proven_target: Optional[int] = None
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def parsed(self) -> Habit:
        return from_key(self.habit_key)

    def to_dict(self) -> dict:
        d = asdict(self)
        out = {
            "habitKey": d["habit_key"],
            "habit": d["habit"],
            "target": d["target"],
            "startedAt": d["started_at"],
        }
        if self.last_proven_target is not None:
            out["lastProvenTarget"] = self.last_proven_target
        return out

    @classmethod
    def from_dict(cls, data: dict) -> CurrentFocus:
        return cls(
            habit_key=data.get("habitKey", ""),
            habit=data.get("habit", ""),
            target=data.get("target") or DEFAULT_EXERCISE_TARGET_MINUTES,
            last_proven_target=data.get("lastProvenTarget"),
            started_at=data.get("startedAt") or datetime.now(timezone.utc).isoformat(),
        )

    def to_store(self, email: str, r: redis.Redis | None = None) -> None:
        set_document(focus_path(email), self.to_dict(), r=r)

    @classmethod
    def from_store(cls, email: str, r: redis.Redis | None = None) -> Optional[CurrentFocus]:
        data = get_document(focus_path(email), r)
        return cls.from_dict(data) if data else None


def set_commitment_target(
    email: str,
    new_target: int,
    r: redis.Redis | None = None,
) -> CurrentFocus:
    """Commit to a new minute target.

    Stepping up records the old target as the last proven level. Stepping down
    leaves the last proven level alone.
    """
    focus = CurrentFocus.from_store(email, r)
    if focus is None:
        raise KeyError(f"No current focus for {email}")
    if new_target > focus.target:
        focus.last_proven_target = focus.target
    elif focus.last_proven_target is None:
        focus.last_proven_target = focus.target
    habit = focus.parsed
    if isinstance(habit, Growth):
        focus.habit_key = Growth(habit.kind, new_target).to_key()
    focus.target = new_target
    update_document(focus_path(email), {
        "habitKey": focus.habit_key,
        "target": focus.target,
        "lastProvenTarget": focus.last_proven_target,
    }, r=r)
    return focus
