"""Shared test fixtures for the Nelson backend test suite."""

from datetime import date, timedelta

import fakeredis
import pytest

from nelson.models.behaviors import answers_to_behavior_grades, behavior_order, get_rating_grade
from nelson.models.checkin import CheckIn, CheckinType
from nelson.models.habit import CurrentFocus
from nelson.store.documents import doc_path, set_document

EMAIL = "sam@example.com"

# ISO week 2026-W07 runs Monday 2026-02-09 .. Sunday 2026-02-15
WEEK_ID = "2026-W07"
WEEK_MONDAY = date(2026, 2, 9)


# ── Redis ────────────────────────────────────────────────────────────────

@pytest.fixture
def r():
    """Fresh fakeredis instance per test (decode_responses=True like production)."""
    return fakeredis.FakeRedis(decode_responses=True)


# ── Check-in Factories ───────────────────────────────────────────────────

def all_ratings(rating: str, **overrides) -> dict:
    """Answers with every behavior set to ``rating``, then overridden per behavior."""
    answers = {b: rating for b in behavior_order()}
    answers.update(overrides)
    return answers


@pytest.fixture
def make_day(r):
    """Factory fixture that writes a momentum document and returns it.

    Usage:
        make_day("2026-02-09", rating="solid", momentum=70, total=12)
        make_day("2026-02-10", sleep="off", mindset="off")
    """

    def _factory(
        day: str,
        rating: str = "solid",
        momentum: int = 70,
        total: int = 12,
        exercise: bool = False,
        checkin_type: str = CheckinType.REAL,
        gap_resolved=None,
        note: str = "",
        email: str = EMAIL,
        **behavior_overrides,
    ) -> CheckIn:
        answers = all_ratings(rating, **behavior_overrides)
        grades = answers_to_behavior_grades(answers)
        checkin = CheckIn(
            date=day,
            checkin_type=checkin_type,
            behavior_ratings=answers,
            behavior_grades=grades,
            daily_score=round(sum(get_rating_grade(v) for v in answers.values()) / len(answers)),
            momentum_score=momentum,
            raw_momentum_score=momentum,
            total_real_checkins=total if checkin_type == CheckinType.REAL else 0,
            exercise_completed=exercise,
            gap_resolved=gap_resolved,
            note=note,
        )
        checkin.to_store(email, r)
        set_document(doc_path("users", email), {"name": "Sam"}, merge=True, r=r)
        return checkin

    return _factory


@pytest.fixture
def seed_week(make_day):
    """Write ``count`` consecutive days starting on the week's Monday.

    Extra keyword arguments are passed to every ``make_day`` call; ``total``
    increments per day starting from ``first_total``.
    """

    def _seed(count: int = 7, first_total: int = 20, monday: date = WEEK_MONDAY, **kwargs) -> list[CheckIn]:
        days = []
        for i in range(count):
            day = (monday + timedelta(days=i)).isoformat()
            days.append(make_day(day, total=first_total + i, **kwargs))
        return days

    return _seed


@pytest.fixture
def focus(r):
    """A walking focus at 10 minutes."""
    f = CurrentFocus(habit_key="walk_10min", habit="Walk 10 minutes", target=10)
    f.to_store(EMAIL, r)
    return f
