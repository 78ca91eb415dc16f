"""Integration tests for FastAPI server endpoints.

Uses httpx.AsyncClient with ASGITransport to test the REST API
without starting a real server. Redis is patched to use fakeredis and the
model and cron generators are replaced with in-process fakes.
"""

import json
from unittest.mock import patch

import pytest
import redis
from httpx import AsyncClient, ASGITransport

from nelson.config import settings
from nelson.engine.checkins import submit_checkin
from nelson.models.calibration import get_weekly_calibration
from nelson.models.checkin import CheckIn, CheckinType
from nelson.models.coaching import get_weekly_summary
from nelson.models.habit import CurrentFocus
from nelson.services.habit_events import HabitEventType, log_habit_event
from nelson.utils.dates import get_previous_week_id, offset_date_key, today, week_monday

from conftest import EMAIL, WEEK_ID, all_ratings

COACHING = {
    "pattern": "You checked in 6 of 7 days and momentum held at 70%.",
    "tension": "Nutrition held steady while sleep slipped midweek.",
    "whyThisMatters": "Sleep sets the ceiling on recovery.",
    "progression": {"text": "Lights out by 10:30 on weeknights.", "type": "hold"},
}


@pytest.fixture
def patched_app(r):
    """Import and patch the FastAPI app to use fakeredis everywhere."""
    with (
        patch("nelson.server._get_redis", return_value=r),
        patch("nelson.store.documents._get_redis", return_value=r),
    ):
        from nelson.server import app
        yield app


@pytest.fixture
async def client(patched_app):
    transport = ASGITransport(app=patched_app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def _model_returning(*outputs):
    queue = list(outputs)

    async def complete(system_prompt, user_prompt):
        out = queue.pop(0) if len(queue) > 1 else queue[0]
        return out if isinstance(out, str) else json.dumps(out)

    return complete


# ═══════════════════════════════════════════════════════════════════════════
# Health Check
# ═══════════════════════════════════════════════════════════════════════════


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["redis"] is True
        assert data["weekId"].count("-W") == 1


# ═══════════════════════════════════════════════════════════════════════════
# Check-ins
# ═══════════════════════════════════════════════════════════════════════════


class TestCheckinEndpoints:
    @pytest.mark.asyncio
    async def test_submit_checkin(self, client):
        resp = await client.post("/api/checkin", json={
            "email": EMAIL,
            "date": "2026-02-09",
            "answers": all_ratings("solid"),
        })
        assert resp.status_code == 200
        checkin = resp.json()["checkin"]
        assert checkin["dailyScore"] == 80
        assert checkin["totalRealCheckIns"] == 1

    @pytest.mark.asyncio
    async def test_duplicate_checkin_is_400(self, client):
        body = {"email": EMAIL, "date": "2026-02-09", "answers": all_ratings("solid")}
        await client.post("/api/checkin", json=body)
        resp = await client.post("/api/checkin", json=body)
        assert resp.status_code == 400
        assert "error" in resp.json()

    @pytest.mark.asyncio
    async def test_session(self, client):
        resp = await client.post("/api/sessions", json={"email": EMAIL, "date": "2026-02-09", "durationMin": 12})
        assert resp.status_code == 200
        assert resp.json()["success"] is True


# ═══════════════════════════════════════════════════════════════════════════
# Weekly pattern and coaching
# ═══════════════════════════════════════════════════════════════════════════


class TestWeeklyEndpoints:
    @pytest.mark.asyncio
    async def test_weekly_pattern(self, client, seed_week):
        seed_week(6)
        resp = await client.get("/api/weekly-pattern", params={"email": EMAIL, "weekId": WEEK_ID})
        assert resp.status_code == 200
        data = resp.json()
        assert data["primaryPattern"] == "momentum_plateau"
        assert data["canCoach"] is True

    @pytest.mark.asyncio
    async def test_weekly_pattern_bad_week(self, client):
        resp = await client.get("/api/weekly-pattern", params={"email": EMAIL, "weekId": "2026-07"})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_generate_requires_fields(self, client):
        resp = await client.post("/api/generate-weekly-coaching", json={"email": EMAIL})
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Missing email or weekId"}

    @pytest.mark.asyncio
    async def test_generate_success(self, client, seed_week, r, monkeypatch):
        seed_week(6)
        monkeypatch.setattr("nelson.server.coaching_complete", _model_returning(COACHING))
        resp = await client.post("/api/generate-weekly-coaching", json={"email": EMAIL, "weekId": WEEK_ID})
        assert resp.status_code == 200
        summary = resp.json()["summary"]
        assert summary["status"] == "generated"
        assert summary["coaching"]["progression"]["type"] == "hold"
        assert get_weekly_summary(EMAIL, WEEK_ID, r)["status"] == "generated"

    @pytest.mark.asyncio
    async def test_generate_rejected_is_422(self, client, seed_week, r, monkeypatch):
        seed_week(6)
        monkeypatch.setattr("nelson.server.coaching_complete", _model_returning("no json here"))
        resp = await client.post("/api/generate-weekly-coaching", json={"email": EMAIL, "weekId": WEEK_ID})
        assert resp.status_code == 422
        data = resp.json()
        assert data["success"] is False
        assert data["error"] == "Validation failed after retry"
        assert "json_parsing" in data["rejectionReason"]
        assert get_weekly_summary(EMAIL, WEEK_ID, r)["status"] == "rejected"

    @pytest.mark.asyncio
    async def test_generate_skipped_week(self, client, seed_week):
        seed_week(2)
        resp = await client.post("/api/generate-weekly-coaching", json={"email": EMAIL, "weekId": WEEK_ID})
        assert resp.status_code == 200
        assert resp.json()["summary"]["status"] == "skipped"


class TestCalibrationEndpoint:
    ANSWERS = {
        "forceLevel": "steady_push",
        "dragSource": "none",
        "structuralState": "solid",
        "goalAlignment": "clear_steady",
    }

    @pytest.mark.asyncio
    async def test_save(self, client, r):
        resp = await client.post("/api/save-weekly-calibration", json={
            "email": EMAIL, "weekId": WEEK_ID, "answers": self.ANSWERS,
        })
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert get_weekly_calibration(EMAIL, WEEK_ID, r).interpretation_confidence.value == "high"

    @pytest.mark.asyncio
    async def test_missing_fields(self, client):
        resp = await client.post("/api/save-weekly-calibration", json={"email": EMAIL, "answers": self.ANSWERS})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Missing required fields"

    @pytest.mark.asyncio
    async def test_incomplete_answers(self, client):
        answers = {**self.ANSWERS, "goalAlignment": None}
        resp = await client.post("/api/save-weekly-calibration", json={
            "email": EMAIL, "weekId": WEEK_ID, "answers": answers,
        })
        assert resp.status_code == 400
        assert resp.json()["error"] == "Incomplete answers"

    @pytest.mark.asyncio
    async def test_unknown_answer_is_400(self, client, r):
        answers = {**self.ANSWERS, "forceLevel": "maximum"}
        resp = await client.post("/api/save-weekly-calibration", json={
            "email": EMAIL, "weekId": WEEK_ID, "answers": answers,
        })
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Invalid answers")
        assert get_weekly_calibration(EMAIL, WEEK_ID, r) is None

    @pytest.mark.asyncio
    async def test_redis_failure_is_500(self, client, monkeypatch):
        def broken(*args, **kwargs):
            raise redis.ConnectionError("down")

        monkeypatch.setattr("nelson.server.save_weekly_calibration", broken)
        resp = await client.post("/api/save-weekly-calibration", json={
            "email": EMAIL, "weekId": WEEK_ID, "answers": self.ANSWERS,
        })
        assert resp.status_code == 500
        assert resp.json()["error"] == "Failed to save calibration"


# ═══════════════════════════════════════════════════════════════════════════
# Level-up and habit events
# ═══════════════════════════════════════════════════════════════════════════


class TestLevelUpEndpoints:
    @pytest.mark.asyncio
    async def test_options(self, client):
        resp = await client.post("/api/level-up/options", json={
            "currentTarget": 8, "lastProvenTarget": 8, "direction": "increase",
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["anchor"] == 10
        assert data["initial"] == 10
        assert all(v > 8 for v in data["available"])

    @pytest.mark.asyncio
    async def test_commit_without_focus_is_404(self, client):
        resp = await client.post("/api/level-up/commit", json={"email": EMAIL, "target": 12})
        assert resp.status_code == 404

    @staticmethod
    def _checkin_week(r, exercise_days: int = 7):
        """Seven daily check-ins ending today; the last ``exercise_days`` hit the habit."""
        end = today().isoformat()
        for back in range(6, -1, -1):
            submit_checkin(
                EMAIL, offset_date_key(end, -back), all_ratings("solid"),
                exercise_declared=back < exercise_days, r=r,
            )

    @pytest.mark.asyncio
    async def test_eligibility(self, client, focus, r):
        self._checkin_week(r)
        resp = await client.get("/api/level-up/eligibility", params={"email": EMAIL})
        assert resp.status_code == 200
        assert resp.json() == {"isEligible": True, "reason": None, "daysHit": 7}

    @pytest.mark.asyncio
    async def test_eligibility_without_focus(self, client):
        resp = await client.get("/api/level-up/eligibility", params={"email": EMAIL})
        assert resp.json()["reason"] == "no_focus"

    @pytest.mark.asyncio
    async def test_commit_logs_level_up(self, client, focus, r):
        self._checkin_week(r)
        resp = await client.post("/api/level-up/commit", json={"email": EMAIL, "target": 12})
        assert resp.status_code == 200
        assert resp.json()["focus"]["target"] == 12
        assert CurrentFocus.from_store(EMAIL, r).last_proven_target == 10

        events = (await client.get("/api/habit-events", params={"email": EMAIL})).json()["events"]
        assert len(events) == 1
        assert events[0]["fromLevel"] == 10
        assert events[0]["description"] == "Leveled up to 12 min walk"

    @pytest.mark.asyncio
    async def test_commit_with_too_few_hits_is_409(self, client, focus, r):
        self._checkin_week(r, exercise_days=4)
        resp = await client.post("/api/level-up/commit", json={"email": EMAIL, "target": 12})
        assert resp.status_code == 409
        assert resp.json()["error"] == "Not eligible to level up"
        assert resp.json()["reason"] == "insufficient_hits"
        assert resp.json()["daysHit"] == 4
        assert CurrentFocus.from_store(EMAIL, r).target == 10

    @pytest.mark.asyncio
    async def test_commit_during_cooldown_is_409(self, client, focus, r):
        self._checkin_week(r)
        log_habit_event(
            EMAIL, HabitEventType.LEVEL_UP, offset_date_key(today().isoformat(), -2), r=r,
            habitKey="walk_10min", fromLevel=8, toLevel=10,
        )
        resp = await client.post("/api/level-up/commit", json={"email": EMAIL, "target": 12})
        assert resp.status_code == 409
        assert resp.json()["reason"] == "cooldown"

    @pytest.mark.asyncio
    async def test_stepping_down_logs_nothing(self, client, focus):
        resp = await client.post("/api/level-up/commit", json={"email": EMAIL, "target": 5})
        assert resp.status_code == 200
        events = (await client.get("/api/habit-events", params={"email": EMAIL})).json()["events"]
        assert events == []

    @pytest.mark.asyncio
    async def test_events_for_one_date(self, client, r):
        log_habit_event(EMAIL, HabitEventType.LEVEL_UP, "2026-02-09", r=r, habitKey="walk_10min", fromLevel=8, toLevel=10)
        log_habit_event(EMAIL, HabitEventType.LEVEL_UP, "2026-02-16", r=r, habitKey="walk_10min", fromLevel=10, toLevel=12)
        resp = await client.get("/api/habit-events", params={"email": EMAIL, "date": "2026-02-16"})
        events = resp.json()["events"]
        assert [e["toLevel"] for e in events] == [12]


# ═══════════════════════════════════════════════════════════════════════════
# Missed check-ins and gap reconciliation
# ═══════════════════════════════════════════════════════════════════════════


class TestGapEndpoints:
    @pytest.mark.asyncio
    async def test_missed_checkins_fills_gap(self, client, make_day, r):
        make_day("2026-02-09", momentum=64)
        resp = await client.post("/api/missed-checkins", json={"email": EMAIL, "today": "2026-02-11"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["hadGap"] is True
        assert data["daysMissed"] == 1
        assert "held at 64%" in data["message"]
        assert CheckIn.from_store(EMAIL, "2026-02-10", r).checkin_type == CheckinType.GAP_FILL

    @pytest.mark.asyncio
    async def test_missed_checkins_bad_date(self, client):
        resp = await client.post("/api/missed-checkins", json={"email": EMAIL, "today": "Feb 11"})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_gap_check_and_resolve(self, client, make_day):
        make_day("2026-02-09", momentum=50)
        await client.post("/api/missed-checkins", json={"email": EMAIL, "today": "2026-02-11"})

        check = (await client.get("/api/gap-check", params={"email": EMAIL, "date": "2026-02-11"})).json()
        assert check == {"needsReconciliation": True, "gapDate": "2026-02-10", "gapMomentum": 50}

        resp = await client.post("/api/resolve-gap", json={
            "email": EMAIL, "gapDate": "2026-02-10", "exerciseCompleted": False,
        })
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "updatedMomentum": 46}

        check = (await client.get("/api/gap-check", params={"email": EMAIL, "date": "2026-02-11"})).json()
        assert check["needsReconciliation"] is False

    @pytest.mark.asyncio
    async def test_resolve_unknown_gap_is_404(self, client):
        resp = await client.post("/api/resolve-gap", json={
            "email": EMAIL, "gapDate": "2026-02-10", "exerciseCompleted": True,
        })
        assert resp.status_code == 404


# ═══════════════════════════════════════════════════════════════════════════
# Cron
# ═══════════════════════════════════════════════════════════════════════════


class TestCronEndpoint:
    URL = "/api/cron/generate-weekly-coaching"

    @pytest.mark.asyncio
    async def test_secret_not_configured(self, client, monkeypatch):
        monkeypatch.setattr(settings, "CRON_SECRET", "")
        resp = await client.get(self.URL, headers={"Authorization": "Bearer anything"})
        assert resp.status_code == 500

    @pytest.mark.asyncio
    async def test_missing_header_is_401(self, client, monkeypatch):
        monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
        resp = await client.get(self.URL)
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_secret_is_401(self, client, monkeypatch):
        monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
        resp = await client.get(self.URL, headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_runs_for_previous_week(self, client, seed_week, monkeypatch):
        week_id = get_previous_week_id()
        seed_week(6, monday=week_monday(week_id))
        seed_week(1, monday=week_monday(week_id), email="new@example.com")
        calls = []

        async def fake_generate(email, wk):
            calls.append((email, wk))
            return {"success": True}

        monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
        monkeypatch.setattr("nelson.server.cron_generate", fake_generate)
        resp = await client.get(self.URL, headers={"Authorization": "Bearer s3cret"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["weekId"] == week_id
        assert calls == [(EMAIL, week_id)]
        assert data["summary"]["generated"] == 1
        assert data["summary"]["insufficientCheckIns"] == 1
