"""Tests for weekly coaching generation and output validation.

The model is replaced by a scripted async callable; no network access.
"""

import json
from datetime import date

import pytest

from nelson.engine.coaching import CoachingError, generate_weekly_coaching
from nelson.engine.coaching_validator import count_sentences, validate_weekly_coaching
from nelson.models.calibration import save_weekly_calibration
from nelson.models.coaching import PatternType, SummaryStatus, get_weekly_summary

from conftest import EMAIL, WEEK_ID


def _coaching(**overrides) -> dict:
    out = {
        "pattern": "You checked in 6 of 7 days and momentum held at 70%.",
        "tension": "Nutrition held steady while sleep slipped midweek.",
        "whyThisMatters": "Sleep sets the ceiling on recovery. Protect it now.",
        "progression": {"text": "Lights out by 10:30 on weeknights.", "type": "hold"},
    }
    out.update(overrides)
    return out


class ScriptedModel:
    """Returns queued outputs in order and records every prompt pair."""

    def __init__(self, *outputs):
        self.outputs = list(outputs)
        self.calls = []

    async def __call__(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        out = self.outputs.pop(0) if len(self.outputs) > 1 else self.outputs[0]
        if isinstance(out, Exception):
            raise out
        return out if isinstance(out, str) else json.dumps(out)


# ═══════════════════════════════════════════════════════════════════════════
# Validator (pure functions)
# ═══════════════════════════════════════════════════════════════════════════


class TestValidator:
    def test_valid_output(self):
        result = validate_weekly_coaching(json.dumps(_coaching()), PatternType.MOMENTUM_PLATEAU)
        assert result.valid
        assert result.coaching["progression"]["type"] == "hold"

    def test_json_fence_is_stripped(self):
        raw = "```json\n" + json.dumps(_coaching()) + "\n```"
        assert validate_weekly_coaching(raw, PatternType.MOMENTUM_PLATEAU).valid

    def test_not_json(self):
        result = validate_weekly_coaching("Great week!", PatternType.MOMENTUM_PLATEAU)
        assert not result.valid
        assert result.errors[0].rule == "json_parsing"

    def test_missing_fields(self):
        raw = json.dumps({"pattern": "x", "tension": "", "progression": {"text": "y", "type": "hold"}})
        result = validate_weekly_coaching(raw, PatternType.MOMENTUM_PLATEAU)
        assert {e.field for e in result.errors} == {"tension", "whyThisMatters"}

    def test_invalid_focus_type(self):
        raw = json.dumps(_coaching(progression={"text": "Walk more.", "type": "advance"}))
        result = validate_weekly_coaching(raw, PatternType.MOMENTUM_PLATEAU)
        assert result.errors[0].rule == "invalid_focus_type"

    def test_tension_sentence_limit(self):
        assert count_sentences("One. Two! Three? Four.") == 4
        raw = json.dumps(_coaching(tension="One. Two. Three. Four. Five."))
        result = validate_weekly_coaching(raw, PatternType.MOMENTUM_PLATEAU)
        assert [e.rule for e in result.errors] == ["tension_length"]

    def test_pattern_banned_phrase(self):
        raw = json.dumps(_coaching(tension="You feel stuck at the same level."))
        result = validate_weekly_coaching(raw, PatternType.MOMENTUM_PLATEAU)
        assert result.errors[0].rule == "pattern_banned_phrase"
        # The same words are fine for a pattern without bans
        assert validate_weekly_coaching(raw, PatternType.BUILDING_MOMENTUM).valid

    def test_hedge_language(self):
        raw = json.dumps(_coaching(whyThisMatters="This suggests sleep matters."))
        result = validate_weekly_coaching(raw, PatternType.BUILDING_MOMENTUM)
        assert result.errors[0].rule == "banned_tone"

    def test_restricted_focus_types(self):
        raw = json.dumps(_coaching())
        result = validate_weekly_coaching(raw, PatternType.MOMENTUM_PLATEAU, ["protect"])
        assert result.errors[0].rule == "focus_type_not_allowed"


# ═══════════════════════════════════════════════════════════════════════════
# Generation
# ═══════════════════════════════════════════════════════════════════════════


class TestGenerateWeeklyCoaching:
    @pytest.mark.asyncio
    async def test_non_coachable_week_is_skipped(self, r, seed_week):
        seed_week(3)
        model = ScriptedModel(CoachingError("should not be called"))
        record = await generate_weekly_coaching(EMAIL, WEEK_ID, r=r, complete=model)
        assert record.status == SummaryStatus.SKIPPED
        assert record.model_version == "none"
        assert record.skip_reason == "insufficient_data"
        assert model.calls == []
        stored = get_weekly_summary(EMAIL, WEEK_ID, r)
        assert stored["status"] == "skipped"
        assert stored["canCoach"] is False

    @pytest.mark.asyncio
    async def test_generated_on_first_attempt(self, r, seed_week):
        seed_week(6)
        model = ScriptedModel(_coaching())
        record = await generate_weekly_coaching(EMAIL, WEEK_ID, r=r, complete=model)
        assert record.status == SummaryStatus.GENERATED
        assert len(model.calls) == 1
        stored = get_weekly_summary(EMAIL, WEEK_ID, r)
        assert stored["coaching"]["pattern"].startswith("You checked in")
        assert stored["patternType"] == "momentum_plateau"
        assert "rejectionReason" not in stored

    @pytest.mark.asyncio
    async def test_retry_feeds_back_errors(self, r, seed_week):
        seed_week(6)
        model = ScriptedModel("not json", _coaching())
        record = await generate_weekly_coaching(EMAIL, WEEK_ID, r=r, complete=model)
        assert record.status == SummaryStatus.GENERATED
        assert len(model.calls) == 2
        assert "json_parsing" in model.calls[1][1]

    @pytest.mark.asyncio
    async def test_rejected_after_max_attempts(self, r, seed_week):
        seed_week(6)
        bad = _coaching(tension="You are stuck.")
        model = ScriptedModel(bad)
        record = await generate_weekly_coaching(EMAIL, WEEK_ID, r=r, complete=model)
        assert record.status == SummaryStatus.REJECTED
        assert len(model.calls) == 3
        stored = get_weekly_summary(EMAIL, WEEK_ID, r)
        assert "pattern_banned_phrase" in stored["rejectionReason"]
        assert json.loads(stored["rawOutput"])["tension"] == "You are stuck."

    @pytest.mark.asyncio
    async def test_warning_signs_restrict_focus_to_protect(self, r, seed_week):
        seed_week(6)
        save_weekly_calibration(EMAIL, "2026-W06", "deliberate_shove", "recovery_energy", "warning_signs", "clear_steady", r=r)
        protect = _coaching(progression={"text": "Keep the walk, drop the extra set.", "type": "protect"})
        model = ScriptedModel(_coaching(), protect)
        record = await generate_weekly_coaching(EMAIL, WEEK_ID, r=r, complete=model)
        assert record.status == SummaryStatus.GENERATED
        assert record.coaching["progression"]["type"] == "protect"
        system_prompt = model.calls[0][0]
        assert '"protect"' in system_prompt
        assert '"hold"' not in system_prompt
        assert "warning signs present" in system_prompt

    @pytest.mark.asyncio
    async def test_user_notes_in_prompt(self, r, seed_week, make_day):
        seed_week(5)
        make_day("2026-02-14", total=30, note="Traveling for work")
        model = ScriptedModel(_coaching())
        await generate_weekly_coaching(EMAIL, WEEK_ID, r=r, complete=model)
        assert '1. "Traveling for work"' in model.calls[0][0]

    @pytest.mark.asyncio
    async def test_progression_and_changes_in_prompt(self, r, seed_week):
        seed_week(7, first_total=10, monday=date(2026, 2, 2))
        seed_week(6, sleep="elite", nutrition_pattern="not_great")
        model = ScriptedModel(_coaching())
        await generate_weekly_coaching(EMAIL, WEEK_ID, r=r, complete=model)

        system_prompt = model.calls[0][0]
        assert "PROGRESSION TYPE: STABILIZE\nReason: sleep jumped 20 points (80% → 100%)" in system_prompt
        assert "- sleep: 80 → 100 (+20) ↑" in system_prompt
        assert "LARGEST NEGATIVE CHANGE: nutrition pattern (dropped 30 points)" in system_prompt

    @pytest.mark.asyncio
    async def test_first_coached_week_has_no_comparison(self, r, seed_week):
        seed_week(6)
        model = ScriptedModel(_coaching())
        await generate_weekly_coaching(EMAIL, WEEK_ID, r=r, complete=model)
        system_prompt = model.calls[0][0]
        assert "No previous week to compare." in system_prompt
        assert "PROGRESSION TYPE: ADVANCE" in system_prompt

    @pytest.mark.asyncio
    async def test_model_failure_on_last_attempt_raises(self, r, seed_week):
        seed_week(6)
        model = ScriptedModel(CoachingError("API down"))
        with pytest.raises(CoachingError):
            await generate_weekly_coaching(EMAIL, WEEK_ID, r=r, complete=model)
        assert len(model.calls) == 3
