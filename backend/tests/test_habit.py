"""Tests for habit keys, current focus and commitment targets."""

import pytest

from nelson.models.habit import CurrentFocus, Foundation, Growth, from_key, set_commitment_target

from conftest import EMAIL


class TestHabitKeys:
    def test_growth_key_round_trip(self):
        habit = from_key("walk_15min")
        assert habit == Growth("walk", 15)
        assert habit.to_key() == "walk_15min"

    @pytest.mark.parametrize("key", ["protein_daily", "walk_tenmin", "run_10min", "walk_"])
    def test_other_keys_are_foundations(self, key):
        assert from_key(key) == Foundation(key)

    def test_growth_ladder(self):
        habit = Growth("walk", 10)
        assert habit.next_level() == Growth("walk", 12)
        assert habit.level_description() == "Level 1 of 6"
        assert not habit.is_max_level

    def test_max_level(self):
        habit = Growth("walk", 30)
        assert habit.is_max_level
        assert habit.next_level() is None

    def test_off_ladder_level(self):
        habit = Growth("walk", 13)
        assert habit.level_index == 0
        assert habit.next_level() is None


class TestCommitmentTarget:
    def test_step_up_records_last_proven(self, r, focus):
        updated = set_commitment_target(EMAIL, 12, r=r)
        assert updated.target == 12
        assert updated.last_proven_target == 10
        assert updated.habit_key == "walk_12min"
        stored = CurrentFocus.from_store(EMAIL, r)
        assert stored.habit_key == "walk_12min"
        assert stored.last_proven_target == 10

    def test_step_down_keeps_last_proven(self, r, focus):
        set_commitment_target(EMAIL, 15, r=r)
        updated = set_commitment_target(EMAIL, 12, r=r)
        assert updated.target == 12
        assert updated.last_proven_target == 10

    def test_missing_focus_raises(self, r):
        with pytest.raises(KeyError):
            set_commitment_target(EMAIL, 12, r=r)
