"""Tests for Americano configuration and score validation."""

from dataclasses import replace

import pytest

from americano.errors import ErrorCode, RuleViolation
from americano.models import Court, TournamentConfig, TournamentMode
from americano.scheduler import create_default_courts
from americano.validation import (
    get_minimum_courts,
    minimum_matches_per_player,
    validate_config,
    validate_match_scores,
)


def make_config(players=8, courts=2, max_matches=5, mode=TournamentMode.INDIVIDUAL_ROTATION):
    return TournamentConfig(
        number_of_players=players,
        match_points=21,
        courts=create_default_courts(courts),
        max_matches_per_player=max_matches,
        mode=mode,
    )


class TestValidateConfig:
    """Test cases for validate_config."""

    @pytest.mark.parametrize("players", [8, 12, 16])
    def test_valid_player_counts(self, players):
        result = validate_config(make_config(players=players))
        assert result.is_valid
        assert result.errors == []

    def test_invalid_number_of_players(self):
        result = validate_config(make_config(players=10))
        assert not result.is_valid
        assert any("Invalid number of players" in e for e in result.errors)

    def test_no_courts(self):
        result = validate_config(make_config(courts=0))
        assert not result.is_valid
        assert "At least one court is required." in result.errors

    def test_rotation_minimum_matches(self):
        result = validate_config(make_config(max_matches=2))
        assert not result.is_valid
        assert "Max matches per player (2) is too low. Minimum: 3" in result.errors

    def test_fixed_teams_minimum_matches(self):
        """Fixed teams must meet at least half of the other teams."""
        config = make_config(players=16, max_matches=3, mode=TournamentMode.FIXED_TEAMS)
        assert minimum_matches_per_player(config) == 4

        result = validate_config(config)
        assert not result.is_valid
        assert "Minimum: 4" in result.errors[0]

    def test_fixed_teams_odd_players(self):
        result = validate_config(make_config(players=9, mode=TournamentMode.FIXED_TEAMS))
        assert "Fixed teams mode requires an even number of players." in result.errors

    @pytest.mark.parametrize("points", [20, 21, 24, 25])
    def test_valid_match_points(self, points):
        assert validate_config(replace(make_config(), match_points=points)).is_valid

    @pytest.mark.parametrize("points", [0, 15, 22, -21])
    def test_invalid_match_points(self, points):
        result = validate_config(replace(make_config(), match_points=points))
        assert not result.is_valid
        assert f"Invalid match points: {points}. Must be 20, 21, 24, or 25." in result.errors

    def test_duplicate_court_ids(self):
        """Two courts with one id would put two matches on the same court."""
        config = replace(make_config(), courts=[Court("c", "A"), Court("c", "B")])
        result = validate_config(config)
        assert not result.is_valid
        assert result.errors == ["Duplicate court id: c"]

    def test_same_name_different_ids_is_fine(self):
        config = replace(make_config(), courts=[Court("c1", "Centre"), Court("c2", "Centre")])
        assert validate_config(config).is_valid

    def test_errors_accumulate(self):
        result = validate_config(make_config(players=10, courts=0, max_matches=1))
        assert len(result.errors) == 3

    def test_all_errors_reported_together(self):
        config = replace(
            make_config(players=10, max_matches=1),
            match_points=0,
            courts=[Court("c", "A"), Court("c", "B")],
        )
        result = validate_config(config)
        assert len(result.errors) == 4


def test_minimum_courts():
    assert get_minimum_courts(8) == 2
    assert get_minimum_courts(12) == 3
    assert get_minimum_courts(16) == 4


class TestValidateMatchScores:
    """Test cases for validate_match_scores."""

    @pytest.mark.parametrize("score1,score2", [(21, 18), (0, 21), (21, 0), (12, 9)])
    def test_valid_scores(self, score1, score2):
        validate_match_scores(score1, score2, 21)

    def test_negative(self):
        with pytest.raises(RuleViolation) as exc_info:
            validate_match_scores(-1, 21, 21)
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
        assert exc_info.value.field == "score"

    def test_above_match_points(self):
        with pytest.raises(RuleViolation, match="cannot exceed 24"):
            validate_match_scores(25, 3, 24)

    def test_draw_rejected_by_default(self):
        with pytest.raises(RuleViolation, match="draw"):
            validate_match_scores(12, 12, 24)

    def test_draw_allowed_when_enabled(self):
        validate_match_scores(12, 12, 24, allow_draws=True)
