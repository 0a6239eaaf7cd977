"""Validation rules for Americano configurations and match scores.

Configuration checks never raise: they collect human-readable reasons and
let the caller decide whether to block or just warn.
"""

import math
from dataclasses import dataclass, field

from americano.errors import ErrorCode, RuleViolation
from americano.models import (
    PLAYERS_PER_MATCH,
    VALID_MATCH_POINTS,
    VALID_PLAYER_COUNTS,
    TournamentConfig,
    TournamentMode,
)

# Individual rotation needs at least this many rounds to be worth playing
MIN_ROTATION_MATCHES = 3


@dataclass
class ConfigValidation:
    """Outcome of validate_config."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)


def minimum_matches_per_player(config: TournamentConfig) -> int:
    """Lowest acceptable max_matches_per_player for the config's mode.

    Fixed teams must at least meet half of the other teams; individual
    rotation needs a few rotations.
    """
    if config.mode == TournamentMode.FIXED_TEAMS:
        return math.ceil((config.number_of_players / 2 - 1) / 2)
    return MIN_ROTATION_MATCHES


def validate_config(config: TournamentConfig) -> ConfigValidation:
    """Validate an Americano tournament configuration.

    Args:
        config: Tournament configuration to validate

    Returns:
        ConfigValidation with is_valid and the accumulated error messages

    Examples:
        >>> from americano.scheduler import create_default_courts
        >>> validate_config(TournamentConfig(8, 21, create_default_courts(2), 7)).is_valid
        True
    """
    errors = []

    if config.number_of_players not in VALID_PLAYER_COUNTS:
        errors.append(
            f"Invalid number of players: {config.number_of_players}. Must be 8, 12, or 16."
        )

    if config.match_points not in VALID_MATCH_POINTS:
        errors.append(
            f"Invalid match points: {config.match_points}. Must be 20, 21, 24, or 25."
        )

    if not config.courts:
        errors.append("At least one court is required.")

    seen_courts = set()
    for court in config.courts:
        if court.id in seen_courts:
            errors.append(f"Duplicate court id: {court.id}")
        seen_courts.add(court.id)

    if config.mode == TournamentMode.FIXED_TEAMS and config.number_of_players % 2 != 0:
        errors.append("Fixed teams mode requires an even number of players.")

    min_matches = minimum_matches_per_player(config)
    if config.max_matches_per_player < min_matches:
        errors.append(
            f"Max matches per player ({config.max_matches_per_player}) is too low. Minimum: {min_matches}"
        )

    return ConfigValidation(is_valid=not errors, errors=errors)


def get_minimum_courts(number_of_players: int) -> int:
    """Courts needed to run every player at once (4 players per match).

    Examples:
        >>> get_minimum_courts(8)
        2
        >>> get_minimum_courts(16)
        4
    """
    return number_of_players // PLAYERS_PER_MATCH


def validate_match_scores(
    team1_score: int, team2_score: int, match_points: int, allow_draws: bool = False
) -> None:
    """Validate the score of an Americano match.

    Scores usually add up to match_points, but any split is accepted as
    long as neither side is negative or above the target.

    Args:
        team1_score: Points scored by team 1
        team2_score: Points scored by team 2
        match_points: Points target for the tournament (20, 21, 24 or 25)
        allow_draws: Whether equal scores are accepted

    Raises:
        RuleViolation: With code VALIDATION_ERROR and field "score"
    """
    if team1_score < 0 or team2_score < 0:
        raise RuleViolation("Scores cannot be negative", ErrorCode.VALIDATION_ERROR, "score")

    if team1_score > match_points or team2_score > match_points:
        raise RuleViolation(
            f"Scores cannot exceed {match_points} points", ErrorCode.VALIDATION_ERROR, "score"
        )

    if not allow_draws and team1_score == team2_score:
        raise RuleViolation(
            "Match cannot end in a draw (one team must score more)",
            ErrorCode.VALIDATION_ERROR,
            "score",
        )
