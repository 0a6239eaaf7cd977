"""Tournament state operations.

All functions are pure: they take a TournamentState and return a new one,
leaving persistence to the caller.
"""

import random
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from americano.errors import ErrorCode, NotFoundError, RuleViolation
from americano.models import (
    Match,
    MatchResult,
    MatchStatus,
    TournamentConfig,
    TournamentState,
    TournamentSummary,
)
from americano.scheduler import generate_schedule
from americano.standings import calculate_standings, get_leader, initialize_standings


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)


# ============================================================================
# Round Management
# ============================================================================


def get_matches_for_round(matches: list[Match], round_number: int) -> list[Match]:
    """Matches scheduled in the given round."""
    return [m for m in matches if m.round_number == round_number]


def get_matches_for_participant(matches: list[Match], participant_id: str) -> list[Match]:
    """Matches where the participant is on either team."""
    return [m for m in matches if m.involves(participant_id)]


def get_match_by_id(matches: list[Match], match_id: str) -> Optional[Match]:
    return next((m for m in matches if m.id == match_id), None)


def count_completed_matches(matches: list[Match]) -> int:
    return sum(1 for m in matches if m.is_completed)


def get_total_rounds(matches: list[Match]) -> int:
    """Highest round number, 0 without matches."""
    return max((m.round_number for m in matches), default=0)


def is_round_complete(matches: list[Match], round_number: int) -> bool:
    """True if the round has matches and all of them are completed."""
    round_matches = get_matches_for_round(matches, round_number)
    return bool(round_matches) and all(m.is_completed for m in round_matches)


def get_current_round(matches: list[Match]) -> int:
    """First round that is not complete.

    Returns 1 without matches and the last round once everything is done.
    """
    if not matches:
        return 1

    max_round = get_total_rounds(matches)
    for round_number in range(1, max_round + 1):
        if not is_round_complete(matches, round_number):
            return round_number
    return max_round


def is_tournament_complete(state: TournamentState) -> bool:
    """True if there are matches and every one of them is completed."""
    return bool(state.matches) and all(m.is_completed for m in state.matches)


# ============================================================================
# Match Results
# ============================================================================


def _participant_ids(state: TournamentState) -> list[str]:
    if state.standings:
        return [s.participant_id for s in state.standings]
    ids = []
    for match in state.matches:
        for pid in match.players:
            if pid not in ids:
                ids.append(pid)
    return ids


def apply_match_result(
    state: TournamentState, result: MatchResult, now: Optional[datetime] = None
) -> TournamentState:
    """Record a match score and recalculate standings.

    Does not advance the round; use advance_to_next_round for that.
    Score validation is the caller's job (see validation.validate_match_scores).

    Args:
        state: Current tournament state
        result: Match ID and both team scores
        now: Completion timestamp (defaults to the current UTC time)

    Returns:
        New state with the match completed and standings recalculated

    Raises:
        NotFoundError: If no match has result.match_id
    """
    if get_match_by_id(state.matches, result.match_id) is None:
        raise NotFoundError(f"Match {result.match_id} not found", field="match_id")

    completed_at = now or utc_now()
    matches = [
        replace(
            m,
            team1_score=result.team1_score,
            team2_score=result.team2_score,
            status=MatchStatus.COMPLETED,
            completed_at=completed_at,
        )
        if m.id == result.match_id
        else m
        for m in state.matches
    ]

    return replace(
        state,
        matches=matches,
        standings=calculate_standings(matches, _participant_ids(state)),
    )


def advance_to_next_round(state: TournamentState) -> TournamentState:
    """Move to the next round.

    Raises:
        RuleViolation: ROUND_NOT_COMPLETE if a match in the current round is
            still open, FINAL_ROUND if already on the last round
    """
    if not is_round_complete(state.matches, state.current_round):
        raise RuleViolation(
            f"Round {state.current_round} is not complete yet",
            ErrorCode.ROUND_NOT_COMPLETE,
            "current_round",
        )

    if state.current_round >= state.total_rounds:
        raise RuleViolation(
            "Tournament is already on the final round",
            ErrorCode.FINAL_ROUND,
            "current_round",
        )

    return replace(state, current_round=state.current_round + 1)


# ============================================================================
# Initialization
# ============================================================================


def initialize_tournament_state(
    config: TournamentConfig,
    participant_ids: list[str],
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> TournamentState:
    """Build the initial state from config and roster.

    Args:
        config: Tournament configuration
        participant_ids: Roster, exactly config.number_of_players long
        rng: Random source for the generator
        now: Start timestamp (defaults to the current UTC time)

    Returns:
        State on round 1 with the full schedule and zeroed standings

    Raises:
        RuleViolation: ROSTER_MISMATCH if the roster size is wrong
    """
    if len(participant_ids) != config.number_of_players:
        raise RuleViolation(
            f"Expected {config.number_of_players} players, got {len(participant_ids)}",
            ErrorCode.ROSTER_MISMATCH,
            "participants",
        )

    schedule = generate_schedule(participant_ids, config, rng)

    return TournamentState(
        current_round=1,
        total_rounds=schedule.total_rounds,
        matches=schedule.matches,
        standings=initialize_standings(participant_ids),
        started_at=now or utc_now(),
    )


def get_tournament_summary(state: TournamentState) -> TournamentSummary:
    """Progress summary for display."""
    return TournamentSummary(
        current_round=state.current_round,
        total_rounds=state.total_rounds,
        completed_matches=count_completed_matches(state.matches),
        total_matches=len(state.matches),
        is_complete=is_tournament_complete(state),
        leader=get_leader(state.standings),
    )
