"""Standings calculator for Americano tournaments."""

from typing import Optional

from americano.models import Match, Standing


def initialize_standings(participant_ids: list[str]) -> list[Standing]:
    """Zeroed standings in roster order."""
    return [Standing(participant_id=pid) for pid in participant_ids]


def _record(standing: Standing, scored: int, conceded: int, won: bool, lost: bool) -> None:
    standing.matches_played += 1
    standing.points_scored += scored
    standing.points_conceded += conceded
    standing.points_difference = standing.points_scored - standing.points_conceded
    if won:
        standing.matches_won += 1
    if lost:
        standing.matches_lost += 1


def calculate_standings(matches: list[Match], participant_ids: list[str]) -> list[Standing]:
    """Calculate standings from match results.

    Always a full recalculation: only completed matches with both scores
    count, and players outside participant_ids are ignored.

    Scoring:
    - Every player gets the points their team scored and conceded
    - Higher score wins for both partners, lower score loses
    - Equal scores count as played for everyone but neither a win nor a loss

    Args:
        matches: All tournament matches (any status)
        participant_ids: All participant IDs

    Returns:
        Standings sorted best first (see sort_standings)
    """
    standings = {pid: Standing(participant_id=pid) for pid in participant_ids}

    for match in matches:
        if not match.is_completed or not match.has_scores:
            continue

        score1, score2 = match.team1_score, match.team2_score
        team1_won = score1 > score2
        team2_won = score2 > score1

        for pid in match.team1:
            if pid in standings:
                _record(standings[pid], score1, score2, won=team1_won, lost=team2_won)
        for pid in match.team2:
            if pid in standings:
                _record(standings[pid], score2, score1, won=team2_won, lost=team1_won)

    return sort_standings(list(standings.values()))


def sort_standings(standings: list[Standing]) -> list[Standing]:
    """Sort standings best first.

    Criteria (all descending):
    1. Points difference
    2. Points scored
    3. Matches won

    The sort is stable, so full ties keep their input order.

    Args:
        standings: Standings to sort (not modified)

    Returns:
        New sorted list
    """
    return sorted(
        standings,
        key=lambda s: (-s.points_difference, -s.points_scored, -s.matches_won),
    )


def get_leader(standings: list[Standing]) -> Optional[Standing]:
    """First place of already sorted standings, None if empty."""
    return standings[0] if standings else None


def find_participant_standing(
    standings: list[Standing], participant_id: str
) -> Optional[tuple[Standing, int]]:
    """Find a participant's standing and 1-indexed position."""
    for position, standing in enumerate(standings, start=1):
        if standing.participant_id == participant_id:
            return standing, position
    return None
