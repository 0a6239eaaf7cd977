"""Americano schedule generator: fixed teams and circle-method rotation."""

import logging
import random
from typing import Optional, TypeVar

from americano.errors import ErrorCode, InvalidArgumentError
from americano.models import (
    PLAYERS_PER_MATCH,
    Court,
    GeneratedSchedule,
    Match,
    PreviewSchedule,
    Team,
    TournamentConfig,
    TournamentMode,
)
from americano.standings import initialize_standings

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_COURT_NAMES = ["A", "B", "C", "D", "E", "F", "G", "H"]
PLACEHOLDER_PREFIX = "placeholder_"


def shuffle(items: list[T], rng: Optional[random.Random] = None) -> list[T]:
    """Fisher-Yates shuffle returning a new list.

    Args:
        items: Items to shuffle (not modified)
        rng: Random source; pass a seeded random.Random for repeatable output

    Returns:
        Shuffled copy of items
    """
    rng = rng or random.Random()
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = rng.randint(0, i)
        result[i], result[j] = result[j], result[i]
    return result


def _match_id(round_number: int, court_index: int) -> str:
    return f"match_r{round_number}_c{court_index + 1}"


def _total_rounds(matches: list[Match]) -> int:
    return max((m.round_number for m in matches), default=0)


def create_default_courts(count: int) -> list[Court]:
    """Create courts named A-H.

    Examples:
        >>> [c.id for c in create_default_courts(2)]
        ['court_a', 'court_b']
        >>> len(create_default_courts(10))
        8
    """
    return [
        Court(id=f"court_{name.lower()}", name=f"Court {name}")
        for name in DEFAULT_COURT_NAMES[: max(count, 0)]
    ]


# ============================================================================
# Team / Pair Generation
# ============================================================================


def generate_fixed_teams(
    participant_ids: list[str], rng: Optional[random.Random] = None
) -> list[Team]:
    """Randomly pair participants into fixed teams.

    Args:
        participant_ids: Roster (must have even length)
        rng: Random source for the pairing shuffle

    Returns:
        Teams team_1..team_k with two players each

    Raises:
        InvalidArgumentError: If the roster has odd length (ODD_ROSTER)
    """
    if len(participant_ids) % 2 != 0:
        raise InvalidArgumentError(
            "Fixed teams require an even number of players",
            ErrorCode.ODD_ROSTER,
            "participant_ids",
        )

    shuffled = shuffle(participant_ids, rng)
    return [
        Team(team_id=f"team_{i // 2 + 1}", player_ids=(shuffled[i], shuffled[i + 1]))
        for i in range(0, len(shuffled), 2)
    ]


def generate_rotating_pairs(participant_ids: list[str], round_number: int) -> list[tuple[str, str]]:
    """Pairs for one round using the round-robin circle method.

    The first player stays fixed while the rest rotate by
    (round_number - 1) positions, so every round yields a different
    complete pairing until the rotation cycles after n - 1 rounds.

    For 4 players [a, b, c, d]:
        Round 1: (a, b), (c, d)
        Round 2: (a, c), (d, b)
        Round 3: (a, d), (b, c)

    Args:
        participant_ids: Roster (at least 4, even count)
        round_number: Round number (1-indexed)

    Returns:
        List of (player, partner) tuples covering the whole roster

    Raises:
        InvalidArgumentError: ROSTER_TOO_SMALL under 4 players, ODD_ROSTER on odd count
    """
    n = len(participant_ids)
    if n < PLAYERS_PER_MATCH:
        raise InvalidArgumentError(
            f"Need at least {PLAYERS_PER_MATCH} players for rotating pairs, got {n}",
            ErrorCode.ROSTER_TOO_SMALL,
            "participant_ids",
        )
    if n % 2 != 0:
        raise InvalidArgumentError(
            f"Rotating pairs need an even number of players, got {n}",
            ErrorCode.ODD_ROSTER,
            "participant_ids",
        )

    fixed = participant_ids[0]
    rotating = list(participant_ids[1:])
    shift = (round_number - 1) % len(rotating)
    ordered = [fixed] + rotating[shift:] + rotating[:shift]

    return [(ordered[i], ordered[i + 1]) for i in range(0, n, 2)]


# ============================================================================
# Schedule Generation
# ============================================================================


def _generate_fixed_teams_schedule(
    participant_ids: list[str], config: TournamentConfig, rng: Optional[random.Random]
) -> GeneratedSchedule:
    """Partial round robin between fixed teams.

    Matchups are shuffled once, then each round takes them in that order,
    skipping any that would push a player over max_matches_per_player or
    reuse a team already playing in the round. Courts fill left to right
    before the next round starts.
    """
    teams = generate_fixed_teams(participant_ids, rng)
    counts = {pid: 0 for pid in participant_ids}
    cap = config.max_matches_per_player

    matchups = [(i, j) for i in range(len(teams)) for j in range(i + 1, len(teams))]
    pending = shuffle(matchups, rng)
    courts_per_round = min(len(config.courts), len(teams) // 2)

    matches = []
    round_number = 1
    while pending and courts_per_round > 0:
        teams_this_round = set()
        deferred = []
        court_index = 0

        for i, j in pending:
            players = teams[i].player_ids + teams[j].player_ids
            if any(counts[p] >= cap for p in players):
                continue  # Counts only grow, so this matchup can never fit again
            if court_index >= courts_per_round or i in teams_this_round or j in teams_this_round:
                deferred.append((i, j))
                continue

            matches.append(
                Match(
                    id=_match_id(round_number, court_index),
                    round_number=round_number,
                    court_id=config.courts[court_index].id,
                    team1=teams[i].player_ids,
                    team2=teams[j].player_ids,
                )
            )
            for p in players:
                counts[p] += 1
            teams_this_round.update((i, j))
            court_index += 1

        if court_index == 0:
            break
        pending = deferred
        round_number += 1

    return GeneratedSchedule(
        total_rounds=_total_rounds(matches),
        matches=matches,
        player_match_counts=counts,
    )


def _generate_rotating_schedule(
    participant_ids: list[str], config: TournamentConfig
) -> GeneratedSchedule:
    """Rotating partners with greedy, fairness-weighted court assignment.

    Each round's circle pairing is split into candidate matches (pair 0 vs
    pair 1, pair 2 vs pair 3, ...). Candidates with a capped player are
    dropped, the rest are sorted by the summed match count of their four
    players so the least-played go first, then assigned to courts.
    """
    counts = {pid: 0 for pid in participant_ids}
    cap = config.max_matches_per_player
    courts_per_round = min(len(config.courts), len(participant_ids) // PLAYERS_PER_MATCH)
    max_rounds = len(participant_ids) - 1

    def workload(candidate: tuple[tuple[str, str], tuple[str, str]]) -> int:
        return sum(counts[p] for p in candidate[0] + candidate[1])

    matches = []
    for round_number in range(1, max_rounds + 1):
        pairs = generate_rotating_pairs(participant_ids, round_number)
        candidates = [(pairs[i], pairs[i + 1]) for i in range(0, len(pairs) - 1, 2)]

        available = [
            c for c in candidates if not any(counts[p] >= cap for p in c[0] + c[1])
        ]
        available.sort(key=workload)

        playing = set()
        court_index = 0
        for team1, team2 in available:
            if court_index >= courts_per_round:
                break
            players = team1 + team2
            if any(p in playing for p in players):
                continue

            matches.append(
                Match(
                    id=_match_id(round_number, court_index),
                    round_number=round_number,
                    court_id=config.courts[court_index].id,
                    team1=team1,
                    team2=team2,
                )
            )
            for p in players:
                playing.add(p)
                counts[p] += 1
            court_index += 1

        if all(counts[p] >= cap for p in participant_ids):
            break

    return GeneratedSchedule(
        total_rounds=_total_rounds(matches),
        matches=matches,
        player_match_counts=counts,
    )


def generate_schedule(
    participant_ids: list[str],
    config: TournamentConfig,
    rng: Optional[random.Random] = None,
) -> GeneratedSchedule:
    """Generate the complete tournament schedule.

    Args:
        participant_ids: Roster of participant IDs
        config: Tournament configuration (mode, courts, per-player cap)
        rng: Random source for fixed-team shuffles

    Returns:
        GeneratedSchedule with total_rounds, matches and per-player match counts
    """
    if config.mode == TournamentMode.FIXED_TEAMS:
        schedule = _generate_fixed_teams_schedule(participant_ids, config, rng)
    else:
        schedule = _generate_rotating_schedule(participant_ids, config)

    logger.debug(
        "Generated %s schedule: %d players, %d matches over %d rounds",
        config.mode.value,
        len(participant_ids),
        len(schedule.matches),
        schedule.total_rounds,
    )
    return schedule


def generate_preview_schedule(
    participant_ids: list[str],
    config: TournamentConfig,
    rng: Optional[random.Random] = None,
) -> PreviewSchedule:
    """Generate a schedule with placeholders for unfilled spots.

    Lets an organizer see the schedule shape during setup, before every
    participant has registered. Extra participants beyond
    number_of_players are dropped.

    Args:
        participant_ids: Registered participant IDs (may be empty or partial)
        config: Tournament configuration
        rng: Random source for fixed-team shuffles

    Returns:
        PreviewSchedule with zeroed standings and the placeholder count
    """
    target = config.number_of_players
    placeholder_count = max(0, target - len(participant_ids))

    roster = list(participant_ids) + [
        f"{PLACEHOLDER_PREFIX}{i + 1}" for i in range(placeholder_count)
    ]
    roster = roster[:target]

    schedule = generate_schedule(roster, config, rng)

    return PreviewSchedule(
        total_rounds=schedule.total_rounds,
        matches=schedule.matches,
        standings=initialize_standings(roster),
        placeholder_count=placeholder_count,
    )
