"""Data models for americano.

Domain model hierarchy:
- Widget anchors one tournament to a scheduled class
- Widget carries a WidgetConfig (tagged by WidgetType) and, once started, a WidgetState
- TournamentState contains the Matches and the Standings
- Match contains two Teams of two players each
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

VALID_PLAYER_COUNTS = (8, 12, 16)
VALID_MATCH_POINTS = (20, 21, 24, 25)
PLAYERS_PER_MATCH = 4


class TournamentMode(str, Enum):
    """How partners are assigned."""

    INDIVIDUAL_ROTATION = "individual_rotation"  # New partner every round
    FIXED_TEAMS = "fixed_teams"  # Same partner all tournament


class MatchStatus(str, Enum):
    """Match status."""

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"  # Not produced by any transition yet
    COMPLETED = "completed"


class WidgetStatus(str, Enum):
    """Widget lifecycle status."""

    SETUP = "setup"
    READY = "ready"
    ACTIVE = "active"
    COMPLETED = "completed"  # Terminal
    CANCELLED = "cancelled"  # Terminal


class WidgetType(str, Enum):
    """Kind of tournament a widget runs."""

    TOURNAMENT_AMERICANO = "tournament_americano"
    TOURNAMENT_ROUND_ROBIN = "tournament_round_robin"
    TOURNAMENT_BRACKETS = "tournament_brackets"


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt_from_str(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


# ============================================================================
# Tournament Models
# ============================================================================


@dataclass(frozen=True)
class Court:
    """A court where one match is played per round."""

    id: str
    name: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}

    @staticmethod
    def from_dict(d: dict) -> "Court":
        return Court(id=str(d["id"]), name=str(d.get("name", d["id"])))


@dataclass(frozen=True)
class Team:
    """Fixed pair of players (fixed_teams mode only)."""

    team_id: str
    player_ids: tuple[str, str]


@dataclass
class TournamentConfig:
    """Americano configuration.

    Immutable once a tournament has been initialized from it.
    """

    number_of_players: int
    match_points: int
    courts: list[Court]
    max_matches_per_player: int
    mode: TournamentMode = TournamentMode.INDIVIDUAL_ROTATION

    def to_dict(self) -> dict:
        return {
            "number_of_players": self.number_of_players,
            "match_points": self.match_points,
            "courts": [c.to_dict() for c in self.courts],
            "max_matches_per_player": self.max_matches_per_player,
            "mode": self.mode.value,
        }

    @staticmethod
    def from_dict(d: dict) -> "TournamentConfig":
        return TournamentConfig(
            number_of_players=int(d["number_of_players"]),
            match_points=int(d["match_points"]),
            courts=[Court.from_dict(c) for c in d["courts"]],
            max_matches_per_player=int(d["max_matches_per_player"]),
            mode=TournamentMode(d.get("mode", TournamentMode.INDIVIDUAL_ROTATION.value)),
        )


@dataclass
class Match:
    """A 2v2 match on one court in one round.

    Both scores are set together when the result is recorded.
    """

    id: str  # match_r{round}_c{court}
    round_number: int
    court_id: str
    team1: tuple[str, str]
    team2: tuple[str, str]
    status: MatchStatus = MatchStatus.SCHEDULED
    team1_score: Optional[int] = None
    team2_score: Optional[int] = None
    completed_at: Optional[datetime] = None

    @property
    def players(self) -> tuple[str, str, str, str]:
        """All four players, team1 first."""
        return (*self.team1, *self.team2)

    @property
    def is_completed(self) -> bool:
        return self.status == MatchStatus.COMPLETED

    @property
    def has_scores(self) -> bool:
        return self.team1_score is not None and self.team2_score is not None

    def involves(self, participant_id: str) -> bool:
        return participant_id in self.team1 or participant_id in self.team2

    def __str__(self) -> str:
        score = f"{self.team1_score}-{self.team2_score}" if self.has_scores else "vs"
        return f"R{self.round_number} {self.court_id}: {'/'.join(self.team1)} {score} {'/'.join(self.team2)}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "round_number": self.round_number,
            "court_id": self.court_id,
            "team1": list(self.team1),
            "team2": list(self.team2),
            "status": self.status.value,
            "team1_score": self.team1_score,
            "team2_score": self.team2_score,
            "completed_at": _dt_to_str(self.completed_at),
        }

    @staticmethod
    def from_dict(d: dict) -> "Match":
        return Match(
            id=d["id"],
            round_number=int(d["round_number"]),
            court_id=d["court_id"],
            team1=(d["team1"][0], d["team1"][1]),
            team2=(d["team2"][0], d["team2"][1]),
            status=MatchStatus(d.get("status", MatchStatus.SCHEDULED.value)),
            team1_score=d.get("team1_score"),
            team2_score=d.get("team2_score"),
            completed_at=_dt_from_str(d.get("completed_at")),
        )


@dataclass
class Standing:
    """Leaderboard entry for one participant.

    Derived entirely from completed matches, never edited by hand.
    """

    participant_id: str
    matches_played: int = 0
    matches_won: int = 0
    matches_lost: int = 0
    points_scored: int = 0
    points_conceded: int = 0
    points_difference: int = 0

    def __str__(self) -> str:
        return (
            f"{self.participant_id}: {self.points_difference:+d} "
            f"({self.points_scored}-{self.points_conceded}) {self.matches_won}W-{self.matches_lost}L"
        )

    def to_dict(self) -> dict:
        return {
            "participant_id": self.participant_id,
            "matches_played": self.matches_played,
            "matches_won": self.matches_won,
            "matches_lost": self.matches_lost,
            "points_scored": self.points_scored,
            "points_conceded": self.points_conceded,
            "points_difference": self.points_difference,
        }

    @staticmethod
    def from_dict(d: dict) -> "Standing":
        return Standing(**{k: d[k] for k in Standing.__dataclass_fields__ if k in d})


@dataclass
class TournamentState:
    """Runtime state of one Americano tournament."""

    current_round: int
    total_rounds: int
    matches: list[Match]
    standings: list[Standing]
    started_at: datetime
    completed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "current_round": self.current_round,
            "total_rounds": self.total_rounds,
            "matches": [m.to_dict() for m in self.matches],
            "standings": [s.to_dict() for s in self.standings],
            "started_at": _dt_to_str(self.started_at),
            "completed_at": _dt_to_str(self.completed_at),
        }

    @staticmethod
    def from_dict(d: dict) -> "TournamentState":
        return TournamentState(
            current_round=int(d["current_round"]),
            total_rounds=int(d["total_rounds"]),
            matches=[Match.from_dict(m) for m in d["matches"]],
            standings=[Standing.from_dict(s) for s in d["standings"]],
            started_at=_dt_from_str(d["started_at"]),
            completed_at=_dt_from_str(d.get("completed_at")),
        )


# ============================================================================
# Generator Output Models
# ============================================================================


@dataclass
class GeneratedSchedule:
    """Output of the schedule generator."""

    total_rounds: int
    matches: list[Match]
    player_match_counts: dict[str, int]


@dataclass
class PreviewSchedule:
    """Schedule shape shown before the roster is complete."""

    total_rounds: int
    matches: list[Match]
    standings: list[Standing]
    placeholder_count: int
    is_preview: bool = True


@dataclass
class TournamentSummary:
    """Display summary of a running tournament."""

    current_round: int
    total_rounds: int
    completed_matches: int
    total_matches: int
    is_complete: bool
    leader: Optional[Standing]


# ============================================================================
# Result Models
# ============================================================================


@dataclass
class MatchResult:
    """Score submitted for one match."""

    match_id: str
    team1_score: int
    team2_score: int


# ============================================================================
# Widget Models
# ============================================================================


@dataclass
class Participant:
    """Roster entry: either a booking or a walk-in."""

    id: str  # booking_<bookingId> or walkin_<uuid>
    display_name: str
    is_walk_in: bool = False
    booking_id: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "is_walk_in": self.is_walk_in,
            "booking_id": self.booking_id,
            "phone": self.phone,
            "email": self.email,
        }

    @staticmethod
    def from_dict(d: dict) -> "Participant":
        return Participant(**{k: d.get(k) for k in Participant.__dataclass_fields__ if k in d})


@dataclass
class WidgetConfig:
    """Widget configuration tagged by widget type.

    Only tournament_americano carries a TournamentConfig; the other types
    keep their raw settings.
    """

    type: WidgetType
    config: Any

    @property
    def is_americano(self) -> bool:
        return self.type == WidgetType.TOURNAMENT_AMERICANO

    def to_dict(self) -> dict:
        config = self.config.to_dict() if self.is_americano else self.config
        return {"type": self.type.value, "config": config}

    @staticmethod
    def from_dict(d: dict) -> "WidgetConfig":
        widget_type = WidgetType(d["type"])
        if widget_type == WidgetType.TOURNAMENT_AMERICANO:
            return WidgetConfig(type=widget_type, config=TournamentConfig.from_dict(d["config"]))
        return WidgetConfig(type=widget_type, config=d.get("config"))


@dataclass
class WidgetState:
    """Widget runtime state tagged by widget type."""

    type: WidgetType
    state: Any

    @property
    def is_americano(self) -> bool:
        return self.type == WidgetType.TOURNAMENT_AMERICANO

    def to_dict(self) -> dict:
        state = self.state.to_dict() if self.is_americano else self.state
        return {"type": self.type.value, "state": state}

    @staticmethod
    def from_dict(d: dict) -> "WidgetState":
        widget_type = WidgetType(d["type"])
        if widget_type == WidgetType.TOURNAMENT_AMERICANO:
            return WidgetState(type=widget_type, state=TournamentState.from_dict(d["state"]))
        return WidgetState(type=widget_type, state=d.get("state"))


@dataclass
class Widget:
    """Container anchoring one tournament to a scheduled class."""

    id: str
    widget_config: WidgetConfig
    status: WidgetStatus = WidgetStatus.SETUP
    widget_state: Optional[WidgetState] = None
    participants: list[Participant] = field(default_factory=list)
    class_start_time: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (WidgetStatus.COMPLETED, WidgetStatus.CANCELLED)

    def __str__(self) -> str:
        return f"Widget {self.id} [{self.widget_config.type.value}] {self.status.value} ({len(self.participants)} participants)"
