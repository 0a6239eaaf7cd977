"""Tournament service: the orchestration layer.

Every public method runs in its own session scope: load the widget, check
the business rules, call the pure tournament operations, persist. Nothing
is written unless the whole operation succeeds.
"""

import logging
import random
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Optional

from americano.config_loader import Settings
from americano.errors import AmericanoError, ErrorCode, NotFoundError, RuleViolation
from americano.models import (
    Match,
    MatchResult,
    Participant,
    PreviewSchedule,
    Standing,
    TournamentConfig,
    TournamentState,
    TournamentSummary,
    Widget,
    WidgetConfig,
    WidgetState,
    WidgetStatus,
    WidgetType,
)
from americano.rules import (
    CANCELLABLE_STATUSES,
    PRE_START_STATUSES,
    can_add_participant,
    can_advance_round,
    can_detach_widget,
    can_record_match_result,
    can_remove_participant,
    can_start_tournament,
    can_transition_status,
    enforce_start_time_window,
    walk_in_name_must_be_unique,
    widget_must_be_in_status,
)
from americano.scheduler import generate_preview_schedule
from americano.storage import DatabaseManager, WidgetRepository
from americano.tournament import (
    advance_to_next_round,
    apply_match_result,
    get_match_by_id,
    get_matches_for_participant,
    get_matches_for_round,
    get_tournament_summary,
    initialize_tournament_state,
    is_tournament_complete,
    utc_now,
)
from americano.validation import validate_config, validate_match_scores

logger = logging.getLogger(__name__)

RosterSupplier = Callable[[Widget], list[str]]


def default_roster(widget: Widget) -> list[str]:
    """Participant IDs in registration order."""
    return [p.id for p in widget.participants]


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class TournamentService:
    """Runs Americano tournaments stored as widgets.

    Args:
        db: Database manager (tables are created on init)
        settings: Application settings (defaults when omitted)
        clock: Callable returning the current time
        roster_supplier: Maps a widget to the participant IDs that play
        rng: Random source for schedule generation; seeded from
            settings.random_seed when omitted
    """

    def __init__(
        self,
        db: DatabaseManager,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
        roster_supplier: Optional[RosterSupplier] = None,
        rng: Optional[random.Random] = None,
    ):
        self.db = db
        self.settings = settings or Settings()
        self.clock = clock
        self.roster_supplier = roster_supplier or default_roster
        self.rng = rng or random.Random(self.settings.random_seed)
        self.db.create_tables()

    # ========================================================================
    # Helpers
    # ========================================================================

    @contextmanager
    def _unit_of_work(self, action: str, widget_id: Optional[str] = None) -> Iterator[WidgetRepository]:
        try:
            with self.db.session_scope() as session:
                yield WidgetRepository(session)
        except AmericanoError as e:
            logger.warning("%s rejected for widget %s: [%s] %s", action, widget_id, e.code.value, e.message)
            raise

    def _now(self) -> datetime:
        return _as_utc(self.clock())

    @staticmethod
    def _load(repo: WidgetRepository, widget_id: str, for_update: bool = False) -> Widget:
        widget_orm = repo.get_by_id(widget_id, for_update=for_update)
        if widget_orm is None:
            raise NotFoundError(f"Widget {widget_id} not found", field="widget_id")
        return widget_orm.to_widget()

    @staticmethod
    def _americano_config(widget: Widget) -> TournamentConfig:
        if not widget.widget_config.is_americano:
            raise RuleViolation(
                f"Widget type '{widget.widget_config.type.value}' is not an Americano tournament",
                ErrorCode.UNSUPPORTED_WIDGET_TYPE,
                "widget_config.type",
            )
        return widget.widget_config.config

    @staticmethod
    def _state(widget: Widget) -> TournamentState:
        if widget.widget_state is None or not widget.widget_state.is_americano:
            raise RuleViolation(
                "Tournament has not been started", ErrorCode.NOT_INITIALIZED, "widget_state"
            )
        return widget.widget_state.state

    @staticmethod
    def _with_state(widget: Widget, state: TournamentState, **changes: Any) -> Widget:
        return replace(
            widget,
            widget_state=WidgetState(type=WidgetType.TOURNAMENT_AMERICANO, state=state),
            **changes,
        )

    # ========================================================================
    # Widgets
    # ========================================================================

    def create_widget(
        self,
        config: Any,
        class_start_time: Optional[datetime] = None,
        widget_type: WidgetType = WidgetType.TOURNAMENT_AMERICANO,
    ) -> Widget:
        """Create a widget in setup status.

        Args:
            config: TournamentConfig for Americano widgets, raw settings otherwise
            class_start_time: Start of the class the tournament belongs to
            widget_type: Kind of tournament

        Returns:
            The stored widget

        Raises:
            RuleViolation: If an Americano config does not validate
        """
        if widget_type == WidgetType.TOURNAMENT_AMERICANO:
            validation = validate_config(config)
            if not validation.is_valid:
                logger.warning("Rejected tournament config: %s", "; ".join(validation.errors))
                raise RuleViolation(
                    f"Invalid tournament config: {', '.join(validation.errors)}",
                    ErrorCode.VALIDATION_ERROR,
                    "config",
                )

        widget = Widget(
            id=str(uuid.uuid4()),
            widget_config=WidgetConfig(type=widget_type, config=config),
            class_start_time=_as_utc(class_start_time) if class_start_time else None,
        )
        with self._unit_of_work("create_widget") as repo:
            repo.create(widget)

        logger.info("Created %s widget %s", widget_type.value, widget.id)
        return widget

    def get_widget(self, widget_id: str) -> Widget:
        with self._unit_of_work("get_widget", widget_id) as repo:
            return self._load(repo, widget_id)

    def list_widgets(self, status: Optional[WidgetStatus] = None) -> list[Widget]:
        """All non-deleted widgets, newest first, optionally filtered by status."""
        with self._unit_of_work("list_widgets") as repo:
            return [w.to_widget() for w in repo.get_all(status)]

    def detach_widget(self, widget_id: str) -> None:
        """Remove a widget from its class. Not allowed while active."""
        with self._unit_of_work("detach_widget", widget_id) as repo:
            widget = self._load(repo, widget_id, for_update=True)
            can_detach_widget(widget)
            repo.delete(widget_id)

        logger.info("Detached widget %s", widget_id)

    def update_status(self, widget_id: str, new_status: WidgetStatus) -> Widget:
        """Move a widget to a new status.

        Transitions into active, completed and cancelled go through
        start_tournament, complete_tournament and cancel_tournament so
        their side effects always run.
        """
        if new_status == WidgetStatus.ACTIVE:
            return self.start_tournament(widget_id)
        if new_status == WidgetStatus.COMPLETED:
            return self.complete_tournament(widget_id)
        if new_status == WidgetStatus.CANCELLED:
            return self.cancel_tournament(widget_id)

        with self._unit_of_work("update_status", widget_id) as repo:
            widget = self._load(repo, widget_id, for_update=True)
            old_status = widget.status
            can_transition_status(old_status, new_status)
            widget = replace(widget, status=new_status)
            repo.save(widget)

        logger.info("Widget %s: %s -> %s", widget_id, old_status.value, new_status.value)
        return widget

    # ========================================================================
    # Participants
    # ========================================================================

    def add_walk_in(
        self,
        widget_id: str,
        name: str,
        phone: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Participant:
        """Register a walk-in player by name.

        Raises:
            RuleViolation: If the tournament already started, the name is
                empty or another walk-in has the same name
        """
        with self._unit_of_work("add_walk_in", widget_id) as repo:
            widget = self._load(repo, widget_id, for_update=True)
            can_add_participant(widget)

            display_name = name.strip()
            if not display_name:
                raise RuleViolation(
                    "Walk-in name cannot be empty", ErrorCode.VALIDATION_ERROR, "walk_in.name"
                )
            walk_in_name_must_be_unique(widget.participants, display_name)

            participant = Participant(
                id=f"walkin_{uuid.uuid4()}",
                display_name=display_name,
                is_walk_in=True,
                phone=phone,
                email=email,
            )
            repo.save(replace(widget, participants=widget.participants + [participant]))

        logger.info("Added walk-in %s (%s) to widget %s", participant.id, display_name, widget_id)
        return participant

    def add_booking_participant(self, widget_id: str, booking_id: str, display_name: str) -> Participant:
        """Register the holder of a class booking."""
        with self._unit_of_work("add_booking_participant", widget_id) as repo:
            widget = self._load(repo, widget_id, for_update=True)
            can_add_participant(widget)

            participant_id = f"booking_{booking_id}"
            if any(p.id == participant_id for p in widget.participants):
                raise RuleViolation(
                    f"Booking {booking_id} is already registered",
                    ErrorCode.DUPLICATE_RESOURCE,
                    "booking_id",
                )

            participant = Participant(
                id=participant_id, display_name=display_name, booking_id=booking_id
            )
            repo.save(replace(widget, participants=widget.participants + [participant]))

        logger.info("Added booking %s to widget %s", booking_id, widget_id)
        return participant

    def remove_participant(self, widget_id: str, participant_id: str) -> None:
        with self._unit_of_work("remove_participant", widget_id) as repo:
            widget = self._load(repo, widget_id, for_update=True)
            can_remove_participant(widget)

            remaining = [p for p in widget.participants if p.id != participant_id]
            if len(remaining) == len(widget.participants):
                raise NotFoundError(
                    f"Participant {participant_id} not found", field="participant_id"
                )
            repo.save(replace(widget, participants=remaining))

        logger.info("Removed participant %s from widget %s", participant_id, widget_id)

    # ========================================================================
    # Tournament Lifecycle
    # ========================================================================

    def preview_schedule(self, widget_id: str) -> PreviewSchedule:
        """Schedule shape for the current roster, padded with placeholders."""
        widget = self.get_widget(widget_id)
        config = self._americano_config(widget)
        return generate_preview_schedule(self.roster_supplier(widget), config, self.rng)

    def start_tournament(self, widget_id: str) -> Widget:
        """Generate the schedule and activate the widget.

        Raises:
            RuleViolation: Outside the start window, wrong status, wrong
                roster size, invalid config or unsupported widget type
        """
        now = self._now()
        with self._unit_of_work("start_tournament", widget_id) as repo:
            widget = self._load(repo, widget_id, for_update=True)

            widget_must_be_in_status(widget, PRE_START_STATUSES)
            if widget.class_start_time is not None and self.settings.enforce_start_window:
                enforce_start_time_window(
                    _as_utc(widget.class_start_time), now, self.settings.start_window_hours
                )

            participant_ids = self.roster_supplier(widget)
            can_start_tournament(widget, participant_ids)

            state = initialize_tournament_state(
                widget.widget_config.config, participant_ids, rng=self.rng, now=now
            )
            old_status = widget.status
            widget = self._with_state(widget, state, status=WidgetStatus.ACTIVE)
            repo.save(widget)

        logger.info(
            "Widget %s: %s -> active (%d matches over %d rounds)",
            widget_id,
            old_status.value,
            len(state.matches),
            state.total_rounds,
        )
        return widget

    def record_match_result(
        self, widget_id: str, match_id: str, team1_score: int, team2_score: int
    ) -> TournamentState:
        """Validate and record a match score.

        A completed match may be recorded again to correct its score.
        With settings.auto_complete the widget completes once every match
        has a result.

        Returns:
            Updated tournament state
        """
        now = self._now()
        with self._unit_of_work("record_match_result", widget_id) as repo:
            widget = self._load(repo, widget_id, for_update=True)
            can_record_match_result(widget)
            state = self._state(widget)

            if get_match_by_id(state.matches, match_id) is None:
                raise NotFoundError(f"Match {match_id} not found", field="match_id")

            config = self._americano_config(widget)
            validate_match_scores(
                team1_score, team2_score, config.match_points, self.settings.allow_draws
            )

            state = apply_match_result(
                state, MatchResult(match_id, team1_score, team2_score), now=now
            )
            status = widget.status
            if self.settings.auto_complete and is_tournament_complete(state):
                state = replace(state, completed_at=now)
                status = WidgetStatus.COMPLETED
            repo.save(self._with_state(widget, state, status=status))

        logger.info("Widget %s: %s recorded %d-%d", widget_id, match_id, team1_score, team2_score)
        if status == WidgetStatus.COMPLETED:
            logger.info("Widget %s: active -> completed (all results in)", widget_id)
        return state

    def advance_round(self, widget_id: str) -> TournamentState:
        """Move an active tournament to its next round."""
        with self._unit_of_work("advance_round", widget_id) as repo:
            widget = self._load(repo, widget_id, for_update=True)
            state = self._state(widget)
            can_advance_round(widget, state.current_round, state.total_rounds)

            state = advance_to_next_round(state)
            repo.save(self._with_state(widget, state))

        logger.info("Widget %s: round %d -> %d", widget_id, state.current_round - 1, state.current_round)
        return state

    def complete_tournament(self, widget_id: str) -> Widget:
        """Finish an active tournament, stamping completed_at."""
        now = self._now()
        with self._unit_of_work("complete_tournament", widget_id) as repo:
            widget = self._load(repo, widget_id, for_update=True)
            widget_must_be_in_status(widget, (WidgetStatus.ACTIVE,))
            can_transition_status(widget.status, WidgetStatus.COMPLETED)

            state = replace(self._state(widget), completed_at=now)
            widget = self._with_state(widget, state, status=WidgetStatus.COMPLETED)
            repo.save(widget)

        logger.info("Widget %s: active -> completed", widget_id)
        return widget

    def cancel_tournament(self, widget_id: str) -> Widget:
        with self._unit_of_work("cancel_tournament", widget_id) as repo:
            widget = self._load(repo, widget_id, for_update=True)
            widget_must_be_in_status(widget, CANCELLABLE_STATUSES)
            old_status = widget.status
            widget = replace(widget, status=WidgetStatus.CANCELLED)
            repo.save(widget)

        logger.info("Widget %s: %s -> cancelled", widget_id, old_status.value)
        return widget

    # ========================================================================
    # Queries
    # ========================================================================

    def get_current_round_matches(self, widget_id: str) -> list[Match]:
        state = self._state(self.get_widget(widget_id))
        return get_matches_for_round(state.matches, state.current_round)

    def get_leaderboard(self, widget_id: str) -> list[Standing]:
        """Standings, best first."""
        return self._state(self.get_widget(widget_id)).standings

    def get_participant_matches(self, widget_id: str, participant_id: str) -> list[Match]:
        return get_matches_for_participant(
            self._state(self.get_widget(widget_id)).matches, participant_id
        )

    def get_summary(self, widget_id: str) -> TournamentSummary:
        return get_tournament_summary(self._state(self.get_widget(widget_id)))
