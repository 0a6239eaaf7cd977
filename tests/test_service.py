"""Tests for the tournament service (orchestration layer)."""

import random
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from americano.config_loader import Settings
from americano.errors import ErrorCode, NotFoundError, RuleViolation
from americano.models import Court, TournamentConfig, TournamentMode, WidgetStatus, WidgetType
from americano.scheduler import create_default_courts
from americano.service import TournamentService
from americano.storage import DatabaseManager
from americano.tournament import get_matches_for_round

NOW = datetime(2026, 10, 18, 18, 0, tzinfo=timezone.utc)
NAMES = ["Ana", "Ben", "Carla", "Dani", "Eva", "Fede", "Gabi", "Hugo"]


def make_config(max_matches=3, mode=TournamentMode.INDIVIDUAL_ROTATION):
    return TournamentConfig(8, 21, create_default_courts(2), max_matches, mode)


@pytest.fixture
def db(tmp_path):
    return DatabaseManager(str(tmp_path / "americano.sqlite"))


@pytest.fixture
def service(db):
    return TournamentService(db, Settings(), clock=lambda: NOW, rng=random.Random(3))


def setup_widget(service, players=8, **kwargs):
    widget = service.create_widget(make_config(**kwargs))
    for name in NAMES[:players]:
        service.add_walk_in(widget.id, name)
    return widget


def play_round(service, widget_id, score=(21, 14)):
    for match in service.get_current_round_matches(widget_id):
        service.record_match_result(widget_id, match.id, *score)


class TestWidgets:
    """Test cases for widget creation and status changes."""

    def test_create_widget(self, service):
        widget = service.create_widget(make_config(), class_start_time=NOW + timedelta(hours=1))

        loaded = service.get_widget(widget.id)
        assert loaded.status == WidgetStatus.SETUP
        assert loaded.widget_config.config == make_config()
        assert loaded.class_start_time == NOW + timedelta(hours=1)

    def test_naive_class_start_treated_as_utc(self, service):
        widget = service.create_widget(make_config(), class_start_time=datetime(2026, 10, 18, 19, 0))
        assert service.get_widget(widget.id).class_start_time == datetime(2026, 10, 18, 19, 0, tzinfo=timezone.utc)

    def test_create_rejects_invalid_config(self, service):
        bad = TournamentConfig(10, 21, create_default_courts(2), 5)
        with pytest.raises(RuleViolation) as exc_info:
            service.create_widget(bad)
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
        assert service.list_widgets() == []

    def test_create_rejects_duplicate_court_ids(self, service):
        config = TournamentConfig(8, 21, [Court("c", "A"), Court("c", "B")], 7)
        with pytest.raises(RuleViolation, match="Duplicate court id: c") as exc_info:
            service.create_widget(config)
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
        assert service.list_widgets() == []

    def test_create_rejects_invalid_match_points(self, service):
        config = TournamentConfig(8, 0, create_default_courts(2), 7)
        with pytest.raises(RuleViolation, match="Invalid match points: 0"):
            service.create_widget(config)
        assert service.list_widgets() == []

    def test_unknown_widget(self, service):
        with pytest.raises(NotFoundError):
            service.get_widget("missing")

    def test_setup_ready_round_trip(self, service):
        widget = service.create_widget(make_config())

        assert service.update_status(widget.id, WidgetStatus.READY).status == WidgetStatus.READY
        assert service.update_status(widget.id, WidgetStatus.SETUP).status == WidgetStatus.SETUP

    def test_complete_from_setup_rejected(self, service):
        widget = service.create_widget(make_config())
        with pytest.raises(RuleViolation):
            service.update_status(widget.id, WidgetStatus.COMPLETED)
        assert service.get_widget(widget.id).status == WidgetStatus.SETUP

    def test_list_widgets_by_status(self, service):
        first = service.create_widget(make_config())
        second = service.create_widget(make_config())
        service.cancel_tournament(second.id)

        assert {w.id for w in service.list_widgets()} == {first.id, second.id}
        assert [w.id for w in service.list_widgets(WidgetStatus.CANCELLED)] == [second.id]

    def test_detach(self, service):
        widget = setup_widget(service)
        service.start_tournament(widget.id)

        with pytest.raises(RuleViolation):
            service.detach_widget(widget.id)

        service.cancel_tournament(widget.id)
        service.detach_widget(widget.id)
        with pytest.raises(NotFoundError):
            service.get_widget(widget.id)


class TestParticipants:
    """Test cases for roster management."""

    def test_walk_in_ids(self, service):
        widget = service.create_widget(make_config())
        participant = service.add_walk_in(widget.id, "  Ana ", phone="600111222")

        assert participant.id.startswith("walkin_")
        assert participant.display_name == "Ana"
        assert participant.is_walk_in
        assert service.get_widget(widget.id).participants == [participant]

    def test_duplicate_walk_in_name(self, service):
        widget = service.create_widget(make_config())
        service.add_walk_in(widget.id, "Ana")

        with pytest.raises(RuleViolation) as exc_info:
            service.add_walk_in(widget.id, "ANA")
        assert exc_info.value.code == ErrorCode.DUPLICATE_RESOURCE
        assert len(service.get_widget(widget.id).participants) == 1

    def test_empty_walk_in_name(self, service):
        widget = service.create_widget(make_config())
        with pytest.raises(RuleViolation, match="empty"):
            service.add_walk_in(widget.id, "   ")

    def test_booking_participant(self, service):
        widget = service.create_widget(make_config())
        participant = service.add_booking_participant(widget.id, "b42", "Ana")

        assert participant.id == "booking_b42"
        assert participant.booking_id == "b42"
        with pytest.raises(RuleViolation) as exc_info:
            service.add_booking_participant(widget.id, "b42", "Ana again")
        assert exc_info.value.code == ErrorCode.DUPLICATE_RESOURCE

    def test_remove_participant(self, service):
        widget = service.create_widget(make_config())
        participant = service.add_walk_in(widget.id, "Ana")

        service.remove_participant(widget.id, participant.id)
        assert service.get_widget(widget.id).participants == []
        with pytest.raises(NotFoundError):
            service.remove_participant(widget.id, participant.id)

    def test_roster_frozen_after_start(self, service):
        widget = setup_widget(service)
        service.start_tournament(widget.id)

        with pytest.raises(RuleViolation):
            service.add_walk_in(widget.id, "Late Larry")
        with pytest.raises(RuleViolation):
            service.remove_participant(widget.id, service.get_widget(widget.id).participants[0].id)


class TestStart:
    """Test cases for start_tournament."""

    def test_start(self, service):
        widget = setup_widget(service)
        started = service.start_tournament(widget.id)

        assert started.status == WidgetStatus.ACTIVE
        state = service.get_widget(widget.id).widget_state.state
        assert state.current_round == 1
        assert state.total_rounds == 3
        assert state.started_at == NOW
        roster = [p.id for p in service.get_widget(widget.id).participants]
        assert [s.participant_id for s in state.standings] == roster

    def test_start_from_ready(self, service):
        widget = setup_widget(service)
        service.update_status(widget.id, WidgetStatus.READY)
        assert service.update_status(widget.id, WidgetStatus.ACTIVE).status == WidgetStatus.ACTIVE

    def test_roster_mismatch_leaves_widget_untouched(self, service):
        widget = setup_widget(service, players=7)

        with pytest.raises(RuleViolation) as exc_info:
            service.start_tournament(widget.id)
        assert exc_info.value.code == ErrorCode.ROSTER_MISMATCH

        loaded = service.get_widget(widget.id)
        assert loaded.status == WidgetStatus.SETUP
        assert loaded.widget_state is None

    def test_cannot_start_twice(self, service):
        widget = setup_widget(service)
        service.start_tournament(widget.id)
        with pytest.raises(RuleViolation):
            service.start_tournament(widget.id)

    def test_start_window_enforced(self, service):
        widget = service.create_widget(make_config(), class_start_time=NOW + timedelta(hours=5))
        for name in NAMES:
            service.add_walk_in(widget.id, name)

        with pytest.raises(RuleViolation, match="3h 0m") as exc_info:
            service.start_tournament(widget.id)
        assert exc_info.value.field == "start_time"

    def test_cancelled_widget_reports_status_before_start_window(self, service):
        widget = service.create_widget(make_config(), class_start_time=NOW + timedelta(hours=5))
        for name in NAMES:
            service.add_walk_in(widget.id, name)
        service.cancel_tournament(widget.id)

        with pytest.raises(RuleViolation, match="Widget must be in setup or ready status") as exc_info:
            service.start_tournament(widget.id)
        assert exc_info.value.field == "status"

    def test_completed_widget_reports_status_before_start_window(self, db):
        now = [NOW]
        service = TournamentService(db, Settings(), clock=lambda: now[0])
        widget = service.create_widget(make_config(), class_start_time=NOW + timedelta(hours=1))
        for name in NAMES:
            service.add_walk_in(widget.id, name)
        service.start_tournament(widget.id)
        service.complete_tournament(widget.id)

        # Clock moved back: the class start is now outside the window
        now[0] = NOW - timedelta(hours=5)
        with pytest.raises(RuleViolation) as exc_info:
            service.start_tournament(widget.id)
        assert exc_info.value.field == "status"
        assert "can be started in" not in str(exc_info.value)

    def test_start_window_can_be_disabled(self, db):
        service = TournamentService(db, Settings(enforce_start_window=False), clock=lambda: NOW)
        widget = service.create_widget(make_config(), class_start_time=NOW + timedelta(hours=5))
        for name in NAMES:
            service.add_walk_in(widget.id, name)

        assert service.start_tournament(widget.id).status == WidgetStatus.ACTIVE

    def test_roster_supplier(self, db):
        roster = [f"booking_{i}" for i in range(8)]
        supplier = MagicMock(return_value=roster)
        service = TournamentService(db, clock=lambda: NOW, roster_supplier=supplier)
        widget = service.create_widget(make_config())

        service.start_tournament(widget.id)

        supplier.assert_called_once()
        assert supplier.call_args[0][0].id == widget.id
        standings = service.get_leaderboard(widget.id)
        assert [s.participant_id for s in standings] == roster

    def test_unsupported_widget_type(self, service):
        widget = service.create_widget({"rounds": 3}, widget_type=WidgetType.TOURNAMENT_BRACKETS)
        with pytest.raises(RuleViolation) as exc_info:
            service.start_tournament(widget.id)
        assert exc_info.value.code == ErrorCode.UNSUPPORTED_WIDGET_TYPE

    def test_seeded_settings_give_repeatable_fixed_teams(self, tmp_path):
        def run(name):
            db = DatabaseManager(str(tmp_path / name))
            service = TournamentService(db, Settings(random_seed=9), clock=lambda: NOW)
            widget = setup_widget(service, max_matches=3, mode=TournamentMode.FIXED_TEAMS)
            service.start_tournament(widget.id)
            names = {p.id: p.display_name for p in service.get_widget(widget.id).participants}
            return [
                (tuple(names[p] for p in m.team1), tuple(names[p] for p in m.team2))
                for m in service.get_widget(widget.id).widget_state.state.matches
            ]

        assert run("a.sqlite") == run("b.sqlite")


class TestResults:
    """Test cases for recording results and advancing rounds."""

    def test_record_result(self, service):
        widget = setup_widget(service)
        service.start_tournament(widget.id)
        match = service.get_current_round_matches(widget.id)[0]

        state = service.record_match_result(widget.id, match.id, 21, 18)

        stored = service.get_widget(widget.id).widget_state.state
        assert stored == state
        recorded = next(m for m in stored.matches if m.id == match.id)
        assert (recorded.team1_score, recorded.team2_score) == (21, 18)
        assert recorded.completed_at == NOW
        assert service.get_leaderboard(widget.id)[0].participant_id in match.team1

    def test_record_before_start(self, service):
        widget = setup_widget(service)
        with pytest.raises(RuleViolation) as exc_info:
            service.record_match_result(widget.id, "match_r1_c1", 21, 18)
        assert exc_info.value.code == ErrorCode.ACTION_NOT_ALLOWED

    def test_unknown_match(self, service):
        widget = setup_widget(service)
        service.start_tournament(widget.id)
        with pytest.raises(NotFoundError):
            service.record_match_result(widget.id, "match_r9_c9", 21, 18)

    @pytest.mark.parametrize("score", [(21, 21), (22, 10), (-1, 21)])
    def test_invalid_scores(self, service, score):
        widget = setup_widget(service)
        service.start_tournament(widget.id)

        with pytest.raises(RuleViolation) as exc_info:
            service.record_match_result(widget.id, "match_r1_c1", *score)
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
        assert service.get_summary(widget.id).completed_matches == 0

    def test_draws_when_allowed(self, db):
        service = TournamentService(db, Settings(allow_draws=True), clock=lambda: NOW)
        widget = setup_widget(service)
        service.start_tournament(widget.id)

        service.record_match_result(widget.id, "match_r1_c1", 15, 15)
        played = [s for s in service.get_leaderboard(widget.id) if s.matches_played]
        assert len(played) == 4
        assert all(s.matches_won == 0 and s.matches_lost == 0 for s in played)

    def test_advance_round(self, service):
        widget = setup_widget(service)
        service.start_tournament(widget.id)

        with pytest.raises(RuleViolation) as exc_info:
            service.advance_round(widget.id)
        assert exc_info.value.code == ErrorCode.ROUND_NOT_COMPLETE

        play_round(service, widget.id)
        state = service.advance_round(widget.id)

        assert state.current_round == 2
        assert all(m.round_number == 2 for m in service.get_current_round_matches(widget.id))

    def test_advance_past_final_round(self, service):
        widget = setup_widget(service)
        service.start_tournament(widget.id)
        for _ in range(2):
            play_round(service, widget.id)
            service.advance_round(widget.id)
        play_round(service, widget.id)

        with pytest.raises(RuleViolation) as exc_info:
            service.advance_round(widget.id)
        assert exc_info.value.code == ErrorCode.FINAL_ROUND

    def test_queries(self, service):
        widget = setup_widget(service)
        service.start_tournament(widget.id)
        participant = service.get_widget(widget.id).participants[0]

        matches = service.get_participant_matches(widget.id, participant.id)
        assert len(matches) == 3
        summary = service.get_summary(widget.id)
        assert summary.total_matches == 6
        assert summary.is_complete is False

    def test_queries_before_start(self, service):
        widget = setup_widget(service)
        with pytest.raises(RuleViolation) as exc_info:
            service.get_leaderboard(widget.id)
        assert exc_info.value.code == ErrorCode.NOT_INITIALIZED


class TestFinish:
    """Test cases for completing and cancelling."""

    def test_complete_with_open_matches(self, service):
        widget = setup_widget(service)
        service.start_tournament(widget.id)

        completed = service.complete_tournament(widget.id)

        assert completed.status == WidgetStatus.COMPLETED
        assert completed.widget_state.state.completed_at == NOW
        with pytest.raises(RuleViolation):
            service.record_match_result(widget.id, "match_r1_c1", 21, 10)

    def test_completed_is_terminal(self, service):
        widget = setup_widget(service)
        service.start_tournament(widget.id)
        service.complete_tournament(widget.id)

        with pytest.raises(RuleViolation):
            service.cancel_tournament(widget.id)
        with pytest.raises(RuleViolation):
            service.update_status(widget.id, WidgetStatus.SETUP)

    @pytest.mark.parametrize("status", [WidgetStatus.SETUP, WidgetStatus.READY])
    def test_cancel_before_start(self, service, status):
        widget = service.create_widget(make_config())
        if status == WidgetStatus.READY:
            service.update_status(widget.id, WidgetStatus.READY)

        assert service.cancel_tournament(widget.id).status == WidgetStatus.CANCELLED
        with pytest.raises(RuleViolation):
            service.cancel_tournament(widget.id)

    def test_auto_complete(self, db):
        service = TournamentService(db, Settings(auto_complete=True), clock=lambda: NOW)
        widget = setup_widget(service)
        service.start_tournament(widget.id)

        state = None
        for round_number in range(1, 4):
            for match in get_matches_for_round(service.get_widget(widget.id).widget_state.state.matches, round_number):
                state = service.record_match_result(widget.id, match.id, 21, 9)

        assert state.completed_at == NOW
        assert service.get_widget(widget.id).status == WidgetStatus.COMPLETED

    def test_without_auto_complete_stays_active(self, service):
        widget = setup_widget(service)
        service.start_tournament(widget.id)
        for round_number in range(1, 4):
            for match in get_matches_for_round(service.get_widget(widget.id).widget_state.state.matches, round_number):
                service.record_match_result(widget.id, match.id, 21, 9)

        assert service.get_widget(widget.id).status == WidgetStatus.ACTIVE
        assert service.get_summary(widget.id).is_complete is True
