"""Widget business rules.

State transitions, start preconditions and per-operation checks. Every
rule raises RuleViolation with a code and field when it does not hold.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from americano.errors import ErrorCode, RuleViolation
from americano.models import (
    Participant,
    TournamentConfig,
    Widget,
    WidgetStatus,
    WidgetType,
)
from americano.validation import validate_config, validate_match_scores

START_WINDOW_HOURS = 2

VALID_TRANSITIONS: dict[WidgetStatus, set[WidgetStatus]] = {
    WidgetStatus.SETUP: {WidgetStatus.READY, WidgetStatus.CANCELLED},
    WidgetStatus.READY: {WidgetStatus.ACTIVE, WidgetStatus.SETUP, WidgetStatus.CANCELLED},
    WidgetStatus.ACTIVE: {WidgetStatus.COMPLETED, WidgetStatus.CANCELLED},
    WidgetStatus.COMPLETED: set(),
    WidgetStatus.CANCELLED: set(),
}

PRE_START_STATUSES = (WidgetStatus.SETUP, WidgetStatus.READY)
CANCELLABLE_STATUSES = (WidgetStatus.SETUP, WidgetStatus.READY, WidgetStatus.ACTIVE)

__all__ = [
    "START_WINDOW_HOURS",
    "VALID_TRANSITIONS",
    "StartTimeCheck",
    "can_add_participant",
    "can_advance_round",
    "can_detach_widget",
    "can_record_match_result",
    "can_remove_participant",
    "can_start_americano_tournament",
    "can_start_tournament",
    "can_transition_status",
    "check_start_time_window",
    "enforce_start_time_window",
    "validate_match_scores",
    "walk_in_name_must_be_unique",
    "widget_must_be_in_status",
]


# ============================================================================
# Status Transitions
# ============================================================================


def can_transition_status(current: WidgetStatus, new: WidgetStatus) -> None:
    """Reject any transition not listed in VALID_TRANSITIONS."""
    if new not in VALID_TRANSITIONS[current]:
        raise RuleViolation(
            f"Cannot transition from '{current.value}' to '{new.value}'",
            ErrorCode.INVALID_TRANSITION,
            "status",
        )


def widget_must_be_in_status(widget: Widget, expected: tuple[WidgetStatus, ...]) -> None:
    if widget.status not in expected:
        names = " or ".join(s.value for s in expected)
        raise RuleViolation(f"Widget must be in {names} status", field="status")


def can_detach_widget(widget: Widget) -> None:
    """A widget cannot be removed while its tournament is running."""
    if widget.status == WidgetStatus.ACTIVE:
        raise RuleViolation("Cannot remove widget while tournament is in progress", field="status")


# ============================================================================
# Participants
# ============================================================================


def can_add_participant(widget: Widget) -> None:
    if widget.status not in PRE_START_STATUSES:
        raise RuleViolation("Can only add participants before tournament starts", field="status")


def can_remove_participant(widget: Widget) -> None:
    if widget.status not in PRE_START_STATUSES:
        raise RuleViolation("Can only remove participants before tournament starts", field="status")


def walk_in_name_must_be_unique(participants: list[Participant], name: str) -> None:
    """Walk-in names are compared case-insensitively against walk-ins only."""
    wanted = name.strip().lower()
    for participant in participants:
        if participant.is_walk_in and participant.display_name.strip().lower() == wanted:
            raise RuleViolation(
                f'A participant named "{name}" already exists',
                ErrorCode.DUPLICATE_RESOURCE,
                "walk_in.name",
            )


# ============================================================================
# Tournament Start
# ============================================================================


def can_start_americano_tournament(
    widget: Widget, participant_ids: list[str], config: TournamentConfig
) -> None:
    """Check status, roster size and config before an Americano starts."""
    if widget.status not in PRE_START_STATUSES:
        raise RuleViolation("Tournament must be in setup or ready status to start", field="status")

    if len(participant_ids) != config.number_of_players:
        raise RuleViolation(
            f"Need exactly {config.number_of_players} participants, have {len(participant_ids)}",
            ErrorCode.ROSTER_MISMATCH,
            "participants",
        )

    validation = validate_config(config)
    if not validation.is_valid:
        raise RuleViolation(
            f"Invalid tournament config: {', '.join(validation.errors)}",
            ErrorCode.VALIDATION_ERROR,
            "config",
        )


def can_start_tournament(widget: Widget, participant_ids: list[str]) -> None:
    """Dispatch start checks on the widget type."""
    if widget.status not in PRE_START_STATUSES:
        raise RuleViolation("Tournament must be in setup or ready status to start", field="status")

    widget_config = widget.widget_config
    if widget_config.type == WidgetType.TOURNAMENT_AMERICANO:
        can_start_americano_tournament(widget, participant_ids, widget_config.config)
    else:
        raise RuleViolation(
            f"Widget type '{widget_config.type.value}' cannot be started",
            ErrorCode.UNSUPPORTED_WIDGET_TYPE,
            "widget_config.type",
        )


@dataclass
class StartTimeCheck:
    """Outcome of check_start_time_window."""

    can_start: bool
    reason: Optional[str] = None
    allowed_start_time: Optional[datetime] = None
    minutes_until_allowed: Optional[int] = None


def check_start_time_window(
    class_start_time: datetime, now: datetime, window_hours: float = START_WINDOW_HOURS
) -> StartTimeCheck:
    """Check whether a class-bound tournament may start yet.

    Starting is allowed from window_hours before the class onward, so
    organizers cannot freeze the roster too early.

    Args:
        class_start_time: When the class begins
        now: Current time
        window_hours: Size of the window before class start

    Returns:
        StartTimeCheck; when starting is not yet allowed it carries the
        reason and the minutes remaining
    """
    allowed_start_time = class_start_time - timedelta(hours=window_hours)
    if now >= allowed_start_time:
        return StartTimeCheck(can_start=True)

    minutes_until_allowed = math.ceil((allowed_start_time - now).total_seconds() / 60)
    hours, minutes = divmod(minutes_until_allowed, 60)
    if hours > 0:
        reason = f"Tournament can be started in {hours}h {minutes}m"
    else:
        reason = f"Tournament can be started in {minutes} minutes"

    return StartTimeCheck(
        can_start=False,
        reason=reason,
        allowed_start_time=allowed_start_time,
        minutes_until_allowed=minutes_until_allowed,
    )


def enforce_start_time_window(
    class_start_time: datetime, now: datetime, window_hours: float = START_WINDOW_HOURS
) -> None:
    check = check_start_time_window(class_start_time, now, window_hours)
    if not check.can_start:
        raise RuleViolation(check.reason or "Tournament cannot be started yet", field="start_time")


# ============================================================================
# Match Results / Rounds
# ============================================================================


def can_record_match_result(widget: Widget) -> None:
    if widget.status != WidgetStatus.ACTIVE:
        raise RuleViolation("Can only record match results for active tournaments", field="status")


def can_advance_round(widget: Widget, current_round: int, total_rounds: int) -> None:
    """Status and final-round check at the orchestration boundary."""
    if widget.status != WidgetStatus.ACTIVE:
        raise RuleViolation("Can only advance rounds in active tournaments", field="status")

    if current_round >= total_rounds:
        raise RuleViolation("Already at the final round", ErrorCode.FINAL_ROUND, "current_round")
