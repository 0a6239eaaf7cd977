"""Command-line interface for americano."""

import functools
import logging
import re
from datetime import datetime
from typing import Optional

import click

from americano.config_loader import ConfigError, load_settings, load_tournament_config
from americano.errors import AmericanoError
from americano.models import Match, Widget, WidgetStatus

logger = logging.getLogger(__name__)

SCORE_PATTERN = re.compile(r"^\s*(\d+)\s*[-:]\s*(\d+)\s*$")


def parse_score(score: str) -> tuple[int, int]:
    """Parse a score like "21-18" or "21:18".

    Raises:
        click.BadParameter: If the score is malformed
    """
    m = SCORE_PATTERN.match(score)
    if not m:
        raise click.BadParameter(f"Score must look like 21-18, got '{score}'", param_hint="SCORE")
    return int(m.group(1)), int(m.group(2))


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 datetime; without an offset it is local wall-clock time."""
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"Expected an ISO datetime, got '{value}'", param_hint="--class-start")
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def handle_errors(f):
    """Print domain and config errors as [ERROR] lines and abort."""

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (AmericanoError, ConfigError) as e:
            click.echo(f"[ERROR] {e}", err=True)
            raise click.Abort()

    return wrapper


def get_service(ctx: click.Context):
    """Build the service on first use so --help never touches the database."""
    from americano.service import TournamentService
    from americano.storage import DatabaseManager

    obj = ctx.find_root().obj
    if "service" not in obj:
        settings = obj["settings"]
        logger.debug("Using database %s", settings.database)
        obj["service"] = TournamentService(DatabaseManager(settings.database), settings)
    return obj["service"]


def _names(widget: Widget) -> dict[str, str]:
    return {p.id: p.display_name for p in widget.participants}


def _format_match(match: Match, names: dict[str, str]) -> str:
    def team(ids):
        return " / ".join(names.get(pid, pid) for pid in ids)

    score = f"{match.team1_score}-{match.team2_score}" if match.has_scores else "vs"
    return f"  [{match.id}] {match.court_id}: {team(match.team1)}  {score}  {team(match.team2)}"


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--settings",
    "settings_path",
    envvar="AMERICANO_SETTINGS",
    required=False,
    help="Path to settings YAML file",
)
@click.pass_context
def cli(ctx: click.Context, settings_path: Optional[str]):
    """Padel Americano - run rotating-partner padel tournaments from the command line."""
    try:
        settings = load_settings(settings_path)
    except ConfigError as e:
        click.echo(f"[ERROR] {e}", err=True)
        raise click.Abort()

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"settings": settings}


# ============================================================================
# Widgets
# ============================================================================


@cli.command()
@click.option("--config", "config_path", required=True, help="Path to tournament config YAML file")
@click.option("--class-start", required=False, help="Class start time (ISO 8601, local time unless an offset is given)")
@click.pass_context
@handle_errors
def create(ctx: click.Context, config_path: str, class_start: Optional[str]):
    """Create a tournament from a config file.

    Example:
        americano create --config config/sample_tournament.yaml --class-start 2026-10-18T19:00
    """
    config = load_tournament_config(config_path)
    widget = get_service(ctx).create_widget(config, parse_datetime(class_start))

    click.echo(f"[SUCCESS] Created tournament {widget.id}")
    click.echo(
        f"  {config.number_of_players} players, {len(config.courts)} courts, "
        f"{config.match_points} points, mode {config.mode.value}"
    )


@cli.command("list")
@click.option(
    "--status",
    type=click.Choice([s.value for s in WidgetStatus]),
    required=False,
    help="Only tournaments in this status",
)
@click.pass_context
@handle_errors
def list_widgets(ctx: click.Context, status: Optional[str]):
    """List tournaments."""
    widgets = get_service(ctx).list_widgets(WidgetStatus(status) if status else None)
    if not widgets:
        click.echo("[INFO] No tournaments found")
        return
    for widget in widgets:
        click.echo(str(widget))


@cli.command("set-status")
@click.argument("widget_id")
@click.argument("status", type=click.Choice([s.value for s in WidgetStatus]))
@click.pass_context
@handle_errors
def set_status(ctx: click.Context, widget_id: str, status: str):
    """Change a tournament's status."""
    widget = get_service(ctx).update_status(widget_id, WidgetStatus(status))
    click.echo(f"[SUCCESS] Tournament {widget_id} is now {widget.status.value}")


@cli.command()
@click.argument("widget_id")
@click.pass_context
@handle_errors
def cancel(ctx: click.Context, widget_id: str):
    """Cancel a tournament."""
    get_service(ctx).cancel_tournament(widget_id)
    click.echo(f"[SUCCESS] Tournament {widget_id} cancelled")


# ============================================================================
# Participants
# ============================================================================


@cli.command("add-player")
@click.argument("widget_id")
@click.argument("name")
@click.option("--phone", required=False, help="Contact phone")
@click.option("--email", required=False, help="Contact email")
@click.pass_context
@handle_errors
def add_player(ctx: click.Context, widget_id: str, name: str, phone: Optional[str], email: Optional[str]):
    """Register a walk-in player."""
    participant = get_service(ctx).add_walk_in(widget_id, name, phone=phone, email=email)
    click.echo(f"[SUCCESS] Added {participant.display_name} ({participant.id})")


@cli.command("add-booking")
@click.argument("widget_id")
@click.argument("booking_id")
@click.argument("name")
@click.pass_context
@handle_errors
def add_booking(ctx: click.Context, widget_id: str, booking_id: str, name: str):
    """Register a player from a class booking."""
    participant = get_service(ctx).add_booking_participant(widget_id, booking_id, name)
    click.echo(f"[SUCCESS] Added {participant.display_name} ({participant.id})")


@cli.command("remove-player")
@click.argument("widget_id")
@click.argument("participant_id")
@click.pass_context
@handle_errors
def remove_player(ctx: click.Context, widget_id: str, participant_id: str):
    """Remove a participant before the tournament starts."""
    get_service(ctx).remove_participant(widget_id, participant_id)
    click.echo(f"[SUCCESS] Removed {participant_id}")


# ============================================================================
# Tournament
# ============================================================================


@cli.command()
@click.argument("widget_id")
@click.pass_context
@handle_errors
def preview(ctx: click.Context, widget_id: str):
    """Show the schedule the current roster would produce."""
    service = get_service(ctx)
    widget = service.get_widget(widget_id)
    schedule = service.preview_schedule(widget_id)
    names = _names(widget)

    if schedule.placeholder_count:
        click.echo(f"[INFO] {schedule.placeholder_count} spots still open (shown as placeholders)")
    for round_number in range(1, schedule.total_rounds + 1):
        click.echo(f"\nRound {round_number}")
        for match in schedule.matches:
            if match.round_number == round_number:
                click.echo(_format_match(match, names))


@cli.command()
@click.argument("widget_id")
@click.pass_context
@handle_errors
def start(ctx: click.Context, widget_id: str):
    """Generate the schedule and start the tournament."""
    widget = get_service(ctx).start_tournament(widget_id)
    state = widget.widget_state.state
    click.echo(f"[SUCCESS] Tournament started: {len(state.matches)} matches over {state.total_rounds} rounds")


@cli.command()
@click.argument("widget_id")
@click.argument("match_id")
@click.argument("score")
@click.pass_context
@handle_errors
def record(ctx: click.Context, widget_id: str, match_id: str, score: str):
    """Record a match score, e.g. 21-18."""
    team1_score, team2_score = parse_score(score)
    state = get_service(ctx).record_match_result(widget_id, match_id, team1_score, team2_score)
    click.echo(f"[SUCCESS] {match_id}: {team1_score}-{team2_score}")
    if state.completed_at is not None:
        click.echo("[DONE] All results in, tournament completed")


@cli.command()
@click.argument("widget_id")
@click.pass_context
@handle_errors
def advance(ctx: click.Context, widget_id: str):
    """Move to the next round."""
    state = get_service(ctx).advance_round(widget_id)
    click.echo(f"[SUCCESS] Now playing round {state.current_round} of {state.total_rounds}")


@cli.command()
@click.argument("widget_id")
@click.pass_context
@handle_errors
def complete(ctx: click.Context, widget_id: str):
    """Finish the tournament."""
    widget = get_service(ctx).complete_tournament(widget_id)
    leader = widget.widget_state.state.standings[0] if widget.widget_state.state.standings else None
    click.echo(f"[SUCCESS] Tournament {widget_id} completed")
    if leader:
        click.echo(f"  Winner: {_names(widget).get(leader.participant_id, leader.participant_id)}")


@cli.command()
@click.argument("widget_id")
@click.pass_context
@handle_errors
def show(ctx: click.Context, widget_id: str):
    """Show tournament status and the current round."""
    service = get_service(ctx)
    widget = service.get_widget(widget_id)
    names = _names(widget)

    click.echo(str(widget))
    for participant in widget.participants:
        kind = "walk-in" if participant.is_walk_in else "booking"
        click.echo(f"  - {participant.display_name} ({participant.id}, {kind})")

    if widget.widget_state is None:
        return

    summary = service.get_summary(widget_id)
    click.echo(
        f"\nRound {summary.current_round}/{summary.total_rounds} - "
        f"{summary.completed_matches}/{summary.total_matches} matches played"
    )
    for match in service.get_current_round_matches(widget_id):
        click.echo(_format_match(match, names))


@cli.command()
@click.argument("widget_id")
@click.pass_context
@handle_errors
def standings(ctx: click.Context, widget_id: str):
    """Show the leaderboard."""
    service = get_service(ctx)
    names = _names(service.get_widget(widget_id))

    click.echo(f"{'Pos':<4}{'Player':<24}{'P':>3}{'W':>3}{'L':>3}{'PF':>5}{'PA':>5}{'Diff':>6}")
    for position, s in enumerate(service.get_leaderboard(widget_id), start=1):
        click.echo(
            f"{position:<4}{names.get(s.participant_id, s.participant_id):<24}"
            f"{s.matches_played:>3}{s.matches_won:>3}{s.matches_lost:>3}"
            f"{s.points_scored:>5}{s.points_conceded:>5}{s.points_difference:>+6d}"
        )


if __name__ == "__main__":
    cli()
