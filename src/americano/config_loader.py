"""Configuration loader and validator.

Two YAML documents are supported: application settings and tournament
configs. Both are parsed into typed objects; business validation of a
tournament config stays in americano.validation.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from americano.models import VALID_MATCH_POINTS, Court, TournamentConfig, TournamentMode
from americano.scheduler import create_default_courts
from americano.storage import DEFAULT_DB_PATH

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class ConfigError(Exception):
    """Configuration validation error."""

    pass


@dataclass
class Settings:
    """Application settings."""

    database: str = DEFAULT_DB_PATH
    random_seed: Optional[int] = None
    allow_draws: bool = False
    start_window_hours: float = 2
    enforce_start_window: bool = True
    auto_complete: bool = False
    log_level: str = "INFO"


def load_yaml(path: str) -> dict[str, Any]:
    """Load a YAML mapping from file.

    Args:
        path: Path to YAML file

    Returns:
        Dictionary with the file's values

    Raises:
        ConfigError: If file not found, invalid YAML, empty or not a mapping
    """
    config_file = Path(path)

    if not config_file.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}")

    if config is None:
        raise ConfigError("Config file is empty")

    if not isinstance(config, dict):
        raise ConfigError("Config file must contain a mapping")

    return config


def _require_bool(config: dict[str, Any], key: str, default: bool) -> bool:
    value = config.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false")
    return value


def _require_int(config: dict[str, Any], key: str) -> int:
    if key not in config:
        raise ConfigError(f"Missing required field: {key}")
    value = config[key]
    # bool is an int subclass; reject it explicitly
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer")
    return value


# ============================================================================
# Settings
# ============================================================================


def validate_settings(config: dict[str, Any]) -> Settings:
    """Validate settings values.

    Unknown keys are ignored.

    Args:
        config: Settings dictionary

    Returns:
        Settings with defaults for missing keys

    Raises:
        ConfigError: If validation fails
    """
    settings = Settings()

    database = config.get("database", settings.database)
    if not isinstance(database, str) or not database.strip():
        raise ConfigError("database must be a non-empty path")
    settings.database = database

    # Random seed (optional, None means unseeded)
    seed = config.get("random_seed")
    if seed is not None and (not isinstance(seed, int) or isinstance(seed, bool)):
        raise ConfigError("random_seed must be an integer")
    settings.random_seed = seed

    settings.allow_draws = _require_bool(config, "allow_draws", settings.allow_draws)
    settings.enforce_start_window = _require_bool(
        config, "enforce_start_window", settings.enforce_start_window
    )
    settings.auto_complete = _require_bool(config, "auto_complete", settings.auto_complete)

    window = config.get("start_window_hours", settings.start_window_hours)
    if isinstance(window, bool) or not isinstance(window, (int, float)) or window <= 0:
        raise ConfigError("start_window_hours must be a positive number")
    settings.start_window_hours = window

    log_level = str(config.get("log_level", settings.log_level)).upper()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got '{log_level}'")
    settings.log_level = log_level

    return settings


def load_settings(path: Optional[str] = None) -> Settings:
    """Load and validate settings in one step.

    Args:
        path: Path to YAML settings file; None returns the defaults

    Returns:
        Validated Settings

    Raises:
        ConfigError: If loading or validation fails
    """
    if path is None:
        return Settings()
    return validate_settings(load_yaml(path))


# ============================================================================
# Tournament Config
# ============================================================================


def _parse_courts(value: Any) -> list[Court]:
    if isinstance(value, int) and not isinstance(value, bool):
        if value < 1:
            raise ConfigError("courts must be at least 1")
        return create_default_courts(value)

    if not isinstance(value, list):
        raise ConfigError("courts must be a count or a list of {id, name}")

    courts = []
    seen = set()
    for entry in value:
        if not isinstance(entry, dict) or "id" not in entry:
            raise ConfigError("Each court needs an id")
        court = Court.from_dict(entry)
        if court.id in seen:
            raise ConfigError(f"Duplicate court id: {court.id}")
        seen.add(court.id)
        courts.append(court)
    return courts


def parse_tournament_config(config: dict[str, Any]) -> TournamentConfig:
    """Build a TournamentConfig from a YAML mapping.

    Only shape and types are checked here; run validation.validate_config
    for player counts and per-player limits.

    Args:
        config: Mapping with number_of_players, match_points, courts,
            max_matches_per_player and optional mode

    Returns:
        TournamentConfig

    Raises:
        ConfigError: If a field is missing or malformed

    Examples:
        >>> parse_tournament_config({
        ...     "number_of_players": 8, "match_points": 21,
        ...     "courts": 2, "max_matches_per_player": 7,
        ... }).courts[1].name
        'Court B'
    """
    number_of_players = _require_int(config, "number_of_players")
    match_points = _require_int(config, "match_points")
    if match_points not in VALID_MATCH_POINTS:
        raise ConfigError(
            f"match_points must be one of {', '.join(str(p) for p in VALID_MATCH_POINTS)}, got {match_points}"
        )
    max_matches = _require_int(config, "max_matches_per_player")

    if "courts" not in config:
        raise ConfigError("Missing required field: courts")
    courts = _parse_courts(config["courts"])

    mode_value = config.get("mode", TournamentMode.INDIVIDUAL_ROTATION.value)
    try:
        mode = TournamentMode(mode_value)
    except ValueError:
        valid = ", ".join(m.value for m in TournamentMode)
        raise ConfigError(f"mode must be one of {valid}, got '{mode_value}'")

    return TournamentConfig(
        number_of_players=number_of_players,
        match_points=match_points,
        courts=courts,
        max_matches_per_player=max_matches,
        mode=mode,
    )


def load_tournament_config(path: str) -> TournamentConfig:
    """Load a tournament config YAML file.

    Raises:
        ConfigError: If loading or parsing fails
    """
    return parse_tournament_config(load_yaml(path))
