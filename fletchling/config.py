"""Settings for nest detection and stats history."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

DEFAULT_ROTATION_INTERVAL_MINUTES = 15
DEFAULT_MIN_HISTORY_DURATION_HOURS = 1
DEFAULT_MAX_HISTORY_DURATION_HOURS = 12
DEFAULT_MIN_NEST_POKEMON = 4
DEFAULT_MIN_NEST_POKEMON_PCT = 12.0
DEFAULT_MIN_TOTAL_POKEMON = 12
DEFAULT_MAX_GLOBAL_SPAWN_PCT = 15.0
DEFAULT_MIN_NEST_PCT_TO_GLOBAL_PCT_RATIO = 8.0
DEFAULT_SKIP_PERIOD_MIN_GLOBAL_SPAWN_PCT = 40.0
DEFAULT_LOG_LAST_STATS_PERIOD = False
DEFAULT_NO_NESTING_POKEMON_AGE_HOURS = 12


def _format_duration(duration: timedelta) -> str:
    total = int(duration.total_seconds())
    if total == 0:
        return "0s"
    sign = "-" if total < 0 else ""
    hours, rem = divmod(abs(total), 3600)
    minutes, seconds = divmod(rem, 60)
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{sign}{minutes}m{seconds}s"
    return f"{sign}{seconds}s"


@dataclass
class ProcessorConfig:
    """Thresholds for deciding which pokemon is nesting."""

    log_last_stats_period: bool = DEFAULT_LOG_LAST_STATS_PERIOD
    min_spawnpoints: int = 0
    min_area_m2: float = 0.0
    max_area_m2: float = 0.0
    rotation_interval_minutes: int = DEFAULT_ROTATION_INTERVAL_MINUTES
    min_history_duration_hours: int = DEFAULT_MIN_HISTORY_DURATION_HOURS
    max_history_duration_hours: int = DEFAULT_MAX_HISTORY_DURATION_HOURS
    min_nest_pokemon: int = DEFAULT_MIN_NEST_POKEMON
    min_nest_pokemon_pct: float = DEFAULT_MIN_NEST_POKEMON_PCT
    min_total_pokemon: int = DEFAULT_MIN_TOTAL_POKEMON
    max_global_spawn_pct: float = DEFAULT_MAX_GLOBAL_SPAWN_PCT
    min_nest_pct_to_global_pct_ratio: float = DEFAULT_MIN_NEST_PCT_TO_GLOBAL_PCT_RATIO
    skip_period_min_global_spawn_pct: float = DEFAULT_SKIP_PERIOD_MIN_GLOBAL_SPAWN_PCT
    no_nesting_pokemon_age_hours: int = DEFAULT_NO_NESTING_POKEMON_AGE_HOURS

    def describe(self) -> str:
        """One-line summary of every setting, for logging."""
        parts = [
            f"log_last_stats_period: {str(self.log_last_stats_period).lower()}",
            f"min_spawnpoints: {self.min_spawnpoints}",
            f"min_area_m2: {self.min_area_m2:0.3f}",
            f"max_area_m2: {self.max_area_m2:0.3f}",
            f"rotation_interval_minutes: {self.rotation_interval_minutes}"
            f"({_format_duration(self.rotation_interval())})",
            f"min_history_duration_hours: {self.min_history_duration_hours}"
            f"({_format_duration(self.min_history_duration())})",
            f"max_history_duration_hours: {self.max_history_duration_hours}"
            f"({_format_duration(self.max_history_duration())})",
            f"min_nest_pokemon: {self.min_nest_pokemon}",
            f"min_nest_pokemon_pct: {self.min_nest_pokemon_pct:0.3f}",
            f"min_total_pokemon: {self.min_total_pokemon}",
            f"max_global_spawn_pct: {self.max_global_spawn_pct:0.3f}",
            f"min_nest_pct_to_global_pct_ratio: {self.min_nest_pct_to_global_pct_ratio:0.3f}",
            f"skip_period_min_global_spawn_pct: {self.skip_period_min_global_spawn_pct:0.3f}",
            f"no_nesting_pokemon_age_hours: {self.no_nesting_pokemon_age_hours}",
        ]
        return ", ".join(parts)

    def min_history_duration(self) -> timedelta:
        return timedelta(hours=self.min_history_duration_hours)

    def max_history_duration(self) -> timedelta:
        return timedelta(hours=self.max_history_duration_hours)

    def rotation_interval(self) -> timedelta:
        return timedelta(minutes=self.rotation_interval_minutes)

    def no_nesting_pokemon_age(self) -> timedelta:
        return timedelta(hours=self.no_nesting_pokemon_age_hours)

    def validate(self) -> None:
        """Raise ValueError if a setting is out of range."""
        val = self.rotation_interval_minutes
        if val < 1:
            raise ValueError(f"invalid rotation_interval_minutes '{val}': must be > 0")

        val = self.min_history_duration_hours
        if val < 1 or val > 12:
            raise ValueError(
                f"invalid min_history_duration_hours '{val}': must be > 0 and <= 12"
            )

        val = self.max_history_duration_hours
        if val <= 0 or val > 7 * 24:
            raise ValueError(
                f"invalid max_history_duration_hours '{val}': must be > 0 and <= {7 * 24}"
            )

        lo, hi = self.min_history_duration_hours, self.max_history_duration_hours
        if lo > hi:
            raise ValueError(
                f"min_history_duration_hours({lo}) > max_history_duration_hours({hi})"
            )

        pct = self.max_global_spawn_pct
        if 0 < pct < 1:
            raise ValueError(f"max_global_spawn_pct is too low ({pct:0.3f} < 1)")

        pct = self.skip_period_min_global_spawn_pct
        if 0 < pct < 3:
            raise ValueError(f"skip_period_min_global_spawn_pct is too low ({pct:0.3f} < 3)")


def default_config() -> ProcessorConfig:
    """A configuration holding the default thresholds."""
    return ProcessorConfig()