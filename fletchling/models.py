"""Core data types: pokemon keys, nests, nesting info and per-nest summaries."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, order=True)
class PokemonKey:
    """Identifies a pokemon by dex number and form."""

    pokemon_id: int
    form_id: int = 0

    def __str__(self) -> str:
        return f"{self.pokemon_id}:{self.form_id}"


@dataclass
class Pokemon:
    """A single pokemon sighting."""

    pokemon_id: int
    form_id: int = 0
    spawnpoint_id: int = 0
    lat: float = 0.0
    lon: float = 0.0

    def key(self) -> PokemonKey:
        return PokemonKey(self.pokemon_id, self.form_id)


@dataclass
class NestPokemonCountAndTotal:
    """Counts for one pokemon inside a nest, alongside nest and global totals."""

    rank: int
    pokemon_key: PokemonKey
    count: int = 0
    total: int = 0
    global_count: int = 0
    global_total: int = 0

    def nest_pct(self) -> float:
        if self.total == 0:
            return 0.0
        return 100 * self.count / self.total

    def global_pct(self) -> float:
        if self.global_total == 0:
            return 0.0
        return 100 * self.global_count / self.global_total


def sort_nest_pokemon_counts(
    entries: Iterable[NestPokemonCountAndTotal],
) -> list[NestPokemonCountAndTotal]:
    """Sort by count descending, then global count ascending; ranks follow the order."""
    ordered = sorted(entries, key=lambda e: (-e.count, e.global_count))
    for rank, entry in enumerate(ordered, start=1):
        entry.rank = rank
    return ordered


@dataclass
class NestTimePeriodSummary:
    """Pokemon seen in one nest over a span of time.

    ``duration`` is the real sum of the periods covered, which can be shorter
    than ``end_time - start_time`` when periods were thrown out.
    """

    nest: "Nest"
    start_time: datetime | None
    end_time: datetime | None
    duration: timedelta
    pokemon_counts_and_totals: list[NestPokemonCountAndTotal] = field(default_factory=list)


@dataclass
class NestingPokemonInfo:
    """The pokemon found nesting. Counts are for the key; totals for all pokemon."""

    pokemon_key: PokemonKey
    stats_duration_minutes: int = 0
    nest_count: int = 0
    nest_total: int = 0
    nest_hourly_count: float = 0.0
    nest_hourly_total: float = 0.0
    global_count: int = 0
    global_total: int = 0
    global_hourly_count: float = 0.0
    global_hourly_total: float = 0.0
    detected_at: datetime | None = None
    updated_at: datetime | None = None

    def nest_pct(self) -> float:
        if self.nest_total == 0:
            return 0.0
        return 100 * self.nest_count / self.nest_total

    def nest_ratio(self) -> float:
        if self.nest_count == self.nest_total:
            return 0.0
        return self.nest_count / (self.nest_total - self.nest_count)

    def global_pct(self) -> float:
        if self.global_total == 0:
            return 0.0
        return 100 * self.global_count / self.global_total

    def global_ratio(self) -> float:
        if self.global_count == self.global_total:
            return 0.0
        return self.global_count / (self.global_total - self.global_count)


class NestStatsInfo:
    """Thread-safe holder of a nest's nesting pokemon and its DB update time."""

    def __init__(
        self,
        nesting_pokemon: NestingPokemonInfo | None = None,
        updated_at: datetime | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._nesting_pokemon = nesting_pokemon
        self._updated_at = updated_at

    def get_nesting_pokemon(self) -> tuple[NestingPokemonInfo | None, datetime | None]:
        with self._lock:
            return self._nesting_pokemon, self._updated_at

    def set_updated_at(self, updated_at: datetime | None) -> datetime | None:
        """Set the update time and return the previous one."""
        with self._lock:
            old = self._updated_at
            self._updated_at = updated_at
            return old

    def set_nesting_pokemon(
        self, ni: NestingPokemonInfo | None, updated_at: datetime | None = None
    ) -> tuple[NestingPokemonInfo | None, datetime | None]:
        """Set the nesting pokemon (or none).

        Returns the previous nesting pokemon and the intended DB update time.
        The update time only moves when there is a nesting pokemon. If the same
        pokemon keeps nesting, its original ``detected_at`` is carried over.
        """
        with self._lock:
            old = self._nesting_pokemon
            if ni is not None:
                if updated_at is None:
                    updated_at = _now()
                self._updated_at = updated_at
                if old is not None and old.pokemon_key == ni.pokemon_key:
                    ni.detected_at = old.detected_at
            self._nesting_pokemon = ni
            return old, self._updated_at


@dataclass(eq=False)
class Nest:
    """A nest area. ``stats_info`` is shared between reloads of the same nest."""

    id: int
    name: str
    lat: float = 0.0
    lon: float = 0.0
    geometry: Any = None
    area_name: str | None = None
    spawnpoints: int | None = None
    area_m2: float = 0.0
    active: bool = True
    discarded: str = ""
    synced_to_db: bool = False
    exists_in_db: bool = False
    stats_info: NestStatsInfo = field(default_factory=NestStatsInfo)

    def full_name(self) -> str:
        prefix = f"{self.area_name}/" if self.area_name is not None else ""
        return f"{prefix}{self.name}(NestId:{self.id})"

    def __str__(self) -> str:
        return f"'{self.full_name()}' centered at {self.lat:0.5f},{self.lon:0.5f}"

    def as_partial_update(self, updated_at: datetime | None = None) -> dict[str, Any]:
        """Column values for a DB update of the nesting pokemon fields.

        With no ``updated_at`` the stored update time is used.
        """
        ni, stored_updated_at = self.stats_info.get_nesting_pokemon()
        when = updated_at if updated_at is not None else stored_updated_at
        update: dict[str, Any] = {
            "updated": int(when.timestamp()) if when is not None else None,
            "discarded": None if self.active else self.discarded,
            "pokemon_id": None,
            "pokemon_form": None,
            "pokemon_count": None,
            "pokemon_avg": None,
            "pokemon_ratio": None,
        }
        if ni is not None:
            update.update(
                pokemon_id=ni.pokemon_key.pokemon_id,
                pokemon_form=ni.pokemon_key.form_id,
                pokemon_count=float(ni.nest_count),
                pokemon_avg=ni.nest_hourly_count,
                pokemon_ratio=ni.nest_pct(),
            )
        return update