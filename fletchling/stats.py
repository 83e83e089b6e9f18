"""Pokemon counts per time period, per nest and globally, with rotating history."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable

from fletchling.models import (
    Nest,
    NestPokemonCountAndTotal,
    NestTimePeriodSummary,
    Pokemon,
    PokemonKey,
    sort_nest_pokemon_counts,
)
from fletchling.sorter import PokemonCountAndTotal, sort_pokemon_counts

_log = logging.getLogger(__name__)

_MINUTE = timedelta(minutes=1)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _truncate_minutes(duration: timedelta) -> timedelta:
    """Truncate toward zero to a whole number of minutes."""
    if duration >= timedelta(0):
        return (duration // _MINUTE) * _MINUTE
    return -((-duration // _MINUTE) * _MINUTE)


@dataclass
class AddPokemonStats:
    """Outcome of adding one pokemon to the stats."""

    was_counted: bool
    num_nests_matched: int


@dataclass
class CountsByPokemon:
    """A total and a count for each pokemon seen."""

    total: int = 0
    by_pokemon: dict[PokemonKey, int] = field(default_factory=dict)

    def subtract(self, other: CountsByPokemon) -> bool:
        """Remove ``other``'s counts. Returns True if nothing is left."""
        self.total -= other.total
        if self.total <= 0:
            if self.total < 0:
                _log.error(
                    "Total count in %r has gone negative after del of %r", self, other
                )
            self.by_pokemon = {}
            return True

        for key, count in other.by_pokemon.items():
            remaining = self.by_pokemon.get(key, 0) - count
            if remaining <= 0:
                if remaining < 0:
                    _log.error(
                        "Total count for pokemon %s gone negative (%d) after del of %d",
                        key,
                        remaining,
                        count,
                    )
                self.by_pokemon.pop(key, None)
            else:
                self.by_pokemon[key] = remaining
        return False

    def most_spawning_pokemon(self) -> tuple[PokemonKey, float]:
        """The most seen pokemon and its percentage of the total."""
        best = PokemonKey(0, 0)
        max_count = 0
        if self.total == 0:
            return best, 0.0
        for key, count in self.by_pokemon.items():
            if count > max_count:
                max_count = count
                best = key
        return best, 100 * max_count / self.total

    def clone(self) -> CountsByPokemon:
        return CountsByPokemon(self.total, dict(self.by_pokemon))


class CountsForTimePeriod:
    """Pokemon counts for one time period.

    ``start_time`` is set on creation; ``end_time`` is set when the period is
    closed and stays None while it is open.
    """

    def __init__(self, start_time: datetime | None = None) -> None:
        self._lock = threading.Lock()
        self.frozen = False
        self.start_time = start_time if start_time is not None else _now()
        self.end_time: datetime | None = None
        self.nest_counts: dict[int, CountsByPokemon] = {}
        self.global_counts = CountsByPokemon()

    def clone(self, end_time: datetime | None) -> CountsForTimePeriod:
        with self._lock:
            copy = CountsForTimePeriod(self.start_time)
            copy.end_time = end_time
            copy.nest_counts = {k: v.clone() for k, v in self.nest_counts.items()}
            copy.global_counts = self.global_counts.clone()
            return copy

    def subtract(self, other: CountsForTimePeriod) -> None:
        with self._lock:
            self.global_counts.subtract(other.global_counts)
            for nest_id, removed in other.nest_counts.items():
                counts = self.nest_counts.get(nest_id)
                if counts is None:
                    continue
                if counts.subtract(removed):
                    del self.nest_counts[nest_id]

    def duration(self) -> timedelta:
        end = self.end_time if self.end_time is not None else _now()
        return _truncate_minutes(end - self.start_time)

    def add_pokemon(self, pokemon: Pokemon, nests: Iterable[Nest]) -> bool:
        """Count a pokemon. Returns False if the period is frozen."""
        with self._lock:
            if self.frozen:
                return False
            key = pokemon.key()
            self.global_counts.total += 1
            self.global_counts.by_pokemon[key] = self.global_counts.by_pokemon.get(key, 0) + 1
            for nest in nests:
                counts = self.nest_counts.setdefault(nest.id, CountsByPokemon())
                counts.total += 1
                counts.by_pokemon[key] = counts.by_pokemon.get(key, 0) + 1
            return True

    def get_ordered_global_pokemon(self) -> list[PokemonCountAndTotal]:
        with self._lock:
            total = self.global_counts.total
            entries = [
                PokemonCountAndTotal(rank=0, pokemon_key=key, count=count, total=total)
                for key, count in self.global_counts.by_pokemon.items()
            ]
        return sort_pokemon_counts(entries)

    def get_summary_for_nest(
        self, nest: Nest, duration: timedelta
    ) -> NestTimePeriodSummary | None:
        """Pokemon seen in ``nest``, most seen first; None if the nest saw none.

        ``duration`` is passed in since the start and end times may span gaps.
        """
        with self._lock:
            counts = self.nest_counts.get(nest.id)
            if counts is None:
                return None
            global_counts = self.global_counts
            entries = [
                NestPokemonCountAndTotal(
                    rank=0,
                    pokemon_key=key,
                    count=count,
                    total=counts.total,
                    global_count=global_counts.by_pokemon.get(key, 0),
                    global_total=global_counts.total,
                )
                for key, count in counts.by_pokemon.items()
            ]
            start, end = self.start_time, self.end_time
        return NestTimePeriodSummary(
            nest=nest,
            start_time=start,
            end_time=end,
            duration=duration,
            pokemon_counts_and_totals=sort_nest_pokemon_counts(entries),
        )


@dataclass
class FrozenStatsCollection:
    """A fixed copy of the history: its periods, their summed duration and totals."""

    duration: timedelta
    counts_by_time_period: list[CountsForTimePeriod]
    totals: CountsForTimePeriod

    def __len__(self) -> int:
        return len(self.counts_by_time_period)

    def latest_entry(self) -> CountsForTimePeriod:
        return self.counts_by_time_period[-1]


class StatsCollection:
    """History of time periods, the last of which is the one being filled.

    ``duration`` is the summed duration of every period except the current one.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: list[CountsForTimePeriod] = [CountsForTimePeriod(_now())]
        self.totals = CountsForTimePeriod(_now())
        self.duration = timedelta(0)

    @property
    def counts_by_time_period(self) -> list[CountsForTimePeriod]:
        with self._lock:
            return list(self._counts)

    def __len__(self) -> int:
        with self._lock:
            return len(self._counts)

    def _remove(self, period: CountsForTimePeriod) -> timedelta:
        dur = period.duration()
        self.duration -= dur
        self.totals.subtract(period)
        return dur

    def _keep_recent(self, keep_duration: timedelta) -> tuple[int, timedelta]:
        purged = 0
        dur_purged = timedelta(0)
        while self._counts and self.duration > keep_duration:
            dur_purged += self._remove(self._counts.pop(0))
            purged += 1
        if not self._counts:
            self._counts.append(CountsForTimePeriod(_now()))
        self.totals.start_time = self._counts[0].start_time
        return purged, dur_purged

    def add_pokemon(self, pokemon: Pokemon, nests: Iterable[Nest]) -> bool:
        nests = list(nests)
        with self._lock:
            latest = self._counts[-1]
            if not latest.add_pokemon(pokemon, nests):
                _log.warning("time period unexpectedly frozen when adding pokemon")
                return False
            self.totals.add_pokemon(pokemon, nests)
            return True

    def get_snapshot(self) -> FrozenStatsCollection:
        """A copy of the history with the open period cloned and closed at now."""
        with self._lock:
            now = _now()
            counts = list(self._counts)
            last = counts[-1].clone(now)
            counts[-1] = last
            return FrozenStatsCollection(
                duration=self.duration + (last.end_time - last.start_time),
                counts_by_time_period=counts,
                totals=self.totals.clone(now),
            )

    def keep_recent(self, keep_duration: timedelta) -> tuple[int, timedelta]:
        """Drop the oldest periods while the history exceeds ``keep_duration``."""
        with self._lock:
            return self._keep_recent(keep_duration)

    def rotate(
        self, max_history_duration: timedelta, skip_period_min_global_spawn_pct: float
    ) -> FrozenStatsCollection | None:
        """Close the current period, open a new one and trim old history.

        Returns the history including the closed period, or None if that period
        was thrown away because one pokemon spawned above the skip percentage.
        """
        with self._lock:
            now = _now()
            latest = self._counts[-1]
            latest.end_time = now
            latest.frozen = True

            current: FrozenStatsCollection | None = None
            key, max_pct = latest.global_counts.most_spawning_pokemon()
            if skip_period_min_global_spawn_pct > 0 and max_pct > skip_period_min_global_spawn_pct:
                _log.info(
                    "Throwing away current time period: %s is spawning at %0.3f%%",
                    key,
                    max_pct,
                )
                self.totals.subtract(latest)
                self._counts[-1] = CountsForTimePeriod(now)
                self.totals.start_time = self._counts[0].start_time
            else:
                self.duration += latest.duration()
                current = FrozenStatsCollection(
                    duration=self.duration,
                    counts_by_time_period=list(self._counts),
                    totals=self.totals.clone(now),
                )
                self._counts.append(CountsForTimePeriod(now))

            self._keep_recent(max_history_duration)
            return current

    def purge_oldest(self, purge_duration: timedelta) -> tuple[int, timedelta]:
        """Drop whole oldest periods fitting within ``purge_duration``; keeps the current one."""
        with self._lock:
            purged = 0
            dur_purged = timedelta(0)
            while len(self._counts) > 1 and dur_purged + self._counts[0].duration() < purge_duration:
                dur_purged += self._remove(self._counts.pop(0))
                purged += 1
            self.totals.start_time = self._counts[0].start_time
            return purged, dur_purged

    def purge_newest(
        self, purge_duration: timedelta, include_current: bool
    ) -> tuple[int, timedelta]:
        """Drop the newest periods within ``purge_duration``.

        Unless ``include_current`` is set the open period is kept. If the open
        period is purged, a fresh one is started.
        """
        with self._lock:
            counts = self._counts
            current = None if include_current else counts.pop()
            purged = 0
            dur_purged = timedelta(0)
            while counts and dur_purged + counts[0].duration() < purge_duration:
                dur_purged += self._remove(counts.pop())
                purged += 1
            if current is not None:
                counts.append(current)
            elif purged > 0:
                counts.append(CountsForTimePeriod(_now()))
            self.totals.start_time = counts[0].start_time
            return purged, dur_purged