"""Decides which pokemon is nesting in each nest from collected stats."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from fletchling.config import ProcessorConfig
from fletchling.matcher import NestMatcher
from fletchling.models import (
    Nest,
    NestingPokemonInfo,
    NestPokemonCountAndTotal,
    NestTimePeriodSummary,
    Pokemon,
)
from fletchling.stats import (
    AddPokemonStats,
    CountsForTimePeriod,
    FrozenStatsCollection,
    StatsCollection,
)

_log = logging.getLogger(__name__)

_HOUR = timedelta(hours=1)
_MINUTE = timedelta(minutes=1)
_MAX_POKEMON_CONSIDERED = 10


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _truncate(duration: timedelta, unit: timedelta) -> timedelta:
    if duration >= timedelta(0):
        return (duration // unit) * unit
    return -((-duration // unit) * unit)


def _iso(when: datetime | None) -> str:
    return when.isoformat() if when is not None else "-"


class NestProcessor:
    """Nest matching and nesting detection for one loaded configuration.

    A new processor is made on every reload; it takes over the stats history
    of the previous one so counts carry across reloads.
    """

    def __init__(
        self,
        nest_matcher: NestMatcher,
        config: ProcessorConfig,
        nests_db_store: Any = None,
        webhook_sender: Any = None,
        old_nest_processor: NestProcessor | None = None,
    ) -> None:
        self.nest_matcher = nest_matcher
        self.config = config
        self.nests_db_store = nests_db_store
        self.webhook_sender = webhook_sender
        if old_nest_processor is None:
            self.stats_collection = StatsCollection()
        else:
            # Removed nests stay in the history until they cycle out; they
            # are skipped when the nesting pokemon is computed.
            self.stats_collection = old_nest_processor.stats_collection

    def log_configuration(self, prefix: str, num_nests: int) -> None:
        _log.info("%snumNests: %d, %s", prefix, num_nests, self.config.describe())

    def add_pokemon(self, pokemon: Pokemon) -> AddPokemonStats:
        nests = self.nest_matcher.get_matching_nests(pokemon.lat, pokemon.lon)
        was_counted = self.stats_collection.add_pokemon(pokemon, nests)
        return AddPokemonStats(was_counted=was_counted, num_nests_matched=len(nests))

    def rotate_stats(self) -> FrozenStatsCollection | None:
        return self.stats_collection.rotate(
            self.config.max_history_duration(),
            self.config.skip_period_min_global_spawn_pct,
        )

    def keep_recent_stats(self, keep_duration: timedelta) -> tuple[int, timedelta]:
        return self.stats_collection.keep_recent(keep_duration)

    def purge_newest_stats(
        self, purge_duration: timedelta, include_current: bool
    ) -> tuple[int, timedelta]:
        return self.stats_collection.purge_newest(purge_duration, include_current)

    def purge_oldest_stats(self, purge_duration: timedelta) -> tuple[int, timedelta]:
        return self.stats_collection.purge_oldest(purge_duration)

    def get_nest_by_id(self, nest_id: int) -> Nest | None:
        return self.nest_matcher.get_nest_by_id(nest_id)

    def get_nests(self) -> list[Nest]:
        return self.nest_matcher.get_all_nests()

    def get_stats_snapshot(self) -> FrozenStatsCollection:
        return self.stats_collection.get_snapshot()

    def _nesting_verdict(
        self,
        summary: NestTimePeriodSummary,
        stats: NestPokemonCountAndTotal,
        nest_pct: float,
        gbl_pct: float,
        ratio: float,
    ) -> tuple[NestingPokemonInfo | None, str]:
        cfg = self.config

        if nest_pct < cfg.min_nest_pokemon_pct:
            return None, (
                f"this pokemon's percent in the nest ({nest_pct:0.3f}) too small "
                f"(< {cfg.min_nest_pokemon_pct:0.3f})"
            )
        if nest_pct < gbl_pct:
            return None, (
                f"this pokemon's percent in the nest ({nest_pct:0.3f}) is less than "
                f"global spawn percent ({gbl_pct:0.3f})"
            )
        if ratio < cfg.min_nest_pct_to_global_pct_ratio:
            return None, (
                f"this pokemon's ratio ({ratio:0.3f}) of nest percent ({nest_pct:0.3f}) "
                f"to global percent ({gbl_pct:0.3f}) is too small "
                f"(< {cfg.min_nest_pct_to_global_pct_ratio:0.3f})"
            )
        max_pct = cfg.max_global_spawn_pct
        if max_pct > 0 and gbl_pct > max_pct:
            return None, (
                f"this pokemon's global spawn pct is too high ({gbl_pct:0.3f} > {max_pct:0.3f})"
            )
        if stats.total < cfg.min_total_pokemon:
            return None, (
                f"not enough pokemon seen overall ({stats.total} < {cfg.min_total_pokemon})"
            )
        if stats.count < cfg.min_nest_pokemon:
            return None, (
                f"not enough of this pokemon seen ({stats.count} < {cfg.min_nest_pokemon})"
            )
        if summary.duration < cfg.min_history_duration():
            return None, "not enough stats history yet"

        hours = summary.duration / _HOUR

        def hourly(value: int) -> float:
            return value / hours if hours > 0 else 0.0

        info = NestingPokemonInfo(
            pokemon_key=stats.pokemon_key,
            stats_duration_minutes=summary.duration // _MINUTE,
            nest_count=stats.count,
            nest_total=stats.total,
            nest_hourly_count=hourly(stats.count),
            nest_hourly_total=hourly(stats.total),
            global_count=stats.global_count,
            global_total=stats.global_total,
            global_hourly_count=hourly(stats.global_count),
            global_hourly_total=hourly(stats.global_total),
            detected_at=summary.end_time,
            updated_at=summary.end_time,
        )
        return info, "nesting!"

    def _log_and_compute_nesting(
        self,
        summary: NestTimePeriodSummary,
        stats: NestPokemonCountAndTotal,
        only_log: bool,
        log_prefix: str,
    ) -> NestingPokemonInfo | None:
        nest_pct = stats.nest_pct()
        gbl_pct = stats.global_pct()
        ratio = nest_pct / gbl_pct if gbl_pct != 0 else 0.0

        if only_log:
            info, reason = None, ""
        else:
            info, reason = self._nesting_verdict(summary, stats, nest_pct, gbl_pct, ratio)

        if log_prefix:
            message = (
                "%s NEST [%s] #%02d: %d:%d nest: %d/%d (%0.3f%%), global: %d/%d (%0.3f%%), "
                "nestPctToGlobalPctRatio: %0.3f)"
            )
            if reason:
                message += ": " + reason.replace("%", "%%")
            _log.info(
                message,
                log_prefix,
                summary.nest,
                stats.rank,
                stats.pokemon_key.pokemon_id,
                stats.pokemon_key.form_id,
                stats.count,
                stats.total,
                nest_pct,
                stats.global_count,
                stats.global_total,
                gbl_pct,
                ratio,
            )
        return info

    def _process_summary(
        self, summary: NestTimePeriodSummary, log_prefix: str
    ) -> NestingPokemonInfo | None:
        nesting: NestingPokemonInfo | None = None
        entries = summary.pokemon_counts_and_totals
        for idx, stats in enumerate(entries):
            if idx >= _MAX_POKEMON_CONSIDERED:
                if log_prefix:
                    _log.info(
                        "%s NEST [%s] Stopping at %d out of %d pokemon",
                        log_prefix,
                        summary.nest,
                        idx,
                        len(entries),
                    )
                break
            if (
                stats.global_total <= 0
                or stats.global_count <= 0
                or stats.total <= 0
                or stats.count <= 0
            ):
                _log.warning(
                    "PROCESSOR: Got unexpected stats when processing time period: %r", stats
                )
                continue
            result = self._log_and_compute_nesting(
                summary, stats, nesting is not None, log_prefix
            )
            if result is not None:
                nesting = result
        return nesting

    def _log_latest_entry(self, last: CountsForTimePeriod) -> None:
        end = last.end_time if last.end_time is not None else _now()
        period = end - last.start_time
        _log.info(
            "LAST-PERIOD: dur: %s, nests_processed: %d, global_mons: %d",
            _truncate(period, timedelta(seconds=1)),
            len(last.nest_counts),
            last.global_counts.total,
        )
        for nest_id in list(last.nest_counts):
            nest = self.get_nest_by_id(nest_id)
            if nest is None:
                _log.warning("LAST-PERIOD: Ignoring missing nest %d", nest_id)
                continue
            summary = last.get_summary_for_nest(nest, period)
            if summary is None:
                _log.warning("LAST-PERIOD: No summary for nest %s", nest)
                continue
            self._process_summary(summary, "LAST-PERIOD:")

    def _write_nest(self, nest: Nest, now: datetime, action: str) -> bool:
        if self.nests_db_store is not None:
            try:
                self.nests_db_store.update_nest_partial(nest.id, nest.as_partial_update(now))
            except Exception as exc:
                _log.error(
                    "PROCESSOR[%s]: failed to update DB to %s nesting pokemon: %s",
                    nest,
                    action,
                    exc,
                )
                return False
        return True

    def process_stats_collection(self, stats_collection: FrozenStatsCollection) -> None:
        """Work out the nesting pokemon of every nest seen in the history and store it."""
        self.log_configuration(
            "PROCESSOR: time period processing starting with configuration: ",
            len(self.nest_matcher),
        )
        try:
            self._process_collection(stats_collection)
        finally:
            _log.info("PROCESSOR: time period processing ending")

    def _process_collection(self, stats_collection: FrozenStatsCollection) -> None:
        totals = stats_collection.totals
        # Sum of the periods kept; shorter than end - start when periods were dropped.
        duration = stats_collection.duration
        end = totals.end_time if totals.end_time is not None else _now()
        full_duration = _truncate(end - totals.start_time, _MINUTE)
        with_gaps = " with gaps" if full_duration > duration else ""

        _log.info(
            "PROCESSOR: Processing %d time period(s) (%s (%s to %s%s)): "
            "%d nests with pokemon, total mons globally: %d",
            len(stats_collection),
            duration,
            _iso(totals.start_time),
            _iso(totals.end_time),
            with_gaps,
            len(totals.nest_counts),
            totals.global_counts.total,
        )

        if self.config.log_last_stats_period:
            self._log_latest_entry(stats_collection.latest_entry())

        now = _now()
        log_prefix = f"ALL-PERIODS({len(stats_collection)}):"
        min_history = self.config.min_history_duration()

        for nest_id in list(totals.nest_counts):
            nest = self.nest_matcher.get_nest_by_id(nest_id)
            if nest is None:
                _log.warning("PROCESSOR: Ignoring missing nest %d", nest_id)
                continue

            summary = totals.get_summary_for_nest(nest, duration)
            if summary is None:
                _log.warning("PROCESSOR: No summary for nest %s", nest)
                continue

            ni = self._process_summary(summary, log_prefix)

            if summary.duration < min_history:
                continue

            old_ni, db_updated_at = nest.stats_info.set_nesting_pokemon(ni, now)

            if ni is None:
                if old_ni is None:
                    _log.info("PROCESSOR[%s]: still does not have a nesting pokemon", nest)
                else:
                    _log.info(
                        "PROCESSOR[%s]: NEST-END: nesting pokemon was %s",
                        nest,
                        old_ni.pokemon_key,
                    )
                if (
                    db_updated_at is None
                    or now > db_updated_at + self.config.no_nesting_pokemon_age()
                ):
                    continue
                _log.info("PROCESSOR[%s]: Unsetting nesting pokemon in DB", nest)
                self._write_nest(nest, now, "unset")
                nest.stats_info.set_updated_at(now)
                continue

            if old_ni is None:
                _log.info(
                    "PROCESSOR[%s]: NEST-START: nesting pokemon is %s", nest, ni.pokemon_key
                )
                self._send_webhook(nest, ni)
            elif ni.pokemon_key != old_ni.pokemon_key:
                _log.info(
                    "PROCESSOR[%s]: NEST-CHANGE: nesting pokemon has changed from %s to %s",
                    nest,
                    old_ni.pokemon_key,
                    ni.pokemon_key,
                )
                self._send_webhook(nest, ni)

            gbl_pct = ni.global_pct()
            ratio = ni.nest_pct() / gbl_pct if gbl_pct > 0 else 0.0
            nesting_for = now - ni.detected_at if ni.detected_at is not None else timedelta(0)

            _log.info(
                "PROCESSOR[%s]: NESTING: %s (nestingFor:%s, statsDuration:%s, cnt:%d/%d, "
                "nestHourlyRate:%0.3f, nestPct:%0.3f, gblHourlyRate:%0.3f, gblPct:%0.3f, "
                "nestPctToGlobalPctRatio:%0.3f ",
                nest,
                ni.pokemon_key,
                nesting_for,
                timedelta(minutes=ni.stats_duration_minutes),
                ni.nest_count,
                ni.nest_total,
                ni.nest_hourly_count,
                ni.nest_pct(),
                ni.global_hourly_count,
                gbl_pct,
                ratio,
            )

            if not self._write_nest(nest, now, "set"):
                continue
            nest.stats_info.set_updated_at(now)

    def _send_webhook(self, nest: Nest, ni: NestingPokemonInfo) -> None:
        if self.webhook_sender is not None:
            self.webhook_sender.add_nest_webhook(nest, ni)