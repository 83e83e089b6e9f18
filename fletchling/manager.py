"""Owns the current nest processor, swaps it on reload and drives stats rotation."""

from __future__ import annotations

import logging
import threading
import time
from datetime import timedelta
from typing import Any, Iterable, Protocol

from fletchling.config import ProcessorConfig
from fletchling.matcher import NestMatcher
from fletchling.models import Nest, Pokemon
from fletchling.processor import NestProcessor
from fletchling.stats_collector import NoopStatsCollector
from fletchling.webhooks import NoopSender

_log = logging.getLogger(__name__)

_LOG_INTERVAL_SECONDS = 60.0
_POLL_SECONDS = 0.5


class NestLoader(Protocol):
    """Something that supplies the nests to track."""

    def load_nests(self) -> Iterable[Nest]:
        """Return the nests currently known."""


class NestProcessorManager:
    """Holds the active NestProcessor and replaces it when a config is loaded.

    A processor made on reload takes over the stats history of the previous
    one, and nests that survive the reload keep their nesting state.
    """

    def __init__(
        self,
        nest_loader: NestLoader,
        stats_collector: Any = None,
        webhook_sender: Any = None,
        nests_db_store: Any = None,
    ) -> None:
        self.nest_loader = nest_loader
        self.stats_collector = stats_collector if stats_collector is not None else NoopStatsCollector()
        self.webhook_sender = webhook_sender if webhook_sender is not None else NoopSender()
        self.nests_db_store = nests_db_store

        self._reload_lock = threading.Lock()
        self._reload_event = threading.Event()
        self._processor_lock = threading.Lock()
        self._nest_processor: NestProcessor | None = None

        self._counter_lock = threading.Lock()
        self._pokemon_processed = 0
        self._nests_matched = 0

    def get_nest_processor(self) -> NestProcessor | None:
        """The processor for the current configuration, or None before a load."""
        with self._processor_lock:
            return self._nest_processor

    def _require_processor(self) -> NestProcessor:
        processor = self.get_nest_processor()
        if processor is None:
            raise RuntimeError("no configuration loaded")
        return processor

    def get_config(self) -> ProcessorConfig:
        return self._require_processor().config

    def get_nest_by_id(self, nest_id: int) -> Nest | None:
        return self._require_processor().get_nest_by_id(nest_id)

    def get_nests(self) -> list[Nest]:
        return self._require_processor().get_nests()

    def process_pokemon(self, pokemon: Pokemon) -> None:
        result = self._require_processor().add_pokemon(pokemon)
        with self._counter_lock:
            self._pokemon_processed += 1
            self._nests_matched += result.num_nests_matched
        self.stats_collector.add_nests_matched(result.num_nests_matched)
        if result.num_nests_matched > 0:
            self.stats_collector.add_pokemon_matched(1)

    def _take_counters(self) -> tuple[int, int]:
        with self._counter_lock:
            counts = (self._pokemon_processed, self._nests_matched)
            self._pokemon_processed = 0
            self._nests_matched = 0
            return counts

    def _process_stats(self, processor: NestProcessor) -> None:
        _log.info("Rotating stats...")
        collection = processor.rotate_stats()
        _log.info("Done rotating stats.")
        if collection is not None:
            threading.Thread(
                target=processor.process_stats_collection,
                args=(collection,),
                daemon=True,
            ).start()

    def run(self, stop_event: threading.Event) -> None:
        """Rotate and process stats on schedule until ``stop_event`` is set.

        A configuration must have been loaded first.
        """
        processor = self.get_nest_processor()
        if processor is None:
            raise RuntimeError("a configuration must be loaded before calling run()")

        rotation = processor.config.rotation_interval().total_seconds()
        stats_start = time.monotonic()
        log_start = stats_start
        # Any reload queued before starting is already reflected in `processor`.
        self._reload_event.clear()

        while True:
            now = time.monotonic()
            wait = min(stats_start + rotation, log_start + _LOG_INTERVAL_SECONDS) - now
            if stop_event.wait(max(0.0, min(wait, _POLL_SECONDS))):
                return
            now = time.monotonic()

            if self._reload_event.is_set():
                self._reload_event.clear()
                processor = self._require_processor()
                new_rotation = processor.config.rotation_interval().total_seconds()
                if new_rotation != rotation:
                    _log.info(
                        "RELOAD: processing interval changed from %s to %s",
                        timedelta(seconds=rotation),
                        timedelta(seconds=new_rotation),
                    )
                    rotation = new_rotation
                    passed = now - stats_start
                    if passed >= rotation:
                        _log.info(
                            "RELOAD: processing time hit during reload. Will process stats now."
                        )
                        self._process_stats(processor)
                        stats_start = now
                        passed = 0.0
                    _log.info(
                        "RELOAD: next processing time set for %s from now",
                        timedelta(seconds=int(rotation - passed)),
                    )

            if now >= log_start + _LOG_INTERVAL_SECONDS:
                pokemon_count, nests_count = self._take_counters()
                _log.info(
                    "PROCESSOR: last minute: processed %d pokemon, matched %d nest(s)",
                    pokemon_count,
                    nests_count,
                )
                log_start = now

            if now >= stats_start + rotation:
                self._process_stats(processor)
                stats_start = now

    def load_config(self, config: ProcessorConfig) -> None:
        """Load the active nests and swap in a new processor for ``config``.

        Nests already being tracked keep their nesting state. On failure the
        running processor is left untouched.
        """
        with self._reload_lock:
            try:
                loaded = list(self.nest_loader.load_nests())
            except Exception as exc:
                raise RuntimeError(f"failed to load active nests: {exc}") from exc

            nests = [nest for nest in loaded if nest.active]
            _log.info("NEST-LOAD[]: Loaded %d active nest(s)", len(nests))

            matcher = NestMatcher()
            current = self._nest_processor

            for nest in nests:
                if current is not None:
                    old_nest = current.nest_matcher.get_nest_by_id(nest.id)
                    if old_nest is not None:
                        nest.stats_info = old_nest.stats_info

                full_name = nest.full_name()
                try:
                    matcher.add_nest(nest)
                except ValueError as exc:
                    _log.warning("NEST-LOAD[%s]: Failed to add nest to matcher: %s", full_name, exc)
                    continue

                if nest.spawnpoints is None:
                    spawnpoints = "unknown number of spawnpoints"
                else:
                    spawnpoints = f"{nest.spawnpoints} spawnpoint(s)"
                _log.info(
                    "NEST-LOAD[%s]: Nest loaded with %s covering %0.3f meters squared",
                    full_name,
                    spawnpoints,
                    nest.area_m2,
                )

            processor = NestProcessor(
                matcher,
                config,
                nests_db_store=self.nests_db_store,
                webhook_sender=self.webhook_sender,
                old_nest_processor=current,
            )
            processor.log_configuration("Config loaded: ", len(matcher))

            with self._processor_lock:
                self._nest_processor = processor
            self._reload_event.set()