import threading
import time

import pytest

from fletchling.config import ProcessorConfig
from fletchling.manager import NestProcessorManager
from fletchling.models import Nest, NestingPokemonInfo, Pokemon, PokemonKey


def _square(x0, y0, x1, y1):
    return {
        "type": "Polygon",
        "coordinates": [[[x0, y0], [x1, y0], [x1, y1], [x0, y1], [x0, y0]]],
    }


class FakeLoader:
    def __init__(self, nests):
        self.nests = nests

    def load_nests(self):
        return list(self.nests)


class FailingLoader:
    def load_nests(self):
        raise OSError("database down")


class RecordingCollector:
    def __init__(self):
        self.nests_matched = []
        self.pokemon_matched = []

    def name(self):
        return "recording"

    def add_pokemon_processed(self, num):
        pass

    def add_pokemon_matched(self, num):
        self.pokemon_matched.append(num)

    def add_nests_matched(self, num):
        self.nests_matched.append(num)


def _nest(nest_id, active=True, geometry=None):
    return Nest(
        id=nest_id,
        name=f"park{nest_id}",
        lat=0.5,
        lon=0.5,
        geometry=geometry if geometry is not None else _square(0, 0, 1, 1),
        active=active,
    )


def test_no_processor_before_load():
    mgr = NestProcessorManager(FakeLoader([]))
    assert mgr.get_nest_processor() is None
    with pytest.raises(RuntimeError):
        mgr.get_nests()


def test_load_config_exposes_nests_and_config():
    config = ProcessorConfig(min_nest_pokemon=7)
    mgr = NestProcessorManager(FakeLoader([_nest(1), _nest(2, geometry=_square(5, 5, 6, 6))]))
    mgr.load_config(config)
    assert sorted(n.id for n in mgr.get_nests()) == [1, 2]
    assert mgr.get_nest_by_id(2).name == "park2"
    assert mgr.get_nest_by_id(99) is None
    assert mgr.get_config() is config


def test_inactive_and_duplicate_nests_are_skipped():
    first = _nest(1)
    duplicate = _nest(1)
    mgr = NestProcessorManager(FakeLoader([first, duplicate, _nest(3, active=False)]))
    mgr.load_config(ProcessorConfig())
    nests = mgr.get_nests()
    assert len(nests) == 1
    assert nests[0] is first


def test_reload_keeps_stats_info_and_history():
    loader = FakeLoader([_nest(1)])
    mgr = NestProcessorManager(loader)
    mgr.load_config(ProcessorConfig())
    old_info = mgr.get_nest_by_id(1).stats_info
    old_info.set_nesting_pokemon(NestingPokemonInfo(pokemon_key=PokemonKey(25, 0)))
    mgr.process_pokemon(Pokemon(25, 0, lat=0.5, lon=0.5))

    loader.nests = [_nest(1)]
    mgr.load_config(ProcessorConfig())
    reloaded = mgr.get_nest_by_id(1)
    assert reloaded.stats_info is old_info
    ni, _ = reloaded.stats_info.get_nesting_pokemon()
    assert ni.pokemon_key == PokemonKey(25, 0)

    snapshot = mgr.get_nest_processor().get_stats_snapshot()
    assert snapshot.totals.global_counts.total == 1
    assert snapshot.totals.nest_counts[1].by_pokemon[PokemonKey(25, 0)] == 1


def test_process_pokemon_reports_matches():
    collector = RecordingCollector()
    mgr = NestProcessorManager(FakeLoader([_nest(1)]), stats_collector=collector)
    mgr.load_config(ProcessorConfig())
    mgr.process_pokemon(Pokemon(1, 0, lat=0.5, lon=0.5))
    mgr.process_pokemon(Pokemon(1, 0, lat=10.0, lon=10.0))
    assert collector.nests_matched == [1, 0]
    assert collector.pokemon_matched == [1]


def test_failed_reload_keeps_running_processor():
    mgr = NestProcessorManager(FakeLoader([_nest(1)]))
    mgr.load_config(ProcessorConfig())
    processor = mgr.get_nest_processor()
    mgr.nest_loader = FailingLoader()
    with pytest.raises(RuntimeError, match="failed to load active nests"):
        mgr.load_config(ProcessorConfig())
    assert mgr.get_nest_processor() is processor


def test_run_requires_config():
    mgr = NestProcessorManager(FakeLoader([]))
    with pytest.raises(RuntimeError):
        mgr.run(threading.Event())


def test_run_stops_when_event_set():
    mgr = NestProcessorManager(FakeLoader([_nest(1)]))
    mgr.load_config(ProcessorConfig())
    stop = threading.Event()
    worker = threading.Thread(target=mgr.run, args=(stop,), daemon=True)
    worker.start()
    mgr.load_config(ProcessorConfig(rotation_interval_minutes=30))
    time.sleep(0.1)
    stop.set()
    worker.join(timeout=5)
    assert not worker.is_alive()
    assert mgr.get_config().rotation_interval_minutes == 30