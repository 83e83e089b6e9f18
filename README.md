# fletchling

Fletchling works out which pokemon is nesting in each park or other nest area.
It counts the pokemon seen in each area over fixed time periods. It then
compares each species' share within the area with its share across all areas.
From that it decides which pokemon, if any, nests in each area.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Parts of the package

- `fletchling.models`: `Pokemon`, `PokemonKey`, `Nest`, `NestStatsInfo`,
  `NestingPokemonInfo`, `NestPokemonCountAndTotal` and `NestTimePeriodSummary`.
  `Nest.as_partial_update()` gives the column values for storing a nest's
  nesting pokemon.
- `fletchling.config`: `ProcessorConfig` and `default_config()`. These hold the
  thresholds that decide when a pokemon counts as nesting: minimum counts,
  percentages and ratios, history length and rotation interval.
  `ProcessorConfig.validate()` raises `ValueError` for out-of-range settings.
- `fletchling.filter`: `Filter`, which checks an area's spawnpoint count and size
  and raises `FilterError` when it falls outside the limits.
- `fletchling.sorter`: `PokemonCountAndTotal` and `sort_pokemon_counts()`.
- `fletchling.stats`: `StatsCollection`, which keeps per-period counts and
  running totals. It supports rotation, snapshots, keeping recent history and
  purging the oldest or newest periods.
- `fletchling.matcher`: `NestMatcher`, which finds the nests whose polygon
  contains a point. Nest geometry may be a shapely shape or a GeoJSON mapping.
- `fletchling.processor`: `NestProcessor`, which turns collected statistics into
  nesting pokemon decisions.
- `fletchling.manager`: `NestLoader` (a protocol) and `NestProcessorManager`.
  The manager loads nests and configuration, keeps nesting state across
  reloads, and rotates statistics on a timer in `run()`.
- `fletchling.webhooks`: `SettingsConfig`, `WebhookConfig`, `validate_webhooks()`
  and `NoopSender`.
- `fletchling.stats_collector`: `NoopStatsCollector`, `PrometheusConfig` and
  `default_prometheus_config()`.
- `fletchling.overpass`: `OverpassClient`, which queries an Overpass server for
  possible nest areas. Also provides `OverpassConfig`,
  `match_body_against_errors()`, `adjust_feature_properties()` and `pad_bound()`.
- `fletchling.koji`: `KojiAPIClient`, which fetches a project's geofence feature
  collection. Also provides the Koji data classes (`Geofence`, `Property`,
  `Project` and others) and `decode_response()`.
- `fletchling.logs`: `LogConfig`, which builds a logger that uses
  `PlainFormatter` and can also write to a size-rotated file.
- `fletchling.util`: `sleep_context()`, a sleep that a `threading.Event` can
  interrupt.

## Example

```python
from fletchling.config import default_config
from fletchling.matcher import NestMatcher
from fletchling.models import Nest, Pokemon
from fletchling.processor import NestProcessor

config = default_config()
config.validate()

matcher = NestMatcher()
matcher.add_nest(
    Nest(
        id=1,
        name="Park",
        lat=40.5,
        lon=-74.5,
        geometry={
            "type": "Polygon",
            "coordinates": [[[-75, 40], [-74, 40], [-74, 41], [-75, 41], [-75, 40]]],
        },
    )
)

processor = NestProcessor(matcher, config)
result = processor.add_pokemon(Pokemon(pokemon_id=1, form_id=0, lat=40.5, lon=-74.5))
print(result.num_nests_matched)  # 1

collection = processor.rotate_stats()
if collection is not None:
    processor.process_stats_collection(collection)
```

## What the package does not do

- There is no command-line program or web server. Pokemon must be fed in by
  calling `NestProcessorManager.process_pokemon()` or `NestProcessor.add_pokemon()`.
- There is no database layer. Nests come from any object with a `load_nests()`
  method. Results are written only if you pass a store object whose
  `update_nest_partial(nest_id, update)` method saves them.
- Webhooks are not delivered. `NoopSender` only counts the nest webhooks it is
  given. Any object with an `add_nest_webhook(nest, ni)` method can take its place.
- Metrics are not exported. `PrometheusConfig` only holds and checks settings,
  and `NoopStatsCollector` discards the counts it receives.