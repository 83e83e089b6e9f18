from fletchling.stats_collector import (
    DEFAULT_PROMETHEUS_NAMESPACE,
    NoopStatsCollector,
    default_prometheus_config,
)


def test_noop_name():
    assert NoopStatsCollector().name() == "no-op"


def test_default_config_namespace_and_disabled():
    cfg = default_prometheus_config()
    assert cfg.namespace == "fletchling"
    assert cfg.namespace == DEFAULT_PROMETHEUS_NAMESPACE
    assert cfg.enabled is False


def test_default_buckets_match_source_and_are_ascending():
    buckets = default_prometheus_config().bucket_size
    assert buckets[0] == 0.00005
    assert buckets[-1] == 10
    assert len(buckets) == 18
    assert buckets == sorted(buckets)


def test_default_configs_do_not_share_buckets():
    first = default_prometheus_config()
    second = default_prometheus_config()
    first.bucket_size.append(100.0)
    assert 100.0 not in second.bucket_size