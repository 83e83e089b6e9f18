"""Counters for processed pokemon and matched nests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

DEFAULT_PROMETHEUS_NAMESPACE = "fletchling"

_DEFAULT_BUCKETS = (
    0.00005, 0.000075, 0.0001, 0.00025, 0.0005, 0.00075, 0.001, 0.0025,
    0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10,
)


def _require_count(num: int) -> None:
    if num < 0:
        raise ValueError(f"count must not be negative, not {num}")


class StatsCollector(Protocol):
    """Receives processing counts."""

    def name(self) -> str:
        """Short name of the collector."""

    def add_pokemon_processed(self, num: int) -> None:
        """Count pokemon received."""

    def add_pokemon_matched(self, num: int) -> None:
        """Count pokemon that matched at least one nest."""

    def add_nests_matched(self, num: int) -> None:
        """Count nest matches."""


class NoopStatsCollector:
    """A collector that checks and then ignores all counts."""

    def name(self) -> str:
        return "no-op"

    def add_pokemon_processed(self, num: int) -> None:
        _require_count(num)

    def add_pokemon_matched(self, num: int) -> None:
        _require_count(num)

    def add_nests_matched(self, num: int) -> None:
        _require_count(num)


@dataclass
class PrometheusConfig:
    """Settings for exporting metrics."""

    enabled: bool = False
    token: str = ""
    bucket_size: list[float] = field(default_factory=list)
    namespace: str = ""

    def validate(self) -> None:
        """When enabled, histogram buckets must be strictly increasing."""
        if not self.enabled:
            return
        for lower, upper in zip(self.bucket_size, self.bucket_size[1:]):
            if upper <= lower:
                raise ValueError(
                    f"bucket_size must be strictly increasing ({upper} follows {lower})"
                )


def default_prometheus_config() -> PrometheusConfig:
    """Metrics disabled, with the default buckets and namespace."""
    return PrometheusConfig(
        bucket_size=list(_DEFAULT_BUCKETS),
        namespace=DEFAULT_PROMETHEUS_NAMESPACE,
    )