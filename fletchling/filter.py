"""Checks that a nest area is suitable for tracking."""

from __future__ import annotations

from dataclasses import dataclass


class FilterError(ValueError):
    """A nest area fails one of the filter limits."""


@dataclass(frozen=True)
class Filter:
    """Minimum spawnpoints and area bounds. A max_area of 0 means no limit."""

    min_spawnpoints: int = 0
    min_area: float = 0.0
    max_area: float = 0.0

    def filter_spawnpoints(self, spawnpoints: int) -> None:
        if spawnpoints < self.min_spawnpoints:
            raise FilterError(
                f"spawnpoints {spawnpoints} < min_spawnpoints {self.min_spawnpoints}"
            )

    def filter_area(self, area: float) -> None:
        if area < self.min_area:
            raise FilterError(f"area {area:0.3f} < min_area {self.min_area:0.3f}")
        if self.max_area > 0 and area > self.max_area:
            raise FilterError(f"area {area:0.3f} > max_area {self.max_area:0.3f}")