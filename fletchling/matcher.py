"""Look-up of nests by the location of a pokemon."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from shapely.geometry import Point, shape
from shapely.geometry.base import BaseGeometry
from shapely.prepared import PreparedGeometry, prep

from fletchling.models import Nest

_FENCE_TYPES = frozenset({"Polygon", "MultiPolygon"})


def _to_shape(geometry: Any) -> BaseGeometry:
    """Turn a shapely geometry or a GeoJSON mapping into a polygonal shape."""
    if geometry is None:
        raise ValueError("nest has no geometry")
    if isinstance(geometry, BaseGeometry):
        geom = geometry
    elif isinstance(geometry, Mapping):
        try:
            geom = shape(geometry)
        except Exception as exc:
            raise ValueError(f"invalid geometry: {exc}") from exc
    else:
        raise ValueError(f"unsupported geometry of type '{type(geometry).__name__}'")
    if geom.geom_type not in _FENCE_TYPES:
        raise ValueError(f"unsupported geometry type '{geom.geom_type}'")
    if geom.is_empty:
        raise ValueError("geometry is empty")
    return geom


@dataclass(frozen=True)
class _Fence:
    min_x: float
    min_y: float
    max_x: float
    max_y: float
    prepared: PreparedGeometry
    nest: Nest

    def contains(self, lon: float, lat: float, point: Point) -> bool:
        if not (self.min_x <= lon <= self.max_x and self.min_y <= lat <= self.max_y):
            return False
        return self.prepared.contains(point)


class NestMatcher:
    """Nests indexed by id and by area. Nests do not change once added."""

    def __init__(self) -> None:
        self._nests: dict[int, Nest] = {}
        self._fences: list[_Fence] = []

    def get_matching_nests(self, lat: float, lon: float) -> list[Nest]:
        """Nests whose area contains the point; empty if none do."""
        point = Point(lon, lat)
        return [fence.nest for fence in self._fences if fence.contains(lon, lat, point)]

    def add_nest(self, nest: Nest) -> None:
        """Store a nest for matching. Raises ValueError on a duplicate id or bad geometry."""
        if nest.id in self._nests:
            raise ValueError(f"nest with id '{nest.id}' already exists")
        geom = _to_shape(nest.geometry)
        min_x, min_y, max_x, max_y = geom.bounds
        self._fences.append(_Fence(min_x, min_y, max_x, max_y, prep(geom), nest))
        self._nests[nest.id] = nest

    def __len__(self) -> int:
        return len(self._nests)

    def get_nest_by_id(self, nest_id: int) -> Nest | None:
        return self._nests.get(nest_id)

    def get_all_nests(self) -> list[Nest]:
        return list(self._nests.values())