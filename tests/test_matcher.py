import pytest
from shapely.geometry import MultiPolygon, Polygon

from fletchling.matcher import NestMatcher
from fletchling.models import Nest


def _square(x0, y0, size=1.0):
    return Polygon([(x0, y0), (x0 + size, y0), (x0 + size, y0 + size), (x0, y0 + size)])


def _nest(nest_id, geometry, name="park"):
    return Nest(id=nest_id, name=name, geometry=geometry)


def test_point_inside_matches():
    matcher = NestMatcher()
    nest = _nest(1, _square(10.0, 20.0))
    matcher.add_nest(nest)
    # lat is y, lon is x
    assert matcher.get_matching_nests(20.5, 10.5) == [nest]


def test_point_outside_matches_nothing():
    matcher = NestMatcher()
    matcher.add_nest(_nest(1, _square(10.0, 20.0)))
    assert matcher.get_matching_nests(10.5, 20.5) == []
    assert matcher.get_matching_nests(50.0, 50.0) == []


def test_overlapping_nests_both_match():
    matcher = NestMatcher()
    a = _nest(1, _square(0.0, 0.0, 2.0))
    b = _nest(2, _square(1.0, 1.0, 2.0))
    matcher.add_nest(a)
    matcher.add_nest(b)
    ids = {n.id for n in matcher.get_matching_nests(1.5, 1.5)}
    assert ids == {1, 2}
    assert [n.id for n in matcher.get_matching_nests(0.5, 0.5)] == [1]


def test_geojson_mapping_geometry():
    matcher = NestMatcher()
    geometry = {
        "type": "Polygon",
        "coordinates": [[[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0], [0.0, 0.0]]],
    }
    nest = _nest(7, geometry)
    matcher.add_nest(nest)
    assert matcher.get_matching_nests(0.5, 0.5) == [nest]


def test_multipolygon_geometry():
    matcher = NestMatcher()
    nest = _nest(3, MultiPolygon([_square(0.0, 0.0), _square(5.0, 5.0)]))
    matcher.add_nest(nest)
    assert matcher.get_matching_nests(5.5, 5.5) == [nest]
    assert matcher.get_matching_nests(3.0, 3.0) == []


def test_duplicate_id_rejected():
    matcher = NestMatcher()
    matcher.add_nest(_nest(1, _square(0.0, 0.0)))
    with pytest.raises(ValueError, match="already exists"):
        matcher.add_nest(_nest(1, _square(3.0, 3.0)))
    assert len(matcher) == 1


def test_missing_geometry_rejected():
    matcher = NestMatcher()
    with pytest.raises(ValueError):
        matcher.add_nest(_nest(1, None))
    assert len(matcher) == 0
    assert matcher.get_nest_by_id(1) is None


def test_point_geometry_rejected():
    matcher = NestMatcher()
    with pytest.raises(ValueError):
        matcher.add_nest(_nest(1, {"type": "Point", "coordinates": [1.0, 2.0]}))
    assert len(matcher) == 0


def test_lookup_by_id_and_all():
    matcher = NestMatcher()
    a = _nest(1, _square(0.0, 0.0))
    b = _nest(2, _square(5.0, 5.0))
    matcher.add_nest(a)
    matcher.add_nest(b)
    assert len(matcher) == 2
    assert matcher.get_nest_by_id(2) is b
    assert matcher.get_nest_by_id(99) is None
    assert {n.id for n in matcher.get_all_nests()} == {1, 2}