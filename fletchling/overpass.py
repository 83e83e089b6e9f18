"""Querying an Overpass server for areas where pokemon may nest."""

from __future__ import annotations

import json
import logging
import math
import random
import re
import threading
from dataclasses import dataclass
from typing import Any

import requests

from fletchling.util import sleep_context

_log = logging.getLogger(__name__)

_READ_AND_IDX = b"Dispatcher_Client::request_read_and_idx::"

_METERS_PER_DEGREE_LAT = 111131.75
_MAX_FUZZ_METERS = 5 * 1000
_MAX_DUPE_RETRIES = 5
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_INT_RE = re.compile(r"[+-]?[0-9]+")

SEARCH_PREFIX = "[out:json]\n[timeout:100000]\n[bbox:"
SEARCH_SUFFIX = """];
(
    way["landuse"~"farmland|farmyard|grass|greenfield|meadow|orchard|recreation_ground|vineyard"];
    way["leisure"~"garden|golf_course|nature_reserve|park|pitch|playground|recreation_ground"];
    way["natural"~"grassland|heath|moor|plateau|scrub"];

    rel["landuse"~"farmland|farmyard|grass|greenfield|meadow|orchard|recreation_ground|vineyard"];
    rel["leisure"~"garden|golf_course|nature_reserve|park|pitch|playground|recreation_ground"];
    rel["natural"~"grassland|heath|moor|plateau|scrub"];
);
out body;
>;
out skel qt;
"""

Bound = tuple[float, float, float, float]


class OverpassError(Exception):
    """The Overpass server reported an error."""


class OverpassTimeout(OverpassError):
    """The Overpass server timed out."""


class OverpassDuplicateQuery(OverpassError):
    """The Overpass server rejected the query as a duplicate."""


@dataclass
class OverpassConfig:
    """Where the Overpass server lives."""

    url: str = ""

    def validate(self) -> None:
        if not self.url:
            raise ValueError("No overpass url configured")


_KNOWN_ERRORS: tuple[tuple[bytes, type[OverpassError], str], ...] = (
    (b"timeout", OverpassTimeout, "timeout occurred"),
    (b"duplicate_query", OverpassDuplicateQuery, "dupe query"),
)


def match_body_against_errors(body: bytes | str) -> OverpassError | None:
    """The error an Overpass response body describes, or None if it has none."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    idx = body.find(_READ_AND_IDX)
    if idx < 0:
        return None
    rest = body[idx + len(_READ_AND_IDX):]
    for token, error_cls, message in _KNOWN_ERRORS:
        if rest.startswith(token):
            return error_cls(message)
    return OverpassError(f"unknown error: {rest.decode('utf-8', errors='replace')}")


def _parse_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INT_RE.fullmatch(value):
        parsed = int(value)
        if _INT64_MIN <= parsed <= _INT64_MAX:
            return parsed
    return None


def adjust_feature_properties(properties: dict[str, Any]) -> dict[str, Any]:
    """Flatten OSM tags into a feature's properties, in place.

    The name is taken from the tags when missing, ``meta``, ``relations`` and
    ``tags`` are dropped, tags never override existing properties, and an
    integer-like ``id`` becomes an int. Returns the same mapping.
    """
    tags = properties.get("tags")
    if not isinstance(tags, dict):
        tags = None

    name = properties.get("name")
    if not isinstance(name, str):
        name = ""
    if not name and tags is not None:
        tag_name = tags.get("name")
        if isinstance(tag_name, str):
            name = tag_name
    if name:
        properties["name"] = name

    nest_id = _parse_id(properties.get("id"))

    for key in ("meta", "relations", "tags"):
        properties.pop(key, None)

    if tags is not None:
        for key, value in tags.items():
            properties.setdefault(key, value)

    if nest_id is not None:
        properties["id"] = nest_id
    return properties


def pad_bound(bound: Bound, meters: float) -> Bound:
    """Grow a (min_lon, min_lat, max_lon, max_lat) bound by ``meters`` on each side."""
    min_lon, min_lat, max_lon, max_lat = bound
    dy = meters / _METERS_PER_DEGREE_LAT
    dx = max(
        dy / math.cos(math.radians(max_lat)),
        dy / math.cos(math.radians(min_lat)),
    )
    return (
        max(min_lon - dx, -180.0),
        max(min_lat - dy, -90.0),
        min(max_lon + dx, 180.0),
        min(max_lat + dy, 90.0),
    )


class OverpassClient:
    """Client for an Overpass interpreter endpoint."""

    def __init__(self, api_url: str, session: requests.Session | None = None) -> None:
        if not api_url:
            raise ValueError("No apiUrl given")
        self.api_url = api_url
        self._session = session if session is not None else requests.Session()

    def _fuzz_bound(self, bound: Bound) -> tuple[Bound, str]:
        bound = pad_bound(bound, float(random.randrange(_MAX_FUZZ_METERS)))
        min_lon, min_lat, max_lon, max_lat = bound
        return bound, f"{min_lat:f},{min_lon:f},{max_lat:f},{max_lon:f}"

    def _single_query(self, query: str) -> dict[str, Any]:
        response = self._session.post(
            self.api_url,
            data={"data": query},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        body = response.content

        if response.status_code != 200:
            error = match_body_against_errors(body)
            if error is not None:
                raise error
            raise OverpassError(
                f"received status code {response.status_code}: "
                f"body: {body.decode('utf-8', errors='replace')}"
            )

        try:
            return json.loads(body)
        except ValueError as exc:
            error = match_body_against_errors(body)
            if error is not None:
                raise error from exc
            raise OverpassError(f"invalid response: {exc}") from exc

    def get_possible_nest_locations(
        self, bound: Bound, stop_event: threading.Event | None = None
    ) -> dict[str, Any]:
        """Fetch parks, meadows and similar areas within a slightly padded bound.

        Timeouts are retried every second until ``stop_event`` is set; a
        duplicate query is retried with a re-fuzzed bound a few times.
        """
        bound, bbox = self._fuzz_bound(bound)
        tries_left = _MAX_DUPE_RETRIES
        while True:
            try:
                return self._single_query(SEARCH_PREFIX + bbox + SEARCH_SUFFIX)
            except OverpassTimeout:
                _log.warning("received timeout. sleeping 1 second.")
                sleep_context(stop_event, 1.0)
            except OverpassDuplicateQuery:
                if tries_left <= 0:
                    raise
                bound, bbox = self._fuzz_bound(bound)
                tries_left -= 1