"""Client for the Koji geofence service and its data types."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Iterable
from urllib.parse import urlparse

import requests


class KojiError(Exception):
    """A request to Koji failed or returned an error."""


def decode_response(status_code: int, reason: str, body: bytes | str) -> Any:
    """Return the ``data`` member of a Koji response body.

    Raises KojiError for a status outside 200-202 or a body that is not a
    JSON object.
    """
    parsed: Any = None
    decode_error: Exception | None = None
    try:
        parsed = json.loads(body)
    except ValueError as exc:
        decode_error = exc
    if decode_error is None and not isinstance(parsed, dict):
        decode_error = ValueError("response is not a JSON object")

    if status_code < 200 or status_code > 202:
        message = parsed.get("message") if isinstance(parsed, dict) else None
        if not message:
            message = "<no message>"
        raise KojiError(
            "Received non-20[0,1,2] http status code from koji: "
            f"{status_code} {status_code} {reason} -- {message}"
        )
    if decode_error is not None:
        raise KojiError(f"error decoding koji response: {decode_error}")
    return parsed.get("data")


class KojiAPIClient:
    """Client for Koji's public API."""

    def __init__(
        self, url: str, bearer_token: str = "", session: requests.Session | None = None
    ) -> None:
        try:
            urlparse(url)
        except ValueError as exc:
            raise ValueError(f"Invalid Koji URL: {url}") from exc
        self.url = url + "/api/v1"
        self.bearer_token = bearer_token
        self._session = session if session is not None else requests.Session()

    def _request(self, method: str, path: str) -> requests.Response:
        headers = {"Content-Type": "application/json"}
        if self.bearer_token:
            headers["Authorization"] = "Bearer " + self.bearer_token
        try:
            return self._session.request(method, self.url + path, headers=headers)
        except requests.RequestException as exc:
            raise KojiError(f"error doing http request: {exc}") from exc

    def get_feature_collection(self, project: str) -> dict[str, Any]:
        """The GeoJSON feature collection of a project's geofences."""
        response = self._request("GET", "/geofence/feature-collection/" + project)
        data = decode_response(response.status_code, response.reason, response.content)
        if data is None:
            return {"type": "FeatureCollection", "features": []}
        return data


_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def _parse_time(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    text = _FRACTION_RE.sub(r"\1", str(value)).replace("Z", "+00:00")
    return datetime.fromisoformat(text)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (list, dict, str)) and not value)


class _JsonModel:
    """JSON mapping for the Koji dataclasses, driven by field metadata."""

    @classmethod
    def from_dict(cls, data: dict[str, Any]):
        kwargs: dict[str, Any] = {}
        for f in fields(cls):  # type: ignore[arg-type]
            key = f.metadata.get("json", f.name)
            if key not in data:
                continue
            value = data[key]
            if value is not None:
                if f.metadata.get("time"):
                    value = _parse_time(value)
                elif "item" in f.metadata:
                    value = [f.metadata["item"].from_dict(item) for item in value]
            kwargs[f.name] = value
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if f.metadata.get("omitempty") and _is_empty(value):
                continue
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, list):
                value = [v.to_dict() if isinstance(v, _JsonModel) else v for v in value]
            result[f.metadata.get("json", f.name)] = value
        return result


def _omit(**extra: Any) -> Any:
    return field(default=None, metadata={"omitempty": True, **extra})


@dataclass
class RouteBrief(_JsonModel):
    id: int = 0
    name: str = ""


@dataclass
class GeofenceBrief(_JsonModel):
    id: int = 0
    name: str = ""
    geo_type: str = ""
    mode: str = ""
    parent: int | None = _omit()


@dataclass
class Property(_JsonModel):
    name: str = ""
    category: str = ""
    default_value: Any = None
    property_id: int = field(default=0, metadata={"json": "id"})
    created_at: datetime | None = _omit(time=True)
    updated_at: datetime | None = _omit(time=True)


def properties_by_id(properties: Iterable[Property]) -> dict[int, Property]:
    return {prop.property_id: prop for prop in properties}


def properties_by_name(properties: Iterable[Property]) -> dict[str, Property]:
    return {prop.name: prop for prop in properties}


@dataclass
class GeofenceProperty(_JsonModel):
    property_id: int = 0
    name: str = ""
    value: Any = None


@dataclass
class Geofence(_JsonModel):
    id: int = 0
    name: str = ""
    geo_type: str = ""
    mode: str = ""
    parent: int | None = _omit()
    created_at: datetime | None = _omit(time=True)
    updated_at: datetime | None = _omit(time=True)
    geometry: dict[str, Any] | None = _omit()
    properties: list[GeofenceProperty] | None = _omit(item=GeofenceProperty)
    routes: list[RouteBrief] | None = _omit(item=RouteBrief)
    projects: list[int] | None = _omit()


@dataclass
class ProjectBrief(_JsonModel):
    id: int = 0
    name: str = ""
    geofences: list[int] = field(default_factory=list)


@dataclass
class Project(_JsonModel):
    id: int = 0
    name: str = ""
    geofences: list[int] = field(default_factory=list)
    created_at: datetime | None = field(default=None, metadata={"time": True})
    updated_at: datetime | None = field(default=None, metadata={"time": True})
    description: str | None = None
    scanner: bool = False
    api_endpoint: str | None = _omit()
    api_key: str | None = _omit()