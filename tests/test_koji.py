import json
from datetime import datetime, timezone

import pytest
import requests
import responses

from fletchling.koji import (
    Geofence,
    GeofenceProperty,
    KojiAPIClient,
    KojiError,
    Project,
    Property,
    RouteBrief,
    decode_response,
    properties_by_id,
    properties_by_name,
)

BASE = "http://koji.example.com"
FC_URL = BASE + "/api/v1/geofence/feature-collection/nests"
FC = {"type": "FeatureCollection", "features": [{"type": "Feature", "properties": {"name": "a"}}]}


def test_decode_ok():
    body = json.dumps({"data": {"x": 1}, "message": "", "status": "ok", "status_code": 200})
    assert decode_response(200, "OK", body) == {"x": 1}


def test_decode_bad_status_with_message():
    body = json.dumps({"message": "not here"})
    with pytest.raises(KojiError) as info:
        decode_response(404, "Not Found", body)
    text = str(info.value)
    assert text.startswith("Received non-20[0,1,2] http status code from koji: 404")
    assert text.endswith("-- not here")


def test_decode_bad_status_without_message():
    with pytest.raises(KojiError, match="<no message>"):
        decode_response(500, "Internal Server Error", b"garbage")


def test_decode_invalid_json():
    with pytest.raises(KojiError):
        decode_response(200, "OK", b"")


def test_get_feature_collection_with_token():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, FC_URL, json={"data": FC, "status": "ok"})
        client = KojiAPIClient(BASE, bearer_token="token")
        assert client.get_feature_collection("nests") == FC
        headers = rsps.calls[0].request.headers
    assert headers["Authorization"] == "Bearer token"
    assert headers["Content-Type"] == "application/json"


def test_get_feature_collection_without_token():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, FC_URL, json={"data": FC})
        client = KojiAPIClient(BASE)
        assert client.get_feature_collection("nests") == FC
        assert "Authorization" not in rsps.calls[0].request.headers


def test_get_feature_collection_error_status():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, FC_URL, json={"message": "denied"}, status=401)
        with pytest.raises(KojiError, match="denied"):
            KojiAPIClient(BASE).get_feature_collection("nests")


def test_get_feature_collection_connection_error():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, FC_URL, body=requests.ConnectionError("down"))
        with pytest.raises(KojiError, match="error doing http request"):
            KojiAPIClient(BASE).get_feature_collection("nests")


def test_invalid_url():
    with pytest.raises(ValueError, match="Invalid Koji URL"):
        KojiAPIClient("http://[::1")


def test_properties_maps():
    props = [Property(name="a", property_id=1), Property(name="b", property_id=2)]
    by_id = properties_by_id(props)
    by_name = properties_by_name(props)
    assert by_id[2] is props[1]
    assert by_name["a"] is props[0]
    assert set(by_id) == {1, 2}


def test_property_json_uses_id_key():
    prop = Property.from_dict({"name": "park", "category": "string", "id": 5})
    assert prop.property_id == 5
    assert prop.to_dict() == {"name": "park", "category": "string", "default_value": None, "id": 5}


def test_geofence_round_trip():
    data = {
        "id": 3,
        "name": "Park",
        "geo_type": "Polygon",
        "mode": "unset",
        "parent": 1,
        "created_at": "2024-01-02T03:04:05+00:00",
        "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 0]]]},
        "properties": [{"property_id": 7, "name": "leisure", "value": "park"}],
        "routes": [{"id": 9, "name": "r"}],
        "projects": [4],
    }
    geofence = Geofence.from_dict(data)
    assert geofence.properties == [GeofenceProperty(7, "leisure", "park")]
    assert geofence.routes == [RouteBrief(9, "r")]
    assert geofence.created_at == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert geofence.to_dict() == data


def test_geofence_omits_empty():
    assert Geofence(id=1, name="x").to_dict() == {"id": 1, "name": "x", "geo_type": "", "mode": ""}


def test_project_parses_nanosecond_time():
    project = Project.from_dict({"id": 1, "name": "p", "created_at": "2024-01-02T03:04:05.123456789Z"})
    assert project.created_at == datetime(2024, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc)
    assert "api_key" not in project.to_dict()