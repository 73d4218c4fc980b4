import json
import warnings

import httpx
import pytest

from civicwatch.core.geofence import boundary as boundary_module
from civicwatch.core.geofence.boundary import BoundaryPolygon, load_boundary
from civicwatch.core.geofence.service import GeofenceValidator
from civicwatch.exceptions import BoundaryUnavailableError, GeofenceRejectedError, ValidationError

SQUARE = {
    "type": "Polygon",
    "coordinates": [[[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0], [0.0, 0.0]]],
}


def test_bielsko_biala_point_is_inside(geofence):
    result = geofence.validate(19.05, 49.82)
    assert result.inside
    assert result.reason is None
    geofence.ensure_inside(19.05, 49.82)


def test_null_island_is_outside(geofence):
    result = geofence.validate(0.0, 0.0)
    assert not result.inside
    assert "Bielsko-Biała" in result.reason
    with pytest.raises(GeofenceRejectedError) as exc:
        geofence.ensure_inside(0.0, 0.0)
    assert exc.value.reason == result.reason
    assert exc.value.status_code == 422


@pytest.mark.parametrize("point", [(19.05, 49.82), (19.0, 49.8), (18.5, 49.8), (19.05, 50.2), (0.0, 0.0)])
def test_interactive_and_final_checks_agree(geofence, point):
    inside = geofence.validate(*point).inside
    if inside:
        geofence.ensure_inside(*point)
    else:
        with pytest.raises(GeofenceRejectedError):
            geofence.ensure_inside(*point)


def test_boundary_line_counts_as_inside():
    validator = GeofenceValidator(BoundaryPolygon(SQUARE))
    assert validator.validate(0.0, 0.5).inside
    assert validator.validate(1.0, 1.0).inside


def test_multipolygon_feature_collection():
    other = {
        "type": "Polygon",
        "coordinates": [[[5.0, 5.0], [6.0, 5.0], [6.0, 6.0], [5.0, 6.0], [5.0, 5.0]]],
    }
    collection = {
        "type": "FeatureCollection",
        "name": "Two squares",
        "features": [
            {"type": "Feature", "properties": {}, "geometry": SQUARE},
            {"type": "Feature", "properties": {}, "geometry": other},
        ],
    }
    polygon = BoundaryPolygon(collection)
    assert polygon.name == "Two squares"
    assert polygon.contains(0.5, 0.5)
    assert polygon.contains(5.5, 5.5)
    assert not polygon.contains(3.0, 3.0)


@pytest.mark.parametrize("point", [(181.0, 10.0), (10.0, -91.0), (float("nan"), 1.0), (1.0, float("inf"))])
def test_invalid_coordinates_rejected(geofence, point):
    with pytest.raises(ValidationError):
        geofence.validate(*point)


def test_missing_boundary_file_fails_closed(tmp_path):
    with pytest.raises(BoundaryUnavailableError) as exc:
        load_boundary(str(tmp_path / "missing.geojson"))
    assert exc.value.status_code == 503


def test_unsupported_geometry_fails_closed(tmp_path):
    path = tmp_path / "line.geojson"
    path.write_text(json.dumps({"type": "LineString", "coordinates": [[0, 0], [1, 1]]}))
    with pytest.raises(BoundaryUnavailableError):
        load_boundary(str(path))


def test_boundary_fetched_over_http(monkeypatch):
    url = "https://boundaries.example.org/city.geojson"

    def fake_get(source, timeout):
        assert timeout == 2.5
        return httpx.Response(200, json=SQUARE, request=httpx.Request("GET", source))

    monkeypatch.setattr(boundary_module.httpx, "get", fake_get)
    polygon = load_boundary(url, timeout=2.5)
    assert polygon.contains(0.5, 0.5)


def test_http_error_fails_closed(monkeypatch):
    url = "https://boundaries.example.org/city.geojson"

    def fake_get(source, timeout):
        return httpx.Response(500, request=httpx.Request("GET", source))

    monkeypatch.setattr(boundary_module.httpx, "get", fake_get)
    with pytest.raises(BoundaryUnavailableError):
        load_boundary(url)


def test_unprocessable_errors_raise_no_warnings():
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        assert ValidationError().status_code == 422
        assert GeofenceRejectedError("outside", 0.0, 0.0).status_code == 422
