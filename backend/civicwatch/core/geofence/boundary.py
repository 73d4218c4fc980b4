import json
from pathlib import Path
from typing import Any

import httpx
from shapely.geometry import MultiPolygon, Point, Polygon, shape
from shapely.geometry.base import BaseGeometry

from civicwatch.exceptions import BoundaryUnavailableError
from civicwatch.logging import get_logger

log = get_logger(__name__)


class BoundaryPolygon:
    """Read-only service-area geometry. Coordinates are (longitude, latitude)."""

    def __init__(self, geojson: dict[str, Any], name: str | None = None):
        self.geojson = geojson
        self.geometry = _extract_geometry(geojson)
        self.name = name or _extract_name(geojson)

    def contains(self, longitude: float, latitude: float) -> bool:
        # covers() counts points on the boundary line as inside; both the
        # interactive and the final check go through here.
        return self.geometry.covers(Point(longitude, latitude))

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        return self.geometry.bounds


def _extract_geometry(geojson: dict[str, Any]) -> BaseGeometry:
    kind = geojson.get("type")
    if kind == "FeatureCollection":
        polygons = [_extract_geometry(feature) for feature in geojson.get("features", [])]
        if not polygons:
            raise ValueError("FeatureCollection has no features")
        if len(polygons) == 1:
            return polygons[0]
        parts: list[Polygon] = []
        for geom in polygons:
            parts.extend(geom.geoms if isinstance(geom, MultiPolygon) else [geom])
        return MultiPolygon(parts)
    if kind == "Feature":
        geometry = geojson.get("geometry")
        if not geometry:
            raise ValueError("Feature has no geometry")
        return _extract_geometry(geometry)
    if kind in ("Polygon", "MultiPolygon"):
        geom = shape(geojson)
        if geom.is_empty or not geom.is_valid:
            raise ValueError(f"{kind} geometry is empty or invalid")
        return geom
    raise ValueError(f"Unsupported boundary geometry type: {kind!r}")


def _extract_name(geojson: dict[str, Any]) -> str | None:
    if geojson.get("type") == "FeatureCollection":
        features = geojson.get("features") or []
        if len(features) == 1:
            return (features[0].get("properties") or {}).get("name")
        return geojson.get("name")
    if geojson.get("type") == "Feature":
        return (geojson.get("properties") or {}).get("name")
    return None


def _read_source(source: str, timeout: float) -> dict[str, Any]:
    if source.startswith(("http://", "https://")):
        response = httpx.get(source, timeout=timeout)
        response.raise_for_status()
        return response.json()
    return json.loads(Path(source).read_text(encoding="utf-8"))


def load_boundary(source: str, timeout: float = 5.0) -> BoundaryPolygon:
    try:
        geojson = _read_source(source, timeout)
        boundary = BoundaryPolygon(geojson)
    except (OSError, ValueError, TypeError, KeyError, httpx.HTTPError) as exc:
        log.error("boundary_load_failed", source=source, error=str(exc))
        raise BoundaryUnavailableError(source, str(exc)) from exc
    log.info("boundary_loaded", source=source, name=boundary.name, bounds=boundary.bounds)
    return boundary
