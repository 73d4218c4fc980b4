import math
from dataclasses import dataclass
from functools import lru_cache

from civicwatch.core.geofence.boundary import BoundaryPolygon, load_boundary
from civicwatch.exceptions import GeofenceRejectedError, ValidationError
from civicwatch.logging import get_logger
from civicwatch.settings import get_settings

log = get_logger(__name__)

OUTSIDE_REASON = "Location is outside the service area"


@dataclass(frozen=True)
class GeofenceResult:
    inside: bool
    reason: str | None = None

    @classmethod
    def outside(cls, reason: str) -> "GeofenceResult":
        return cls(inside=False, reason=reason)


INSIDE = GeofenceResult(inside=True)


def check_coordinates(longitude: float, latitude: float) -> None:
    if not (math.isfinite(longitude) and math.isfinite(latitude)):
        raise ValidationError("Coordinates must be finite numbers")
    if not -180.0 <= longitude <= 180.0:
        raise ValidationError("Longitude must be between -180 and 180", {"longitude": longitude})
    if not -90.0 <= latitude <= 90.0:
        raise ValidationError("Latitude must be between -90 and 90", {"latitude": latitude})


class GeofenceValidator:
    """Accepts or rejects candidate coordinates against one service area.

    ``validate`` backs the interactive check endpoint; ``ensure_inside`` is
    the final guard on incident create and edit. Both use the same
    containment test.
    """

    def __init__(self, boundary: BoundaryPolygon):
        self.boundary = boundary

    def validate(self, longitude: float, latitude: float) -> GeofenceResult:
        check_coordinates(longitude, latitude)
        if self.boundary.contains(longitude, latitude):
            return INSIDE
        area = self.boundary.name or "the service area"
        return GeofenceResult.outside(f"Location is outside {area}")

    def ensure_inside(self, longitude: float, latitude: float) -> None:
        result = self.validate(longitude, latitude)
        if not result.inside:
            log.info("geofence_rejected", longitude=longitude, latitude=latitude)
            raise GeofenceRejectedError(result.reason or OUTSIDE_REASON, longitude, latitude)


@lru_cache
def get_geofence() -> GeofenceValidator:
    settings = get_settings()
    boundary = load_boundary(settings.BOUNDARY_SOURCE, timeout=settings.BOUNDARY_FETCH_TIMEOUT_SECONDS)
    return GeofenceValidator(boundary)
