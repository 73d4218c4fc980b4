from typing import Literal

from pydantic import BaseModel, Field


class GeoPoint(BaseModel):
    """GeoJSON Point, coordinates in [longitude, latitude] order."""

    type: Literal["Point"] = "Point"
    coordinates: tuple[float, float]

    @property
    def longitude(self) -> float:
        return self.coordinates[0]

    @property
    def latitude(self) -> float:
        return self.coordinates[1]

    @classmethod
    def from_lnglat(cls, longitude: float, latitude: float) -> "GeoPoint":
        return cls(coordinates=(longitude, latitude))


class GeofenceCheckRequest(BaseModel):
    longitude: float = Field(..., ge=-180, le=180)
    latitude: float = Field(..., ge=-90, le=90)


class GeofenceCheckRead(BaseModel):
    inside: bool
    reason: str | None = None
