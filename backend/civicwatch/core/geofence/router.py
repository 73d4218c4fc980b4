from fastapi import APIRouter, Depends

from civicwatch.core.geofence.schemas import GeofenceCheckRead, GeofenceCheckRequest
from civicwatch.core.geofence.service import GeofenceValidator
from civicwatch.dependencies import get_geofence_validator

router = APIRouter(prefix="/geofence", tags=["geofence"])


@router.get("/boundary")
async def get_boundary(geofence: GeofenceValidator = Depends(get_geofence_validator)):
    return geofence.boundary.geojson


@router.post("/check", response_model=GeofenceCheckRead)
async def check_point(
    data: GeofenceCheckRequest,
    geofence: GeofenceValidator = Depends(get_geofence_validator),
):
    result = geofence.validate(data.longitude, data.latitude)
    return GeofenceCheckRead(inside=result.inside, reason=result.reason)
