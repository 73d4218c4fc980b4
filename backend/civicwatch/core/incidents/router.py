import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from civicwatch.core.geofence.service import GeofenceValidator
from civicwatch.core.incidents import service
from civicwatch.core.incidents.schemas import (
    CommentCreate, CommentRead, IncidentCreate, IncidentDetailRead, IncidentPage,
    IncidentRead, IncidentSort, IncidentUpdate, StatusChangeRequest, StatusLogRead,
)
from civicwatch.core.incidents.status import StatusCategory, parse_status
from civicwatch.dependencies import (
    CurrentUser, get_current_user, get_db, get_geofence_validator, get_optional_user, require_admin,
)

router = APIRouter(tags=["incidents"])


@router.get("/categories", response_model=list[str])
async def list_categories():
    return service.list_categories()


@router.post("/incidents", response_model=IncidentRead, status_code=201)
async def create_incident(
    data: IncidentCreate,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser | None = Depends(get_optional_user),
    geofence: GeofenceValidator = Depends(get_geofence_validator),
):
    reporter_id = current.user_id if current else None
    return await service.create_incident(db, data, reporter_id, geofence)


@router.get("/incidents", response_model=IncidentPage)
async def list_incidents(
    status: str | None = None,
    status_category: StatusCategory | None = Query(None, alias="statusCategory"),
    category: str | None = None,
    search: str | None = None,
    sort: IncidentSort = IncidentSort.DATE_DESC,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    items, total = await service.list_incidents(
        db,
        status=parse_status(status) if status else None,
        status_category=status_category,
        category=category,
        search=search,
        sort=sort,
        page=page,
        limit=limit,
    )
    return {
        "items": items,
        "total": total,
        "total_pages": service.total_pages(total, limit),
        "page": page,
        "limit": limit,
    }


@router.get("/incidents/my", response_model=list[IncidentRead])
async def list_my_incidents(
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    return await service.list_my_incidents(db, current.user_id)


@router.get("/incidents/{incident_id}", response_model=IncidentDetailRead)
async def get_incident(incident_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await service.get_incident(db, incident_id)


@router.put("/incidents/{incident_id}", response_model=IncidentRead)
async def edit_incident(
    incident_id: uuid.UUID,
    data: IncidentUpdate,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
    geofence: GeofenceValidator = Depends(get_geofence_validator),
):
    return await service.edit_incident(db, incident_id, data, current.user_id, current.is_admin, geofence)


@router.delete("/incidents/{incident_id}", status_code=204)
async def delete_incident(
    incident_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    await service.delete_incident(db, incident_id, current.user_id, current.is_admin)


@router.put("/incidents/{incident_id}/status", response_model=IncidentRead)
async def change_status(
    incident_id: uuid.UUID,
    data: StatusChangeRequest,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    return await service.transition_status(db, incident_id, data.status, admin.user_id)


@router.get("/incidents/{incident_id}/status-logs", response_model=list[StatusLogRead])
async def list_status_logs(incident_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await service.list_status_log(db, incident_id)


@router.post("/incidents/{incident_id}/comments", response_model=CommentRead, status_code=201)
async def add_comment(
    incident_id: uuid.UUID,
    data: CommentCreate,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    return await service.add_comment(db, incident_id, data.text, current.user_id)


@router.get("/incidents/{incident_id}/comments", response_model=list[CommentRead])
async def list_comments(incident_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await service.list_comments(db, incident_id)
