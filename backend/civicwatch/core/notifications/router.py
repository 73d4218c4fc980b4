import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from civicwatch.core.notifications import service
from civicwatch.core.notifications.schemas import NotificationRead
from civicwatch.dependencies import CurrentUser, get_current_user, get_db

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationRead])
async def list_notifications(
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    return await service.list_notifications(db, current.user_id)


@router.put("/{notification_id}/read", response_model=NotificationRead)
async def mark_read(
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    return await service.set_read_state(db, notification_id, current.user_id, True)


@router.put("/{notification_id}/unread", response_model=NotificationRead)
async def mark_unread(
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    return await service.set_read_state(db, notification_id, current.user_id, False)
