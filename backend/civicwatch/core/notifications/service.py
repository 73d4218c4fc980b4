import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from civicwatch.core.incidents.models import Incident
from civicwatch.core.incidents.status import StatusChange
from civicwatch.core.notifications.models import Notification
from civicwatch.db.session import read_with_retries
from civicwatch.exceptions import NotFoundError, UnauthorizedError
from civicwatch.logging import get_logger

log = get_logger(__name__)

STATUS_MESSAGE = "Your incident of category {category} was updated to status {status}"


def build_status_message(category: str, new_status: str) -> str:
    return STATUS_MESSAGE.format(category=category, status=new_status)


async def create_notification(
    db: AsyncSession,
    recipient_id: uuid.UUID,
    message: str,
    related_incident_id: uuid.UUID | None = None,
) -> Notification:
    notification = Notification(
        recipient_id=recipient_id,
        message=message,
        related_incident_id=related_incident_id,
        is_read=False,
    )
    db.add(notification)
    await db.flush()
    return notification


async def dispatch_status_notification(
    db: AsyncSession,
    incident: Incident,
    change: StatusChange,
) -> Notification | None:
    """Tell the reporter about a committed status change.

    Runs in a SAVEPOINT: if creating the notification fails, only the
    savepoint is rolled back and the failure is logged. The status change
    and its log entry stay in the outer transaction.
    """
    if incident.reporter_id is None:
        log.debug("notification_skipped_anonymous", incident_id=str(incident.id))
        return None

    message = build_status_message(incident.category, change.new_status.value)
    try:
        async with db.begin_nested():
            notification = await create_notification(db, incident.reporter_id, message, incident.id)
    except Exception:
        log.exception(
            "notification_dispatch_failed",
            incident_id=str(incident.id),
            recipient_id=str(incident.reporter_id),
            new_status=change.new_status.value,
        )
        return None

    log.info(
        "notification_dispatched",
        incident_id=str(incident.id),
        recipient_id=str(incident.reporter_id),
        notification_id=str(notification.id),
    )
    return notification


async def list_notifications(db: AsyncSession, recipient_id: uuid.UUID) -> list[Notification]:
    async def _query() -> list[Notification]:
        result = await db.execute(
            select(Notification)
            .where(Notification.recipient_id == recipient_id)
            .order_by(Notification.created_at.desc(), Notification.id)
        )
        return list(result.scalars().all())

    return await read_with_retries(db, _query)


async def set_read_state(
    db: AsyncSession,
    notification_id: uuid.UUID,
    recipient_id: uuid.UUID,
    is_read: bool,
) -> Notification:
    notification = await db.get(Notification, notification_id)
    if not notification:
        raise NotFoundError("Notification", notification_id)
    if notification.recipient_id != recipient_id:
        raise UnauthorizedError("Notification belongs to another user")
    notification.is_read = is_read
    await db.flush()
    await db.refresh(notification)
    return notification
