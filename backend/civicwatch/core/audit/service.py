import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from civicwatch.core.audit.models import IncidentStatusLog
from civicwatch.core.incidents.status import StatusChange
from civicwatch.exceptions import MissingActorError
from civicwatch.logging import get_logger

log = get_logger(__name__)


async def record_status_change(
    db: AsyncSession,
    incident_id: uuid.UUID,
    change: StatusChange,
) -> IncidentStatusLog:
    # Callers flush this together with the status write; an entry without an
    # actor is refused rather than stored incomplete.
    if change.changed_by is None:
        raise MissingActorError("status log entry")
    entry = IncidentStatusLog(
        incident_id=incident_id,
        previous_status=change.previous_status.value,
        new_status=change.new_status.value,
        changed_by=change.changed_by,
        changed_at=change.changed_at,
    )
    db.add(entry)
    await db.flush()
    log.info(
        "status_log_appended",
        incident_id=str(incident_id),
        previous_status=entry.previous_status,
        new_status=entry.new_status,
        changed_by=str(entry.changed_by),
    )
    return entry


async def list_status_log(db: AsyncSession, incident_id: uuid.UUID) -> list[IncidentStatusLog]:
    result = await db.execute(
        select(IncidentStatusLog)
        .where(IncidentStatusLog.incident_id == incident_id)
        .order_by(IncidentStatusLog.id.asc())
    )
    return list(result.scalars().all())
