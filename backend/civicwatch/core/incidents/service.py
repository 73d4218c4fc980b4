import math
import uuid

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from civicwatch.core.audit import service as audit
from civicwatch.core.audit.models import IncidentStatusLog
from civicwatch.core.geofence.service import GeofenceValidator
from civicwatch.core.incidents.models import Incident, IncidentComment
from civicwatch.core.incidents.schemas import IncidentCreate, IncidentSort, IncidentUpdate
from civicwatch.core.incidents.status import (
    INITIAL_STATUS,
    IncidentStatus,
    StatusCategory,
    apply_transition,
    parse_status,
    statuses_in,
)
from civicwatch.core.notifications.service import dispatch_status_notification
from civicwatch.db.session import read_with_retries
from civicwatch.exceptions import (
    ConcurrentUpdateError,
    MissingActorError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from civicwatch.logging import get_logger
from civicwatch.settings import get_settings

log = get_logger(__name__)

SORT_ORDER = {
    IncidentSort.DATE_DESC: (Incident.created_at.desc(),),
    IncidentSort.DATE_ASC: (Incident.created_at.asc(),),
    IncidentSort.STATUS_ASC: (Incident.status.asc(), Incident.created_at.desc()),
    IncidentSort.STATUS_DESC: (Incident.status.desc(), Incident.created_at.desc()),
    IncidentSort.CATEGORY_ASC: (Incident.category.asc(), Incident.created_at.desc()),
    IncidentSort.CATEGORY_DESC: (Incident.category.desc(), Incident.created_at.desc()),
}


def list_categories() -> list[str]:
    return list(get_settings().INCIDENT_CATEGORIES)


def _validate_category(category: str) -> None:
    allowed = list_categories()
    if category not in allowed:
        raise ValidationError(f"Unknown category '{category}'", {"allowed": allowed})


def _validate_description(description: str) -> str:
    description = description.strip()
    limit = get_settings().DESCRIPTION_MAX_LENGTH
    if not description:
        raise ValidationError("Description is required")
    if len(description) > limit:
        raise ValidationError(f"Description must be at most {limit} characters", {"max_length": limit})
    return description


def _ensure_can_modify(incident: Incident, actor_id: uuid.UUID | None, is_admin: bool) -> None:
    if actor_id is None:
        raise MissingActorError("incident modification")
    if is_admin:
        return
    # Anonymous reports have no owner, only administrators may touch them.
    if incident.reporter_id is None or incident.reporter_id != actor_id:
        raise UnauthorizedError("Only the reporter or an administrator may modify this incident")


async def create_incident(
    db: AsyncSession,
    data: IncidentCreate,
    reporter_id: uuid.UUID | None,
    geofence: GeofenceValidator,
) -> Incident:
    _validate_category(data.category)
    description = _validate_description(data.description)
    point = data.location
    geofence.ensure_inside(point.longitude, point.latitude)

    incident = Incident(
        category=data.category,
        description=description,
        longitude=point.longitude,
        latitude=point.latitude,
        address=data.address,
        images=list(data.images),
        status=INITIAL_STATUS.value,
        resolved_at=None,
        reporter_id=reporter_id,
        event_date=data.event_date,
        days_of_week=[day.value for day in data.days_of_week],
        time_of_day=data.time_of_day.value if data.time_of_day else None,
    )
    db.add(incident)
    await db.flush()
    await db.refresh(incident)
    log.info(
        "incident_created",
        incident_id=str(incident.id),
        category=incident.category,
        anonymous=reporter_id is None,
    )
    return incident


async def _load_incident(
    db: AsyncSession,
    incident_id: uuid.UUID,
    *,
    for_update: bool = False,
    with_details: bool = False,
) -> Incident:
    stmt = select(Incident).where(Incident.id == incident_id, Incident.is_deleted == False)
    if with_details:
        stmt = stmt.options(
            selectinload(Incident.status_logs),
            selectinload(Incident.comments.and_(IncidentComment.is_deleted == False)),
        )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    incident = result.scalar_one_or_none()
    if not incident:
        raise NotFoundError("Incident", incident_id)
    return incident


async def get_incident(db: AsyncSession, incident_id: uuid.UUID) -> Incident:
    return await read_with_retries(
        db, lambda: _load_incident(db, incident_id, with_details=True)
    )


async def list_incidents(
    db: AsyncSession,
    *,
    status: IncidentStatus | None = None,
    status_category: StatusCategory | None = None,
    category: str | None = None,
    search: str | None = None,
    reporter_id: uuid.UUID | None = None,
    sort: IncidentSort = IncidentSort.DATE_DESC,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Incident], int]:
    filters = [Incident.is_deleted == False]
    if status is not None:
        filters.append(Incident.status == parse_status(status).value)
    if status_category is not None:
        filters.append(Incident.status.in_([s.value for s in statuses_in(status_category)]))
    if category:
        filters.append(Incident.category == category)
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(or_(
            Incident.description.ilike(pattern),
            Incident.address.ilike(pattern),
            Incident.category.ilike(pattern),
        ))
    if reporter_id is not None:
        filters.append(Incident.reporter_id == reporter_id)

    async def _query() -> tuple[list[Incident], int]:
        total = (await db.execute(select(func.count(Incident.id)).where(*filters))).scalar_one()
        result = await db.execute(
            select(Incident)
            .where(*filters)
            .order_by(*SORT_ORDER[sort], Incident.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    return await read_with_retries(db, _query)


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


async def list_my_incidents(db: AsyncSession, reporter_id: uuid.UUID) -> list[Incident]:
    async def _query() -> list[Incident]:
        result = await db.execute(
            select(Incident)
            .where(Incident.reporter_id == reporter_id, Incident.is_deleted == False)
            .order_by(Incident.created_at.desc(), Incident.id)
        )
        return list(result.scalars().all())

    return await read_with_retries(db, _query)


async def _apply_status(
    db: AsyncSession,
    incident: Incident,
    new_status: IncidentStatus | str,
    actor_id: uuid.UUID | None,
) -> None:
    change = apply_transition(incident, new_status, actor_id)
    if change is None:
        log.info("incident_status_unchanged", incident_id=str(incident.id), status=incident.status)
        return

    try:
        await db.flush()
    except StaleDataError:
        log.warning("incident_concurrent_update", incident_id=str(incident.id))
        raise ConcurrentUpdateError("Incident", incident.id)

    await audit.record_status_change(db, incident.id, change)
    log.info(
        "incident_status_changed",
        incident_id=str(incident.id),
        previous_status=change.previous_status.value,
        new_status=change.new_status.value,
        status_category=change.status_category.value,
        changed_by=str(change.changed_by),
    )
    await dispatch_status_notification(db, incident, change)


async def transition_status(
    db: AsyncSession,
    incident_id: uuid.UUID,
    new_status: IncidentStatus | str,
    actor_id: uuid.UUID | None,
) -> Incident:
    """Move an incident to ``new_status`` on behalf of ``actor_id``.

    The status write, its audit entry and the reporter notification share
    the caller's transaction. The row is locked for the read so concurrent
    transitions on the same incident apply one after the other.
    """
    parse_status(new_status)
    if actor_id is None:
        raise MissingActorError()
    incident = await _load_incident(db, incident_id, for_update=True)
    await _apply_status(db, incident, new_status, actor_id)
    await db.refresh(incident)
    return incident


async def edit_incident(
    db: AsyncSession,
    incident_id: uuid.UUID,
    data: IncidentUpdate,
    actor_id: uuid.UUID | None,
    is_admin: bool,
    geofence: GeofenceValidator,
) -> Incident:
    if actor_id is None:
        raise MissingActorError("incident modification")
    incident = await _load_incident(db, incident_id, for_update=True)
    _ensure_can_modify(incident, actor_id, is_admin)

    fields = data.model_dump(exclude_unset=True)
    new_status = fields.pop("status", None)

    if "category" in fields and fields["category"] is not None:
        _validate_category(fields["category"])
    if "description" in fields and fields["description"] is not None:
        fields["description"] = _validate_description(fields["description"])

    location = fields.pop("location", None)
    if location is not None:
        point = data.location
        geofence.ensure_inside(point.longitude, point.latitude)
        incident.longitude = point.longitude
        incident.latitude = point.latitude

    if "days_of_week" in fields:
        fields["days_of_week"] = [day.value for day in data.days_of_week or []]
    if "time_of_day" in fields:
        fields["time_of_day"] = data.time_of_day.value if data.time_of_day else None

    for key, value in fields.items():
        if key in ("category", "description", "images") and value is None:
            continue
        setattr(incident, key, value)

    if new_status is not None:
        await _apply_status(db, incident, new_status, actor_id)

    try:
        await db.flush()
    except StaleDataError:
        raise ConcurrentUpdateError("Incident", incident.id)
    await db.refresh(incident)
    log.info("incident_edited", incident_id=str(incident.id), fields=sorted(fields))
    return incident


async def delete_incident(
    db: AsyncSession,
    incident_id: uuid.UUID,
    actor_id: uuid.UUID | None,
    is_admin: bool,
) -> None:
    if actor_id is None:
        raise MissingActorError("incident modification")
    incident = await _load_incident(db, incident_id, for_update=True)
    _ensure_can_modify(incident, actor_id, is_admin)
    incident.is_deleted = True
    try:
        await db.flush()
    except StaleDataError:
        raise ConcurrentUpdateError("Incident", incident.id)
    log.info("incident_deleted", incident_id=str(incident.id), deleted_by=str(actor_id))


async def list_status_log(db: AsyncSession, incident_id: uuid.UUID) -> list[IncidentStatusLog]:
    async def _query() -> list[IncidentStatusLog]:
        await _load_incident(db, incident_id)
        return await audit.list_status_log(db, incident_id)

    return await read_with_retries(db, _query)


async def add_comment(
    db: AsyncSession,
    incident_id: uuid.UUID,
    text: str,
    author_id: uuid.UUID | None,
) -> IncidentComment:
    if author_id is None:
        raise MissingActorError("comment")
    text = text.strip()
    if not text:
        raise ValidationError("Comment text is required")
    await _load_incident(db, incident_id)
    comment = IncidentComment(incident_id=incident_id, author_id=author_id, text=text)
    db.add(comment)
    await db.flush()
    await db.refresh(comment)
    log.info("incident_comment_added", incident_id=str(incident_id), comment_id=str(comment.id))
    return comment


async def list_comments(db: AsyncSession, incident_id: uuid.UUID) -> list[IncidentComment]:
    async def _query() -> list[IncidentComment]:
        await _load_incident(db, incident_id)
        result = await db.execute(
            select(IncidentComment)
            .where(IncidentComment.incident_id == incident_id, IncidentComment.is_deleted == False)
            .order_by(IncidentComment.created_at.asc(), IncidentComment.id)
        )
        return list(result.scalars().all())

    return await read_with_retries(db, _query)
