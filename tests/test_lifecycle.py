import asyncio
import uuid

import pytest
from sqlalchemy import func, select

from civicwatch.core.geofence.schemas import GeoPoint
from civicwatch.core.incidents import service
from civicwatch.core.incidents.models import Incident
from civicwatch.core.incidents.schemas import IncidentCreate, IncidentSort, IncidentUpdate
from civicwatch.core.incidents.status import IncidentStatus, StatusCategory
from civicwatch.core.notifications import service as notifications
from civicwatch.core.notifications.models import Notification
from civicwatch.exceptions import (
    GeofenceRejectedError,
    InvalidStatusError,
    MissingActorError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)

from conftest import INSIDE, OUTSIDE


def report(category="Vandalism", point=INSIDE, **extra) -> IncidentCreate:
    return IncidentCreate(
        category=category,
        description="Smashed bench in the park",
        location=GeoPoint.from_lnglat(*point),
        **extra,
    )


async def count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def test_create_inside_boundary_starts_new(db, geofence, reporter_id):
    incident = await service.create_incident(db, report(), reporter_id, geofence)
    await db.commit()
    assert incident.status == "New"
    assert incident.status_category is StatusCategory.INITIAL
    assert incident.resolved_at is None
    assert incident.reporter_id == reporter_id
    assert incident.location == {"type": "Point", "coordinates": [19.05, 49.82]}


async def test_create_outside_boundary_persists_nothing(db, geofence, reporter_id):
    with pytest.raises(GeofenceRejectedError):
        await service.create_incident(db, report(point=OUTSIDE), reporter_id, geofence)
    await db.rollback()
    assert await count(db, Incident) == 0


async def test_create_rejects_unknown_category(db, geofence):
    with pytest.raises(ValidationError):
        await service.create_incident(db, report(category="Aliens"), None, geofence)


async def test_create_rejects_long_description(db, geofence):
    data = report()
    data.description = "x" * 1001
    with pytest.raises(ValidationError):
        await service.create_incident(db, data, None, geofence)


async def test_resolve_logs_and_notifies_reporter(db, geofence, reporter_id, admin_id):
    incident = await service.create_incident(db, report(), reporter_id, geofence)
    incident = await service.transition_status(db, incident.id, "Resolved", admin_id)
    await db.commit()

    assert incident.status == "Resolved"
    assert incident.status_category is StatusCategory.FINAL
    assert incident.resolved_at is not None

    entries = await service.list_status_log(db, incident.id)
    assert [(e.previous_status, e.new_status, e.changed_by) for e in entries] == [("New", "Resolved", admin_id)]

    inbox = await notifications.list_notifications(db, reporter_id)
    assert len(inbox) == 1
    assert inbox[0].message == "Your incident of category Vandalism was updated to status Resolved"
    assert inbox[0].related_incident_id == incident.id
    assert not inbox[0].is_read


async def test_anonymous_incident_gets_no_notification(db, geofence, admin_id):
    incident = await service.create_incident(db, report(), None, geofence)
    await service.transition_status(db, incident.id, IncidentStatus.CONFIRMED, admin_id)
    await service.transition_status(db, incident.id, IncidentStatus.CLOSED, admin_id)
    await db.commit()

    entries = await service.list_status_log(db, incident.id)
    assert [(e.previous_status, e.new_status) for e in entries] == [("New", "Confirmed"), ("Confirmed", "Closed")]
    assert await count(db, Notification) == 0


async def test_same_status_writes_nothing(db, geofence, reporter_id, admin_id):
    incident = await service.create_incident(db, report(), reporter_id, geofence)
    await service.transition_status(db, incident.id, "New", admin_id)
    await db.commit()
    assert await service.list_status_log(db, incident.id) == []
    assert await count(db, Notification) == 0


async def test_each_change_appends_last_entry(db, geofence, reporter_id, admin_id):
    incident = await service.create_incident(db, report(), reporter_id, geofence)
    for target in ("UnderReview", "Escalated", "Rejected"):
        await service.transition_status(db, incident.id, target, admin_id)
        entries = await service.list_status_log(db, incident.id)
        assert entries[-1].new_status == target
    assert len(entries) == 3


async def test_missing_actor_changes_nothing(db, geofence, reporter_id):
    incident = await service.create_incident(db, report(), reporter_id, geofence)
    await db.commit()
    with pytest.raises(MissingActorError):
        await service.transition_status(db, incident.id, "Resolved", None)
    await db.rollback()
    reloaded = await service.get_incident(db, incident.id)
    assert reloaded.status == "New"
    assert reloaded.status_logs == []


async def test_invalid_status_is_checked_before_actor(db, geofence):
    incident = await service.create_incident(db, report(), None, geofence)
    with pytest.raises(InvalidStatusError):
        await service.transition_status(db, incident.id, "Done", None)


async def test_transition_unknown_incident(db, admin_id):
    with pytest.raises(NotFoundError):
        await service.transition_status(db, uuid.uuid4(), "Confirmed", admin_id)


async def test_notification_failure_keeps_status_change(db, geofence, reporter_id, admin_id, monkeypatch):
    async def broken_notification(db, recipient_id, message, related_incident_id=None):
        db.add(Notification(recipient_id=None, message=message))
        await db.flush()

    monkeypatch.setattr(notifications, "create_notification", broken_notification)

    incident = await service.create_incident(db, report(), reporter_id, geofence)
    incident = await service.transition_status(db, incident.id, "Confirmed", admin_id)
    await db.commit()

    assert incident.status == "Confirmed"
    assert len(await service.list_status_log(db, incident.id)) == 1
    assert await count(db, Notification) == 0


async def test_concurrent_transitions_both_logged(session_factory, geofence, reporter_id, admin_id):
    async with session_factory() as db:
        incident = await service.create_incident(db, report(), reporter_id, geofence)
        await db.commit()

    async def transition(target):
        async with session_factory() as db:
            async with db.begin():
                await service.transition_status(db, incident.id, target, admin_id)

    await asyncio.gather(transition("Confirmed"), transition("Resolved"))

    async with session_factory() as db:
        entries = await service.list_status_log(db, incident.id)
        final = await service.get_incident(db, incident.id)

    assert len(entries) == 2
    assert entries[0].previous_status == "New"
    assert entries[1].previous_status == entries[0].new_status
    assert final.status == entries[1].new_status
    assert final.version == 3


async def test_owner_edit_with_status_goes_through_audit(db, geofence, reporter_id):
    incident = await service.create_incident(db, report(), reporter_id, geofence)
    data = IncidentUpdate(description="Bench repaired by neighbours", status="resolved")
    incident = await service.edit_incident(db, incident.id, data, reporter_id, False, geofence)
    await db.commit()

    assert incident.description == "Bench repaired by neighbours"
    assert incident.status == "Resolved"
    assert incident.resolved_at is not None
    entries = await service.list_status_log(db, incident.id)
    assert [(e.new_status, e.changed_by) for e in entries] == [("Resolved", reporter_id)]
    assert await count(db, Notification) == 1


async def test_edit_moving_outside_is_rejected(db, geofence, reporter_id):
    incident = await service.create_incident(db, report(), reporter_id, geofence)
    data = IncidentUpdate(location=GeoPoint.from_lnglat(*OUTSIDE))
    with pytest.raises(GeofenceRejectedError):
        await service.edit_incident(db, incident.id, data, reporter_id, False, geofence)


async def test_edit_by_other_owner_is_unauthorized(db, geofence, reporter_id):
    incident = await service.create_incident(db, report(), reporter_id, geofence)
    with pytest.raises(UnauthorizedError):
        await service.edit_incident(db, incident.id, IncidentUpdate(address="Elsewhere"), uuid.uuid4(), False, geofence)


async def test_anonymous_incident_editable_by_admin_only(db, geofence, reporter_id, admin_id):
    incident = await service.create_incident(db, report(), None, geofence)
    with pytest.raises(UnauthorizedError):
        await service.edit_incident(db, incident.id, IncidentUpdate(address="Rynek 1"), reporter_id, False, geofence)
    edited = await service.edit_incident(db, incident.id, IncidentUpdate(address="Rynek 1"), admin_id, True, geofence)
    assert edited.address == "Rynek 1"


async def test_soft_delete_hides_incident(db, geofence, reporter_id):
    incident = await service.create_incident(db, report(), reporter_id, geofence)
    await service.delete_incident(db, incident.id, reporter_id, False)
    await db.commit()
    with pytest.raises(NotFoundError):
        await service.get_incident(db, incident.id)
    assert await count(db, Incident) == 1


async def test_list_filters_sort_and_pages(db, geofence, reporter_id, admin_id):
    first = await service.create_incident(db, report(category="Accident"), reporter_id, geofence)
    await service.create_incident(db, report(category="Vandalism"), None, geofence)
    third = await service.create_incident(db, report(category="Infrastructure"), reporter_id, geofence)
    await service.transition_status(db, first.id, "Closed", admin_id)
    await service.transition_status(db, third.id, "Confirmed", admin_id)
    await db.commit()

    items, total = await service.list_incidents(db, status_category=StatusCategory.FINAL)
    assert total == 1 and items[0].id == first.id

    items, total = await service.list_incidents(db, status=IncidentStatus.NEW)
    assert total == 1 and items[0].category == "Vandalism"

    items, total = await service.list_incidents(db, sort=IncidentSort.CATEGORY_ASC, limit=2)
    assert total == 3
    assert [i.category for i in items] == ["Accident", "Infrastructure"]
    assert service.total_pages(total, 2) == 2

    items, _ = await service.list_incidents(db, sort=IncidentSort.CATEGORY_ASC, limit=2, page=2)
    assert [i.category for i in items] == ["Vandalism"]

    mine = await service.list_my_incidents(db, reporter_id)
    assert {i.id for i in mine} == {first.id, third.id}


async def test_comments_are_listed_in_order(db, geofence, reporter_id):
    incident = await service.create_incident(db, report(), reporter_id, geofence)
    await service.add_comment(db, incident.id, "Still broken", reporter_id)
    await service.add_comment(db, incident.id, "Now worse", reporter_id)
    comments = await service.list_comments(db, incident.id)
    assert [c.text for c in comments] == ["Still broken", "Now worse"]
    with pytest.raises(MissingActorError):
        await service.add_comment(db, incident.id, "Anonymous note", None)


async def test_edit_and_delete_check_actor_before_lookup(db, geofence):
    with pytest.raises(MissingActorError):
        await service.edit_incident(db, uuid.uuid4(), IncidentUpdate(address="Rynek 1"), None, False, geofence)
    with pytest.raises(MissingActorError):
        await service.delete_incident(db, uuid.uuid4(), None, True)
