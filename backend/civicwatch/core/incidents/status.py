"""
Incident status state machine.

status is the single source of truth; status_category and resolved_at are
derived from it here and nowhere else. Review workflows are non-linear, so
every status may move to every other status. A transition only ever has
two effects: recomputing the derived fields and producing a StatusChange
for the audit trail.

resolved_at rule: a transition into any Final status stamps resolved_at with
the transition time, a transition into a non-Final status clears it.
"""

import enum
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from civicwatch.db.base import utcnow
from civicwatch.exceptions import InvalidStatusError, MissingActorError


class IncidentStatus(str, enum.Enum):
    NEW = "New"
    UNDER_REVIEW = "UnderReview"
    CONFIRMED = "Confirmed"
    ON_HOLD = "OnHold"
    ESCALATED = "Escalated"
    RESOLVED = "Resolved"
    UNRESOLVED = "Unresolved"
    CLOSED = "Closed"
    REJECTED = "Rejected"


class StatusCategory(str, enum.Enum):
    INITIAL = "Initial"
    ACTIVE = "Active"
    FINAL = "Final"


STATUS_GROUPS: dict[StatusCategory, tuple[IncidentStatus, ...]] = {
    StatusCategory.INITIAL: (IncidentStatus.NEW, IncidentStatus.UNDER_REVIEW),
    StatusCategory.ACTIVE: (IncidentStatus.CONFIRMED, IncidentStatus.ON_HOLD, IncidentStatus.ESCALATED),
    StatusCategory.FINAL: (
        IncidentStatus.RESOLVED,
        IncidentStatus.UNRESOLVED,
        IncidentStatus.CLOSED,
        IncidentStatus.REJECTED,
    ),
}

_CATEGORY_OF: dict[IncidentStatus, StatusCategory] = {
    status: category for category, statuses in STATUS_GROUPS.items() for status in statuses
}

INITIAL_STATUS = IncidentStatus.NEW

_SEPARATORS = re.compile(r"[\s_\-]+")
_LOOKUP: dict[str, IncidentStatus] = {status.value.lower(): status for status in IncidentStatus}


def parse_status(value: Any) -> IncidentStatus:
    """Resolve a caller-supplied status. Case and separators are ignored."""
    if isinstance(value, IncidentStatus):
        return value
    if not isinstance(value, str):
        raise InvalidStatusError(value)
    key = _SEPARATORS.sub("", value).lower()
    status = _LOOKUP.get(key)
    if status is None:
        raise InvalidStatusError(value)
    return status


def category_of(status: IncidentStatus | str) -> StatusCategory:
    return _CATEGORY_OF[parse_status(status)]


def statuses_in(category: StatusCategory | str) -> tuple[IncidentStatus, ...]:
    return STATUS_GROUPS[StatusCategory(category)]


def is_final(status: IncidentStatus | str) -> bool:
    return category_of(status) is StatusCategory.FINAL


def resolved_at_for(status: IncidentStatus, at: datetime) -> datetime | None:
    return at if is_final(status) else None


class HasStatus(Protocol):
    status: str
    resolved_at: datetime | None


@dataclass(frozen=True)
class StatusChange:
    previous_status: IncidentStatus
    new_status: IncidentStatus
    changed_by: uuid.UUID
    changed_at: datetime

    @property
    def status_category(self) -> StatusCategory:
        return category_of(self.new_status)


def apply_transition(
    incident: HasStatus,
    new_status: Any,
    actor: uuid.UUID | None,
    at: datetime | None = None,
) -> StatusChange | None:
    """Move ``incident`` to ``new_status``.

    Returns the StatusChange to record, or None when the status is already
    ``new_status``. Validation happens before any attribute is touched, so a
    failed call leaves the incident as it was.
    """
    target = parse_status(new_status)
    if actor is None:
        raise MissingActorError()

    current = parse_status(incident.status)
    if target is current:
        return None

    at = at or utcnow()
    incident.status = target.value
    incident.resolved_at = resolved_at_for(target, at)
    return StatusChange(previous_status=current, new_status=target, changed_by=actor, changed_at=at)
