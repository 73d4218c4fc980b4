import enum
import json
import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from civicwatch.core.geofence.schemas import GeoPoint
from civicwatch.core.incidents.status import IncidentStatus, StatusCategory, parse_status
from civicwatch.exceptions import InvalidStatusError


class DayOfWeek(str, enum.Enum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"


class TimeOfDay(str, enum.Enum):
    MORNING = "Morning"
    AFTERNOON = "Afternoon"
    EVENING = "Evening"
    NIGHT = "Night"


class IncidentSort(str, enum.Enum):
    DATE_DESC = "date_desc"
    DATE_ASC = "date_asc"
    STATUS_ASC = "status_asc"
    STATUS_DESC = "status_desc"
    CATEGORY_ASC = "category_asc"
    CATEGORY_DESC = "category_desc"


def _parse_location(value):
    # Multipart form submissions send the point as a JSON string.
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            raise ValueError("Location must be a valid JSON string")
    return value


class IncidentCreate(BaseModel):
    category: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1)
    location: GeoPoint
    address: str | None = Field(None, max_length=500)
    images: list[str] = []
    event_date: datetime | None = None
    days_of_week: list[DayOfWeek] = []
    time_of_day: TimeOfDay | None = None

    _location = field_validator("location", mode="before")(_parse_location)


class IncidentUpdate(BaseModel):
    category: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, min_length=1)
    location: GeoPoint | None = None
    address: str | None = Field(None, max_length=500)
    images: list[str] | None = None
    event_date: datetime | None = None
    days_of_week: list[DayOfWeek] | None = None
    time_of_day: TimeOfDay | None = None
    status: IncidentStatus | None = None

    _location = field_validator("location", mode="before")(_parse_location)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        if value is None:
            return None
        try:
            return parse_status(value)
        except InvalidStatusError:
            raise ValueError("Invalid status value")


class StatusChangeRequest(BaseModel):
    status: IncidentStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        try:
            return parse_status(value)
        except InvalidStatusError:
            raise ValueError("Invalid status value")


class StatusLogRead(BaseModel):
    model_config = {"from_attributes": True}
    previous_status: IncidentStatus
    new_status: IncidentStatus
    changed_by: uuid.UUID
    changed_at: datetime


class CommentCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=1000)


class CommentRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    incident_id: uuid.UUID
    author_id: uuid.UUID
    text: str
    created_at: datetime


class IncidentRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    category: str
    description: str
    location: GeoPoint
    address: str | None
    images: list[str]
    status: IncidentStatus
    status_category: StatusCategory
    resolved_at: datetime | None
    reporter_id: uuid.UUID | None
    event_date: datetime | None
    days_of_week: list[DayOfWeek]
    time_of_day: TimeOfDay | None
    created_at: datetime
    updated_at: datetime


class IncidentDetailRead(IncidentRead):
    status_logs: list[StatusLogRead]
    comments: list[CommentRead]


class IncidentPage(BaseModel):
    items: list[IncidentRead]
    total: int
    total_pages: int
    page: int
    limit: int
