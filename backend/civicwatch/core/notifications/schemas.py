import uuid
from datetime import datetime

from pydantic import BaseModel


class NotificationRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    recipient_id: uuid.UUID
    message: str
    related_incident_id: uuid.UUID | None
    is_read: bool
    created_at: datetime
