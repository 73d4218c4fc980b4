import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from civicwatch.core.audit.models import IncidentStatusLog
from civicwatch.core.incidents.status import INITIAL_STATUS, StatusCategory, category_of
from civicwatch.db.base import Base, SoftDeleteMixin, TimestampMixin

JSONList = JSON().with_variant(JSONB(), "postgresql")


class Incident(Base, TimestampMixin, SoftDeleteMixin):
    """
    Citizen-reported incident.

    status_category is not a column: it is computed from status on every
    read. resolved_at is written only by the status state machine.
    reporter_id is NULL for anonymous reports.
    """
    __tablename__ = "incidents"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    images: Mapped[list[str]] = mapped_column(JSONList, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default=INITIAL_STATUS.value, index=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reporter_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    # Descriptive metadata, stored verbatim
    event_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    days_of_week: Mapped[list[str]] = mapped_column(JSONList, nullable=False, default=list)
    time_of_day: Mapped[str | None] = mapped_column(String(20), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    status_logs: Mapped[list[IncidentStatusLog]] = relationship(
        order_by=IncidentStatusLog.id, lazy="noload", viewonly=True,
    )
    comments: Mapped[list["IncidentComment"]] = relationship(back_populates="incident", lazy="noload")

    __mapper_args__ = {"version_id_col": version}

    @property
    def status_category(self) -> StatusCategory:
        return category_of(self.status)

    @property
    def location(self) -> dict:
        return {"type": "Point", "coordinates": [self.longitude, self.latitude]}


class IncidentComment(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "incident_comments"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    incident_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("incidents.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    incident: Mapped["Incident"] = relationship(back_populates="comments")
