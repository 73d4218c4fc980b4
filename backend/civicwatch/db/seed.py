"""Seed a development database with a few demo incidents.

Prints bearer tokens for the demo reporter and administrator so the API can
be exercised straight away.
"""
import asyncio
import os
import uuid

from sqlalchemy import func, select

from civicwatch.core.auth.security import Role, create_access_token
from civicwatch.core.geofence.schemas import GeoPoint
from civicwatch.core.geofence.service import get_geofence
from civicwatch.core.incidents import service
from civicwatch.core.incidents.models import Incident
from civicwatch.core.incidents.schemas import IncidentCreate
from civicwatch.core.incidents.status import IncidentStatus
from civicwatch.db.session import get_session
from civicwatch.logging import configure_logging, get_logger

log = get_logger(__name__)

DEMO_INCIDENTS = [
    ("Vandalism", "Graffiti on the bus shelter", 19.0450, 49.8225, IncidentStatus.NEW),
    ("Infrastructure", "Broken street light near the crossing", 19.0560, 49.8130, IncidentStatus.CONFIRMED),
    ("Safety Hazard", "Loose paving stones on the pavement", 19.0380, 49.8300, IncidentStatus.RESOLVED),
]


async def seed() -> None:
    reporter_id = uuid.UUID(os.getenv("SEED_REPORTER_ID", str(uuid.uuid4())))
    admin_id = uuid.UUID(os.getenv("SEED_ADMIN_ID", str(uuid.uuid4())))
    geofence = get_geofence()

    async with get_session() as db:
        existing = (await db.execute(select(func.count(Incident.id)))).scalar_one()
        if existing:
            log.info("seed_skipped", incidents=existing)
            return

        for category, description, lng, lat, status in DEMO_INCIDENTS:
            data = IncidentCreate(
                category=category,
                description=description,
                location=GeoPoint.from_lnglat(lng, lat),
            )
            incident = await service.create_incident(db, data, reporter_id, geofence)
            if status is not IncidentStatus.NEW:
                await service.transition_status(db, incident.id, status, admin_id)
        log.info("seed_completed", incidents=len(DEMO_INCIDENTS))

    print(f"Reporter token: {create_access_token(reporter_id, Role.OWNER)}")
    print(f"Admin token:    {create_access_token(admin_id, Role.ADMINISTRATOR)}")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(seed())
