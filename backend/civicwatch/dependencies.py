import uuid
from dataclasses import dataclass
from typing import Annotated, AsyncGenerator

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from civicwatch.core.auth.security import Role, decode_access_token
from civicwatch.core.geofence.service import GeofenceValidator, get_geofence
from civicwatch.db.session import AsyncSessionLocal
from civicwatch.exceptions import NotAuthenticatedError, UnauthorizedError

bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    user_id: uuid.UUID
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMINISTRATOR


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            yield session


def _identity_from_token(token: str) -> CurrentUser:
    try:
        payload = decode_access_token(token)
        user_id = uuid.UUID(payload["sub"])
        role = Role(payload.get("role", Role.OWNER.value))
    except (JWTError, ValueError):
        raise NotAuthenticatedError("Invalid token")
    return CurrentUser(user_id=user_id, role=role)


async def get_optional_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer)],
) -> CurrentUser | None:
    if not credentials:
        return None
    return _identity_from_token(credentials.credentials)


async def get_current_user(
    current: Annotated[CurrentUser | None, Depends(get_optional_user)],
) -> CurrentUser:
    if current is None:
        raise NotAuthenticatedError()
    return current


async def require_admin(
    current: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    if not current.is_admin:
        raise UnauthorizedError("Administrator role required")
    return current


def get_geofence_validator() -> GeofenceValidator:
    return get_geofence()
