import enum
import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from civicwatch.settings import get_settings

settings = get_settings()


class Role(str, enum.Enum):
    OWNER = "owner"
    ADMINISTRATOR = "administrator"


def create_access_token(user_id: uuid.UUID, role: Role = Role.OWNER) -> str:
    # Tokens are issued by the identity service; this mirrors its format for
    # tooling and tests.
    expires = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {"sub": str(user_id), "role": Role(role).value, "type": "access", "exp": expires}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    if payload.get("type") != "access":
        raise JWTError("Wrong token type")
    if "sub" not in payload:
        raise JWTError("Token has no subject")
    return payload
