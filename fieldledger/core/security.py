from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Optional
from jose import jwt, JWTError
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from fieldledger.core.config import settings
from fieldledger.core.enums import UserRole

JWT_ALGORITHM = "HS256"

bearer_scheme = HTTPBearer()


@dataclass(frozen=True)
class Actor:
    """Caller identity issued by the external access-control layer."""
    id: int
    role: UserRole
    crew_id: Optional[int] = None


def create_access_token(subject: str, role: str, crew_id: Optional[int] = None,
                        expires_minutes: int | None = None) -> str:
    expires = expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire_dt = datetime.now(timezone.utc) + timedelta(minutes=expires)
    to_encode = {"sub": str(subject), "role": str(role), "exp": expire_dt}
    if crew_id is not None:
        to_encode["crew_id"] = int(crew_id)
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_actor(token: str) -> Actor:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[JWT_ALGORITHM])
        subject = payload.get("sub")
        role = payload.get("role")
        if subject is None or role is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
        crew_id = payload.get("crew_id")
        return Actor(
            id=int(subject),
            role=UserRole(role),
            crew_id=int(crew_id) if crew_id is not None else None,
        )
    except (JWTError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> Actor:
    return decode_actor(credentials.credentials)


def require_crew(actor: Actor) -> int:
    if actor.crew_id is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token is not bound to a crew")
    return actor.crew_id
