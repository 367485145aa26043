from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from pydantic import BaseModel
import logging

from microgrid.core.config import settings

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


class TokenData(BaseModel):
    """Identity claims carried by a bearer token"""
    user_id: str
    email: Optional[str] = None
    role: Optional[str] = None
    member_id: Optional[str] = None


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})

    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> Optional[TokenData]:
    """Decode a JWT; expired or tampered tokens yield None"""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None

    user_id = payload.get("sub")
    if user_id is None:
        return None

    return TokenData(
        user_id=str(user_id),
        email=payload.get("email"),
        role=payload.get("role"),
        member_id=payload.get("member_id"),
    )
