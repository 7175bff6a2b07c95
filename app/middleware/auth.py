from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from app.config import get_settings

settings = get_settings()
bearer_scheme = HTTPBearer(auto_error=False)

RIDER_ROLE = "rider"
CHAIR_ROLE = "chair"


def create_access_token(subject: str, role: str) -> str:
    """Sign a JWT with the configured secret (HS256)."""
    return jwt.encode({"sub": subject, "role": role}, settings.secret_key, algorithm=settings.jwt_algorithm)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> dict:
    """Decode and validate the JWT Bearer token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload


def _subject_with_role(token_data: dict, role: str) -> str:
    subject = token_data.get("sub")
    if not subject or token_data.get("role") != role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    return subject


async def get_current_rider(token_data: dict = Depends(get_current_user)) -> str:
    """Extract the rider's user id from token payload."""
    return _subject_with_role(token_data, RIDER_ROLE)


async def get_current_chair(token_data: dict = Depends(get_current_user)) -> str:
    """Extract chair_id from token payload."""
    return _subject_with_role(token_data, CHAIR_ROLE)
