from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from libs.auth.models import AuthUser, Role
from libs.common.config import get_settings

security = HTTPBearer()

SERVICE_ROLE = "service_role"


def decode_token(token: str) -> AuthUser:
    """Decode an identity-service JWT into an ``AuthUser``."""
    settings = get_settings()
    payload = jwt.decode(
        token,
        settings.AUTH_JWT_SECRET,
        algorithms=[settings.AUTH_JWT_ALGORITHM],
        options={"verify_aud": False},
    )
    return AuthUser(**payload)


async def get_current_user(
    token: Annotated[HTTPAuthorizationCredentials, Depends(security)]
) -> AuthUser:
    """
    Validate the bearer token and return the authenticated user.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        return decode_token(token.credentials)
    except (JWTError, ValidationError):
        raise credentials_exception


async def require_customer(
    current_user: Annotated[AuthUser, Depends(get_current_user)]
) -> AuthUser:
    """Ensure the caller is a customer."""
    if current_user.role != Role.CUSTOMER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Customer account required",
        )
    return current_user


async def require_producer(
    current_user: Annotated[AuthUser, Depends(get_current_user)]
) -> AuthUser:
    """Ensure the caller is a producer."""
    if current_user.role != Role.PRODUCER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Producer account required",
        )
    return current_user


def service_role_jwt(calling_service: str) -> str:
    """Short-lived (60s) token for calls to sibling services."""
    settings = get_settings()
    now = int(datetime.now(tz=timezone.utc).timestamp())
    payload = {
        "sub": f"service:{calling_service}",
        "role": SERVICE_ROLE,
        "iat": now,
        "exp": now + 60,
    }
    return jwt.encode(
        payload, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM
    )
