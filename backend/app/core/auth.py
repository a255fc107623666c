"""Bearer token authentication against the identity provider's signed JWTs."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, status

from app.core.config import Settings, get_settings
from app.core.context import bind_user_id
from app.core.errors import Forbidden

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthUser:
    user_id: str
    email: Optional[str] = None


def _parse_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def decode_token(token: str, settings: Settings) -> AuthUser:
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    subject = claims.get("sub")
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token missing subject")
    email = claims.get("email")
    return AuthUser(user_id=str(subject), email=email.lower() if isinstance(email, str) else None)


async def get_current_user(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> AuthUser:
    """FastAPI dependency that requires a valid bearer token."""
    token = _parse_bearer(authorization)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = decode_token(token, settings)
    bind_user_id(user.user_id)
    return user


async def require_admin(
    user: AuthUser = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> AuthUser:
    """Allow only identities whose email is on the configured administrator list."""
    if not user.email or user.email not in settings.admin_email_list:
        logger.warning("Rejected admin access for user=%s", user.user_id)
        raise Forbidden()
    return user
