from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from pep_portal.core.config import settings
from pep_portal.schemas.auth import TokenClaims

bearer = HTTPBearer(auto_error=False)


def create_access_token(claims: dict[str, Any], expires_minutes: int | None = None) -> str:
    """
    Sign a token the way the identity provider does.
    Only used by local tooling and tests; production tokens come from the IdP.
    """
    to_encode = dict(claims)
    minutes = expires_minutes if expires_minutes is not None else settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
    to_encode["exp"] = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> TokenClaims:
    payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    return TokenClaims.model_validate(payload)


def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> TokenClaims:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
        )
    try:
        return decode_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except (jwt.InvalidTokenError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def require_hr_admin(identity: TokenClaims = Depends(get_current_identity)) -> TokenClaims:
    if not identity.is_hr_admin:
        raise HTTPException(status_code=403, detail="HR admin access required")
    return identity
