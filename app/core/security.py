# app/core/security.py
# Bearer token firmati HS256 (PyJWT).
# Claim attese: {"sub": <user_id>, "org_id": <org_id|None>, "role": "user"|"admin"|"super_admin"}

from datetime import timedelta
from typing import Any, Dict, Optional

import jwt
from fastapi import HTTPException, status
from fastapi.security import HTTPBearer

from app.core.config import settings
from app.core.utils import utcnow

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLE_SUPER_ADMIN = "super_admin"

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(
    user_id: str,
    org_id: Optional[str],
    role: str = ROLE_USER,
    expires_minutes: Optional[int] = None,
) -> str:
    """Emette un token firmato (usato da seed/script e test)."""
    minutes = expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "org_id": str(org_id) if org_id else None,
        "role": role,
        "exp": utcnow() + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Verifica firma e scadenza e ritorna le claim.
    """
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )
