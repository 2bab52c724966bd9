# app/api/deps.py
from __future__ import annotations

import uuid
from types import SimpleNamespace
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials

from app.core import security
from app.core.errors import status_for


# ==========================================================
#  CHIAMANTE CORRENTE (bearer token)
# ==========================================================
def _as_uuid(value, field: str) -> Optional[uuid.UUID]:
    if value in (None, ""):
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token ({field})",
        )


def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security.bearer_scheme),
    x_org_id: Optional[str] = Header(None, alias="X-Org-Id"),
):
    """
    Estrae il chiamante dal bearer token.
    Claim: sub (o user_id), org_id, role.
    Un super_admin può indicare l'org di contesto con l'header X-Org-Id.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = security.decode_token(credentials.credentials)
    user_id = _as_uuid(payload.get("sub") or payload.get("user_id"), "sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )

    role = payload.get("role") or security.ROLE_USER
    is_super_admin = role == security.ROLE_SUPER_ADMIN
    org_id = _as_uuid(payload.get("org_id"), "org_id")

    if is_super_admin and x_org_id:
        try:
            org_id = uuid.UUID(x_org_id)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid X-Org-Id header",
            )

    return SimpleNamespace(
        user_id=user_id,
        org_id=org_id,
        role=role,
        is_super_admin=is_super_admin,
    )


# ==========================================================
#  RUOLI
# ==========================================================
def get_current_admin(caller=Depends(get_current_caller)):
    """admin (limitato alla propria org) o super_admin."""
    if caller.role not in (security.ROLE_ADMIN, security.ROLE_SUPER_ADMIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    if not caller.is_super_admin and caller.org_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="org context required",
        )
    return caller


def get_super_admin(caller=Depends(get_current_caller)):
    """Emissione, rinnovo, revoca e gestione piani."""
    if not caller.is_super_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super admin role required",
        )
    return caller


def get_device_caller(caller=Depends(get_current_caller)):
    """Rotte device: serve sempre un'org di contesto."""
    if caller.org_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="org context required",
        )
    return caller


# ==========================================================
#  HELPERS
# ==========================================================
def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def raise_for_reason(reason: str):
    """Converte un reason code del layer CRUD in HTTPException."""
    raise HTTPException(status_code=status_for(reason), detail={"reason": reason})
