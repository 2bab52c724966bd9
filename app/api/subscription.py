# app/api/subscription.py
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_admin, get_super_admin, raise_for_reason
from app.core import errors
from app.crud import activation_crud, audit_crud, license_crud, plan_crud
from app.db.session import get_db
from app.schemas.activation import ActivationOut
from app.schemas.audit import AuditLogOut
from app.schemas.license import (
    LicenseDetailOut,
    LicenseIssueIn,
    LicenseIssueOut,
    LicenseListOut,
    LicenseOut,
    LicenseRenewIn,
    LicenseRevokeIn,
)
from app.schemas.plan import PlanCreate, PlanOut, PlanUpdate

router = APIRouter(prefix="/subscription", tags=["subscription"])

LICENSE_STATUSES = ("active", "expired", "revoked")


# ===== PIANI =====
@router.post("/plans", response_model=PlanOut, status_code=status.HTTP_201_CREATED)
def create_plan(
    payload: PlanCreate,
    db: Session = Depends(get_db),
    admin=Depends(get_super_admin),
):
    plan, reason = plan_crud.create_plan(db, payload.model_dump(), actor=admin)
    if reason:
        raise_for_reason(reason)
    return plan


@router.get("/plans", response_model=List[PlanOut])
def list_plans(
    db: Session = Depends(get_db),
    _admin=Depends(get_current_admin),
):
    """Solo piani attivi."""
    return plan_crud.list_active_plans(db)


@router.put("/plans/{plan_id}", response_model=PlanOut)
def update_plan(
    plan_id: UUID,
    payload: PlanUpdate,
    db: Session = Depends(get_db),
    admin=Depends(get_super_admin),
):
    """Un piano già usato da licenze accetta solo modifiche a isActive."""
    plan, reason = plan_crud.update_plan(db, plan_id, payload.model_dump(exclude_unset=True), actor=admin)
    if reason:
        raise_for_reason(reason)
    return plan


# ===== LICENZE (istanze) =====
@router.post("/instances", response_model=LicenseIssueOut, status_code=status.HTTP_201_CREATED)
def issue_license(
    payload: LicenseIssueIn,
    db: Session = Depends(get_db),
    admin=Depends(get_super_admin),
):
    """
    Emette una licenza. La chiave in chiaro è restituita SOLO qui:
    va consegnata al cliente, il server ne conserva l'hash.
    """
    result, reason = license_crud.issue_license(
        db,
        admin,
        plan_code=payload.plan_code,
        org_id=payload.org_id,
        seats=payload.seats,
        expires_at=payload.expires_at,
        metadata=payload.metadata,
    )
    if reason:
        raise_for_reason(reason)
    plaintext, lic = result
    return {"license_key": plaintext, "license": license_crud.serialize_license(lic)}


@router.get("/instances", response_model=LicenseListOut)
def list_licenses(
    org_id: Optional[UUID] = Query(None, alias="orgId"),
    status_: Optional[str] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    if status_ is not None and status_ not in LICENSE_STATUSES:
        raise_for_reason(errors.INVALID_STATUS)
    return license_crud.list_licenses(db, admin, org_id=org_id, status=status_, limit=limit, offset=offset)


@router.get("/instances/{license_id}", response_model=LicenseDetailOut)
def get_license(
    license_id: UUID,
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    detail, reason = license_crud.get_license_detail(db, admin, license_id)
    if reason:
        raise_for_reason(reason)
    return detail


@router.put("/instances/{license_id}/renew", response_model=LicenseOut)
def renew_license(
    license_id: UUID,
    payload: Optional[LicenseRenewIn] = None,
    db: Session = Depends(get_db),
    admin=Depends(get_super_admin),
):
    extension_days = payload.extension_days if payload else None
    lic, reason = license_crud.renew_license(db, admin, license_id, extension_days=extension_days)
    if reason:
        raise_for_reason(reason)
    return license_crud.serialize_license(lic)


@router.put("/instances/{license_id}/revoke", response_model=LicenseOut)
def revoke_license(
    license_id: UUID,
    payload: Optional[LicenseRevokeIn] = None,
    db: Session = Depends(get_db),
    admin=Depends(get_super_admin),
):
    """Terminale. Tutti i device attivi vengono disattivati."""
    lic, reason = license_crud.revoke_license(db, admin, license_id, reason=payload.reason if payload else None)
    if reason:
        raise_for_reason(reason)
    return license_crud.serialize_license(lic)


# ===== ATTIVAZIONI (admin) =====
@router.put("/activations/{activation_id}/deactivate", response_model=ActivationOut)
def deactivate_activation(
    activation_id: UUID,
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    activation, reason = activation_crud.deactivate_activation(db, admin, activation_id)
    if reason:
        raise_for_reason(reason)
    return activation


# ===== AUDIT =====
@router.get("/audit-logs", response_model=List[AuditLogOut])
def list_audit_logs(
    license_id: Optional[UUID] = Query(None, alias="licenseId"),
    action: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    # gli admin vedono solo la traccia della propria org
    org_id = None if admin.is_super_admin else admin.org_id
    return audit_crud.list_audit_events(
        db,
        org_id=org_id,
        license_id=license_id,
        action=action,
        limit=limit,
        offset=offset,
    )
