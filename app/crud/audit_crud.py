# app/crud/audit_crud.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.models.audit_log import LicenseAuditLog

logger = logging.getLogger("uvicorn.error")


def log_audit_event(
    db: Session,
    *,
    action: str,
    target_type: str,
    target_id=None,
    actor=None,
    license_id=None,
    activation_id=None,
    org_id=None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> Optional[LicenseAuditLog]:
    """
    Registra una riga di audit in license_audit_logs.

    Va chiamata DOPO il commit dell'operazione che descrive: in caso di errore
    fa rollback solo della riga di audit, logga e non rilancia mai.
    """
    if license_id is None and target_type == "license":
        license_id = target_id
    if activation_id is None and target_type == "activation":
        activation_id = target_id

    try:
        row = LicenseAuditLog(
            action=action,
            target_type=target_type,
            target_id=target_id,
            license_id=license_id,
            activation_id=activation_id,
            org_id=org_id,
            actor_id=getattr(actor, "user_id", None),
            actor_role=getattr(actor, "role", None),
            details=_jsonable(details or {}),
            ip_address=ip_address,
        )
        db.add(row)
        db.commit()
        return row
    except Exception:
        db.rollback()
        logger.exception("[audit] errore durante il salvataggio audit action=%s target=%s", action, target_id)
        return None


def list_audit_events(
    db: Session,
    *,
    org_id=None,
    license_id=None,
    action: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[LicenseAuditLog]:
    q = db.query(LicenseAuditLog)
    if org_id is not None:
        q = q.filter(LicenseAuditLog.org_id == org_id)
    if license_id is not None:
        q = q.filter(LicenseAuditLog.license_id == license_id)
    if action:
        q = q.filter(LicenseAuditLog.action == action)
    return q.order_by(LicenseAuditLog.created_at.desc()).limit(limit).offset(offset).all()


def _jsonable(value: Any) -> Any:
    """Datetime/UUID -> stringhe, per colonne JSON."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)
