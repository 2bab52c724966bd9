from typing import Optional, Dict, Any, List, Tuple
from datetime import datetime

import logging

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core import errors
from app.core.config import settings
from app.core.license_keys import generate_license_key
from app.core.utils import as_naive_utc, compute_expiry, utcnow
from app.crud.audit_crud import log_audit_event
from app.crud.plan_crud import get_plan_by_code
from app.models.activation import Activation
from app.models.license import License
from app.models.org import Org

logger = logging.getLogger("uvicorn.error")


# =========================
#  LOOKUP
# =========================
def get_license_by_hash(db: Session, key_hash: str, for_update: bool = False) -> Optional[License]:
    q = db.query(License).filter(License.license_key_hash == key_hash)
    if for_update:
        q = q.with_for_update()
    return q.first()


def _get_for_update(db: Session, license_id) -> Optional[License]:
    return db.query(License).filter(License.id == license_id).with_for_update().first()


def _in_scope(actor, lic: License) -> bool:
    """super_admin vede tutto, gli admin solo le licenze della propria org."""
    if getattr(actor, "is_super_admin", False):
        return True
    return lic.issued_to_org_id is not None and lic.issued_to_org_id == actor.org_id


def count_active_activations(db: Session, license_id) -> int:
    return (
        db.query(func.count(Activation.id))
        .filter(Activation.license_id == license_id, Activation.deactivated_at.is_(None))
        .scalar()
        or 0
    )


# =========================
#  ISSUE / RENEW / REVOKE
# =========================
def issue_license(
    db: Session,
    actor,
    plan_code: str,
    org_id=None,
    seats: Optional[int] = None,
    expires_at: Optional[datetime] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Tuple[Optional[Tuple[str, License]], Optional[str]]:
    """
    Emette una licenza e ritorna ((chiave_in_chiaro, License), None).

    La chiave in chiaro esiste solo nel valore di ritorno: su DB finisce l'hash.
    Errori: org_not_found, plan_not_found, key_generation_failed.
    """
    if org_id is not None and db.get(Org, org_id) is None:
        return None, errors.ORG_NOT_FOUND

    plan = get_plan_by_code(db, plan_code)
    if plan is None or not plan.is_active:
        return None, errors.PLAN_NOT_FOUND

    now = utcnow()
    seats_total = int(seats or plan.max_devices)
    expiry = as_naive_utc(expires_at) if expires_at is not None else compute_expiry(now, plan.duration_days)

    lic = None
    plaintext = None
    for _ in range(settings.KEY_GENERATION_TRIES):
        candidate = generate_license_key()
        if get_license_by_hash(db, candidate.hash) is not None:
            continue
        lic = License(
            license_key_hash=candidate.hash,
            status="active",
            plan_id=plan.id,
            plan_code=plan.code,
            seats_total=seats_total,
            issued_to_org_id=org_id,
            issued_by=getattr(actor, "user_id", None),
            issued_at=now,
            expires_at=expiry,
            meta=metadata or {},
        )
        db.add(lic)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            lic = None
            continue
        plaintext = candidate.key
        break

    if lic is None:
        return None, errors.KEY_GENERATION_FAILED

    db.refresh(lic)
    logger.info("[license] issued id=%s plan=%s org=%s", lic.id, plan.code, org_id)
    log_audit_event(
        db,
        action="license_issued",
        target_type="license",
        target_id=lic.id,
        actor=actor,
        org_id=org_id,
        details={"plan_code": plan.code, "seats": seats_total, "expires_at": expiry},
    )
    return (plaintext, lic), None


def renew_license(
    db: Session,
    actor,
    license_id,
    extension_days: Optional[int] = None,
) -> Tuple[Optional[License], Optional[str]]:
    """
    Rinnova: nuova scadenza = max(scadenza attuale, ora) + giorni.
    Un rinnovo anticipato non fa perdere giorni al cliente.
    Una licenza revocata non si rinnova (revoca terminale).
    """
    lic = _get_for_update(db, license_id)
    if lic is None or not _in_scope(actor, lic):
        db.rollback()
        return None, errors.LICENSE_NOT_FOUND
    if lic.is_revoked:
        db.rollback()
        return None, errors.REVOKED

    now = utcnow()
    days = int(extension_days or lic.plan.duration_days or settings.DEFAULT_PLAN_DURATION_DAYS)
    previous_expiry = lic.expires_at
    base = previous_expiry if previous_expiry is not None and previous_expiry > now else now

    lic.expires_at = compute_expiry(base, days)
    lic.status = "active"
    lic.renewed_at = now
    db.add(lic)
    db.commit()
    db.refresh(lic)

    logger.info("[license] renewed id=%s new_expiry=%s", lic.id, lic.expires_at)
    log_audit_event(
        db,
        action="license_renewed",
        target_type="license",
        target_id=lic.id,
        actor=actor,
        org_id=lic.issued_to_org_id,
        details={
            "previous_expiry": previous_expiry,
            "new_expiry": lic.expires_at,
            "extension_days": days,
        },
    )
    return lic, None


def revoke_license(
    db: Session,
    actor,
    license_id,
    reason: Optional[str] = None,
) -> Tuple[Optional[License], Optional[str]]:
    """
    Revoca (terminale) e disattiva in cascata tutti i device attivi.
    Idempotente: una seconda revoca ritorna la licenza senza modifiche né audit.
    """
    lic = _get_for_update(db, license_id)
    if lic is None or not _in_scope(actor, lic):
        db.rollback()
        return None, errors.LICENSE_NOT_FOUND
    if lic.is_revoked:
        db.rollback()
        return lic, None

    now = utcnow()
    previous_status = lic.effective_status(now)
    lic.status = "revoked"
    lic.revoked_at = now
    lic.revoked_by = getattr(actor, "user_id", None)
    lic.revoked_reason = reason
    db.add(lic)

    deactivated = (
        db.query(Activation)
        .filter(Activation.license_id == lic.id, Activation.deactivated_at.is_(None))
        .update({Activation.deactivated_at: now}, synchronize_session=False)
    )
    db.commit()
    db.refresh(lic)

    logger.info("[license] revoked id=%s deactivated_devices=%s", lic.id, deactivated)
    log_audit_event(
        db,
        action="license_revoked",
        target_type="license",
        target_id=lic.id,
        actor=actor,
        org_id=lic.issued_to_org_id,
        details={
            "reason": reason,
            "previous_status": previous_status,
            "deactivated_devices": deactivated,
        },
    )
    return lic, None


# =========================
#  READ (admin)
# =========================
def _status_filter(status: str, now: datetime):
    """Filtro sullo stato EFFETTIVO (lo stato salvato può essere in ritardo)."""
    not_expired = or_(License.expires_at.is_(None), License.expires_at > now)
    if status == "active":
        return and_(License.status == "active", not_expired)
    if status == "expired":
        return or_(
            License.status == "expired",
            and_(License.status == "active", License.expires_at.isnot(None), License.expires_at <= now),
        )
    return License.status == status


def serialize_license(lic: License, now: Optional[datetime] = None, **extra) -> Dict[str, Any]:
    now = now or utcnow()
    data = {
        "id": lic.id,
        "status": lic.effective_status(now),
        "plan_id": lic.plan_id,
        "plan_code": lic.plan_code,
        "seats_total": lic.seats_total,
        "issued_to_org_id": lic.issued_to_org_id,
        "issued_by": lic.issued_by,
        "issued_at": lic.issued_at,
        "expires_at": lic.expires_at,
        "renewed_at": lic.renewed_at,
        "revoked_at": lic.revoked_at,
        "revoked_reason": lic.revoked_reason,
        "metadata": lic.meta or {},
    }
    data.update(extra)
    return data


def list_licenses(
    db: Session,
    actor,
    org_id=None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Dict[str, Any]:
    now = utcnow()
    if not getattr(actor, "is_super_admin", False):
        org_id = actor.org_id

    active_devices = (
        db.query(func.count(Activation.id))
        .filter(Activation.license_id == License.id, Activation.deactivated_at.is_(None))
        .correlate(License)
        .scalar_subquery()
    )
    last_heartbeat = (
        db.query(func.max(Activation.last_heartbeat))
        .filter(Activation.license_id == License.id, Activation.deactivated_at.is_(None))
        .correlate(License)
        .scalar_subquery()
    )

    qry = db.query(License, active_devices, last_heartbeat)
    if org_id is not None:
        qry = qry.filter(License.issued_to_org_id == org_id)
    if status:
        qry = qry.filter(_status_filter(status, now))

    total = qry.count()
    rows = qry.order_by(License.created_at.desc()).limit(limit).offset(offset).all()
    return {
        "total": total,
        "items": [
            serialize_license(lic, now, active_devices=int(n or 0), last_heartbeat=hb)
            for lic, n, hb in rows
        ],
    }


def get_license_detail(db: Session, actor, license_id) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    lic = db.get(License, license_id)
    if lic is None or not _in_scope(actor, lic):
        return None, errors.LICENSE_NOT_FOUND

    activations: List[Activation] = (
        db.query(Activation)
        .filter(Activation.license_id == lic.id)
        .order_by(Activation.activated_at.desc())
        .all()
    )
    return {
        "license": serialize_license(lic, active_devices=sum(1 for a in activations if a.is_active)),
        "activations": activations,
    }, None
