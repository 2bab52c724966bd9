from typing import Any, Dict, List, Optional, Tuple

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core import errors
from app.crud.audit_crud import log_audit_event
from app.models.license import License
from app.models.plan import LicensePlan

logger = logging.getLogger("uvicorn.error")


def get_plan_by_code(db: Session, code: str) -> Optional[LicensePlan]:
    return db.query(LicensePlan).filter(LicensePlan.code == code).first()


def get_plan(db: Session, plan_id) -> Optional[LicensePlan]:
    return db.get(LicensePlan, plan_id)


def list_active_plans(db: Session) -> List[LicensePlan]:
    return (
        db.query(LicensePlan)
        .filter(LicensePlan.is_active.is_(True))
        .order_by(LicensePlan.price_cents.asc(), LicensePlan.code.asc())
        .all()
    )


def create_plan(db: Session, data: Dict[str, Any], actor=None) -> Tuple[Optional[LicensePlan], Optional[str]]:
    """
    Crea un piano. Ritorna (None, "plan_exists") su code/name duplicati.
    """
    plan = LicensePlan(**{k: v for k, v in data.items() if v is not None})
    db.add(plan)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return None, errors.PLAN_EXISTS
    db.refresh(plan)

    logger.info("[plan] created code=%s", plan.code)
    log_audit_event(
        db,
        action="plan_created",
        target_type="plan",
        target_id=plan.id,
        actor=actor,
        details={"code": plan.code, "duration_days": plan.duration_days, "max_devices": plan.max_devices},
    )
    return plan, None


def is_plan_referenced(db: Session, plan: LicensePlan) -> bool:
    return db.query(License.id).filter(License.plan_id == plan.id).first() is not None


def update_plan(
    db: Session,
    plan_id,
    changes: Dict[str, Any],
    actor=None,
) -> Tuple[Optional[LicensePlan], Optional[str]]:
    """
    Aggiorna un piano.
    Se il piano è già usato da licenze emesse si può cambiare solo is_active.
    """
    plan = get_plan(db, plan_id)
    if plan is None:
        return None, errors.PLAN_NOT_FOUND

    changes = {k: v for k, v in changes.items() if v is not None}
    if set(changes) - {"is_active"} and is_plan_referenced(db, plan):
        return None, errors.PLAN_IN_USE

    for field, value in changes.items():
        setattr(plan, field, value)
    db.add(plan)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return None, errors.PLAN_EXISTS
    db.refresh(plan)

    log_audit_event(
        db,
        action="plan_updated",
        target_type="plan",
        target_id=plan.id,
        actor=actor,
        details={"changes": changes},
    )
    return plan, None
