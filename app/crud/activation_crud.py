from typing import Optional, Dict, Any, Tuple

import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core import errors
from app.core.license_keys import validate_license_key
from app.core.utils import utcnow
from app.crud.audit_crud import log_audit_event
from app.crud.license_crud import count_active_activations, get_license_by_hash
from app.models.activation import Activation
from app.models.license import License
from app.models.org import Org

logger = logging.getLogger("uvicorn.error")


# =========================
#  LOOKUP
# =========================
def get_active_activation(db: Session, org_id, device_id: str) -> Optional[Activation]:
    return (
        db.query(Activation)
        .filter(
            Activation.org_id == org_id,
            Activation.device_id == device_id,
            Activation.deactivated_at.is_(None),
        )
        .first()
    )


def _missing_reason(db: Session, org_id, device_id: str) -> str:
    """
    Nessuna riga attiva per il device: se l'ultima riga disattivata appartiene
    a una licenza revocata il motivo è "revoked", altrimenti "not_activated".
    """
    last = (
        db.query(Activation)
        .filter(Activation.org_id == org_id, Activation.device_id == device_id)
        .order_by(Activation.deactivated_at.desc())
        .first()
    )
    if last is not None and last.license is not None and last.license.is_revoked:
        return errors.REVOKED
    return errors.NOT_ACTIVATED


def _check_license(db: Session, lic: License, now) -> Optional[str]:
    """
    Gate su revoked/expired. Se la scadenza è passata ma lo stato salvato è
    ancora "active" lo porta a "expired" (self-heal lazy) e fa commit.
    """
    state = lic.effective_status(now)
    if state == "revoked":
        return errors.REVOKED
    if state == "expired":
        if lic.status != "expired":
            lic.status = "expired"
            db.add(lic)
            db.commit()
            logger.info("[license] lazily expired id=%s", lic.id)
        return errors.EXPIRED
    return None


# =========================
#  ACTIVATE
# =========================
def activate_device(
    db: Session,
    actor,
    device_id: str,
    license_key: Optional[str] = None,
    key_hash: Optional[str] = None,
    device_label: Optional[str] = None,
    machine_info: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> Tuple[Optional[Activation], Optional[str]]:
    """
    Attiva un device su una licenza. Ogni passo è un gate, nell'ordine:

    1. licenza per hash (not found)
    2. revoked / expired (con flip lazy a expired)
    3. licenza legata a un'altra org
    4. riga attiva già presente per (org, device) -> idempotente, niente posto in più
    5. posti esauriti
    6. binding alla org se la licenza non è ancora legata (first-activation-wins)
    7. insert della nuova riga

    Il binding avviene solo dopo tutti i controlli: un tentativo fallito non
    modifica la licenza. La riga licenza resta bloccata (FOR UPDATE) fino al
    commit, quindi conteggio posti e insert non possono intrecciarsi.
    """
    if key_hash is None:
        validation = validate_license_key(license_key or "")
        if not validation.valid:
            return None, errors.INVALID_KEY
        key_hash = validation.hash

    org_id = actor.org_id
    if db.get(Org, org_id) is None:
        return None, errors.ORG_NOT_FOUND
    now = utcnow()

    # 1
    lic = get_license_by_hash(db, key_hash, for_update=True)
    if lic is None:
        db.rollback()
        return None, errors.LICENSE_NOT_FOUND

    # 2
    reason = _check_license(db, lic, now)
    if reason:
        db.rollback()
        return None, reason

    # 3
    if lic.issued_to_org_id is not None and lic.issued_to_org_id != org_id:
        db.rollback()
        return None, errors.ORG_MISMATCH

    # 4
    existing = get_active_activation(db, org_id, device_id)
    if existing is not None:
        existing.last_heartbeat = now
        existing.last_validated_at = now
        db.add(existing)
        db.commit()
        db.refresh(existing)
        return existing, None

    # 5
    active = count_active_activations(db, lic.id)
    if active >= lic.seats_total:
        db.rollback()
        logger.info("[activation] seat limit license=%s active=%s seats=%s", lic.id, active, lic.seats_total)
        return None, errors.SEAT_LIMIT

    # 6
    if lic.issued_to_org_id is None:
        if not bind_license_to_org(db, lic, org_id):
            db.rollback()
            return None, errors.ORG_MISMATCH

    # 7
    activation = Activation(
        license_id=lic.id,
        org_id=org_id,
        user_id=getattr(actor, "user_id", None),
        device_id=device_id,
        device_label=device_label,
        machine_info=machine_info or {},
        ip_address=ip_address,
        activated_at=now,
        last_heartbeat=now,
        last_validated_at=now,
    )
    db.add(activation)
    try:
        db.commit()
    except IntegrityError:
        # richiesta concorrente per lo stesso (org, device): vince la riga già scritta
        db.rollback()
        existing = get_active_activation(db, org_id, device_id)
        if existing is None:
            raise
        return existing, None
    db.refresh(activation)

    logger.info("[activation] device activated license=%s device=%s org=%s", lic.id, device_id, org_id)
    log_audit_event(
        db,
        action="device_activated",
        target_type="activation",
        target_id=activation.id,
        actor=actor,
        license_id=lic.id,
        org_id=org_id,
        details={"device_id": device_id, "device_label": device_label},
        ip_address=ip_address,
    )
    return activation, None


def bind_license_to_org(db: Session, lic: License, org_id) -> bool:
    """
    UPDATE condizionale (WHERE issued_to_org_id IS NULL): due prime attivazioni
    concorrenti da org diverse non possono legare entrambe la licenza.
    Ritorna True se la licenza ora appartiene a org_id.
    """
    result = db.execute(
        update(License)
        .where(License.id == lic.id, License.issued_to_org_id.is_(None))
        .values(issued_to_org_id=org_id)
        .execution_options(synchronize_session=False)
    )
    db.expire(lic, ["issued_to_org_id"])
    if result.rowcount == 1:
        return True
    return lic.issued_to_org_id == org_id


# =========================
#  HEARTBEAT / VALIDATE
# =========================
def _resolve_device(db: Session, org_id, device_id: str, now) -> Tuple[Optional[Activation], Optional[str]]:
    activation = get_active_activation(db, org_id, device_id)
    if activation is None:
        return None, _missing_reason(db, org_id, device_id)

    reason = _check_license(db, activation.license, now)
    if reason:
        return None, reason
    return activation, None


def heartbeat(
    db: Session,
    org_id,
    device_id: str,
    app_version: Optional[str] = None,
) -> Tuple[Optional[Activation], Optional[str]]:
    """Heartbeat periodico: aggiorna last_heartbeat e last_validated_at."""
    now = utcnow()
    activation, reason = _resolve_device(db, org_id, device_id, now)
    if reason:
        return None, reason

    activation.last_heartbeat = now
    activation.last_validated_at = now
    if app_version:
        activation.app_version = app_version
    db.add(activation)
    db.commit()
    db.refresh(activation)
    return activation, None


def validate_device(db: Session, org_id, device_id: str) -> Tuple[Optional[Activation], Optional[str]]:
    """Validazione all'avvio: stessi controlli del heartbeat, aggiorna solo last_validated_at."""
    now = utcnow()
    activation, reason = _resolve_device(db, org_id, device_id, now)
    if reason:
        return None, reason

    activation.last_validated_at = now
    db.add(activation)
    db.commit()
    db.refresh(activation)
    return activation, None


# =========================
#  DEACTIVATE
# =========================
def _deactivate(db: Session, actor, activation: Activation, source: str) -> Activation:
    activation.deactivate(utcnow())
    db.add(activation)
    db.commit()
    db.refresh(activation)

    logger.info("[activation] deactivated id=%s device=%s", activation.id, activation.device_id)
    log_audit_event(
        db,
        action="device_deactivated",
        target_type="activation",
        target_id=activation.id,
        actor=actor,
        license_id=activation.license_id,
        org_id=activation.org_id,
        details={"device_id": activation.device_id, "source": source},
    )
    return activation


def deactivate_activation(db: Session, actor, activation_id) -> Tuple[Optional[Activation], Optional[str]]:
    """
    Disattiva per id (admin). Una riga già disattivata non è più "attiva":
    la seconda chiamata ritorna activation_not_found.
    """
    q = db.query(Activation).filter(
        Activation.id == activation_id,
        Activation.deactivated_at.is_(None),
    )
    if not getattr(actor, "is_super_admin", False):
        q = q.filter(Activation.org_id == actor.org_id)
    activation = q.first()
    if activation is None:
        return None, errors.ACTIVATION_NOT_FOUND
    return _deactivate(db, actor, activation, source="admin"), None


def deactivate_device(db: Session, actor, device_id: str) -> Tuple[Optional[Activation], Optional[str]]:
    """Auto-disattivazione dal device (logout / cambio macchina)."""
    activation = get_active_activation(db, actor.org_id, device_id)
    if activation is None:
        return None, errors.ACTIVATION_NOT_FOUND
    return _deactivate(db, actor, activation, source="device"), None
