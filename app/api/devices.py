# app/api/devices.py
"""
Rotte chiamate dal client desktop.

Gli esiti negativi NON sono eccezioni: il device riceve sempre un JSON
{activated|valid: false, reason} con lo status HTTP mappato dal reason.
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import client_ip, get_device_caller, raise_for_reason
from app.core.errors import status_for
from app.crud import activation_crud
from app.db.session import get_db
from app.schemas.activation import (
    ActivateIn,
    ActivateOut,
    ActivationOut,
    DeviceIn,
    HeartbeatIn,
    HeartbeatOut,
    ValidateOut,
)

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/subscription", tags=["devices"])


def _rejected(flag: str, reason: str) -> JSONResponse:
    return JSONResponse(status_code=status_for(reason), content={flag: False, "reason": reason})


@router.post("/activate", response_model=ActivateOut)
def activate(
    payload: ActivateIn,
    request: Request,
    db: Session = Depends(get_db),
    caller=Depends(get_device_caller),
):
    activation, reason = activation_crud.activate_device(
        db,
        caller,
        payload.device_id,
        license_key=payload.license_key,
        device_label=payload.device_label,
        machine_info=payload.machine_info,
        ip_address=client_ip(request),
    )
    if reason:
        logger.info("[devices] activate rejected device=%s reason=%s", payload.device_id, reason)
        return _rejected("activated", reason)

    lic = activation.license
    return {
        "activated": True,
        "activation_id": activation.id,
        "license_id": lic.id,
        "plan_code": lic.plan_code,
        "expires_at": lic.expires_at,
    }


@router.post("/heartbeat", response_model=HeartbeatOut)
def heartbeat(
    payload: HeartbeatIn,
    db: Session = Depends(get_db),
    caller=Depends(get_device_caller),
):
    activation, reason = activation_crud.heartbeat(db, caller.org_id, payload.device_id, app_version=payload.app_version)
    if reason:
        return _rejected("valid", reason)
    return {"valid": True, "expires_at": activation.license.expires_at}


@router.post("/validate", response_model=ValidateOut)
def validate(
    payload: DeviceIn,
    db: Session = Depends(get_db),
    caller=Depends(get_device_caller),
):
    """
    Controllo all'avvio. Risponde sempre 200: l'esito è nel campo activated.
    """
    activation, reason = activation_crud.validate_device(db, caller.org_id, payload.device_id)
    if reason:
        return {"activated": False, "reason": reason}
    lic = activation.license
    return {"activated": True, "plan_code": lic.plan_code, "expires_at": lic.expires_at}


@router.post("/deactivate", response_model=ActivationOut)
def deactivate(
    payload: DeviceIn,
    db: Session = Depends(get_db),
    caller=Depends(get_device_caller),
):
    activation, reason = activation_crud.deactivate_device(db, caller, payload.device_id)
    if reason:
        raise_for_reason(reason)
    return activation
