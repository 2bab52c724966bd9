# app/schemas/activation.py
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.plan import CAMEL


# ------------------------------------------------------------
# Device -> server
# ------------------------------------------------------------
class ActivateIn(BaseModel):
    license_key: str = Field(..., min_length=1, max_length=64)
    device_id: str = Field(..., min_length=1, max_length=128)
    device_label: Optional[str] = Field(None, max_length=200)
    machine_info: Optional[Dict[str, Any]] = None

    model_config = CAMEL


class HeartbeatIn(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=128)
    app_version: Optional[str] = Field(None, max_length=64)

    model_config = CAMEL


class DeviceIn(BaseModel):
    """Usato da /validate e /deactivate."""
    device_id: str = Field(..., min_length=1, max_length=128)

    model_config = CAMEL


# ------------------------------------------------------------
# Server -> device
# ------------------------------------------------------------
class ActivateOut(BaseModel):
    activated: bool
    activation_id: UUID
    license_id: UUID
    plan_code: str
    expires_at: Optional[datetime] = None

    model_config = CAMEL


class HeartbeatOut(BaseModel):
    valid: bool
    reason: Optional[str] = None
    expires_at: Optional[datetime] = None

    model_config = CAMEL


class ValidateOut(BaseModel):
    activated: bool
    reason: Optional[str] = None
    plan_code: Optional[str] = None
    expires_at: Optional[datetime] = None

    model_config = CAMEL


# ------------------------------------------------------------
# Admin
# ------------------------------------------------------------
class ActivationOut(BaseModel):
    id: UUID
    license_id: UUID
    org_id: UUID
    device_id: str
    device_label: Optional[str] = None
    user_id: Optional[UUID] = None
    app_version: Optional[str] = None
    ip_address: Optional[str] = None
    machine_info: Dict[str, Any] = {}
    activated_at: datetime
    last_heartbeat: datetime
    last_validated_at: datetime
    deactivated_at: Optional[datetime] = None
    is_active: bool

    model_config = CAMEL
