# app/schemas/license.py
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.plan import CAMEL
from app.schemas.activation import ActivationOut


# ------------------------------------------------------------
# Input admin
# ------------------------------------------------------------
class LicenseIssueIn(BaseModel):
    """orgId assente = licenza non legata, la lega la prima attivazione."""
    org_id: Optional[UUID] = None
    plan_code: str = Field(..., min_length=1, max_length=64)
    seats: Optional[int] = Field(None, ge=1)
    expires_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None

    model_config = CAMEL


class LicenseRenewIn(BaseModel):
    extension_days: Optional[int] = Field(None, ge=1)

    model_config = CAMEL


class LicenseRevokeIn(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

    model_config = CAMEL


# ------------------------------------------------------------
# Output
# ------------------------------------------------------------
class LicenseOut(BaseModel):
    """`status` è lo stato effettivo (expired anche se su DB è ancora active)."""
    id: UUID
    status: str
    plan_id: UUID
    plan_code: str
    seats_total: int
    issued_to_org_id: Optional[UUID] = None
    issued_by: Optional[UUID] = None
    issued_at: datetime
    expires_at: Optional[datetime] = None
    renewed_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    revoked_reason: Optional[str] = None
    metadata: Dict[str, Any] = {}
    active_devices: Optional[int] = None
    last_heartbeat: Optional[datetime] = None

    model_config = CAMEL


class LicenseIssueOut(BaseModel):
    # la chiave in chiaro compare solo in questa risposta
    license_key: str
    license: LicenseOut

    model_config = CAMEL


class LicenseListOut(BaseModel):
    total: int
    items: List[LicenseOut]

    model_config = CAMEL


class LicenseDetailOut(BaseModel):
    license: LicenseOut
    activations: List[ActivationOut]

    model_config = CAMEL
