# app/schemas/audit.py
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel

from app.schemas.plan import CAMEL


class AuditLogOut(BaseModel):
    id: UUID
    action: str
    target_type: str
    target_id: Optional[UUID] = None
    license_id: Optional[UUID] = None
    activation_id: Optional[UUID] = None
    org_id: Optional[UUID] = None
    actor_id: Optional[UUID] = None
    actor_role: Optional[str] = None
    details: Dict[str, Any] = {}
    ip_address: Optional[str] = None
    created_at: datetime

    model_config = CAMEL
