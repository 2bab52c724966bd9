# app/schemas/plan.py
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

# Payload JSON in camelCase (durationDays, maxDevices, ...), attributi Python in snake_case
CAMEL = {"from_attributes": True, "alias_generator": to_camel, "populate_by_name": True}


class PlanCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    code: str = Field(..., min_length=1, max_length=64)
    duration_days: Optional[int] = Field(None, ge=1)
    max_devices: Optional[int] = Field(None, ge=1)
    features: Optional[Dict[str, Any]] = None
    price_cents: Optional[int] = Field(None, ge=0)

    model_config = CAMEL


class PlanUpdate(BaseModel):
    """Solo i campi presenti vengono modificati."""
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    code: Optional[str] = Field(None, min_length=1, max_length=64)
    duration_days: Optional[int] = Field(None, ge=1)
    max_devices: Optional[int] = Field(None, ge=1)
    features: Optional[Dict[str, Any]] = None
    price_cents: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None

    model_config = CAMEL


class PlanOut(BaseModel):
    id: UUID
    name: str
    code: str
    duration_days: int
    max_devices: int
    features: Dict[str, Any] = {}
    price_cents: int
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = CAMEL
