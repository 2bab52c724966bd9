import uuid
from sqlalchemy import Column, String, Integer, Boolean, DateTime, Uuid

from app.core.config import settings
from app.core.utils import utcnow
from app.db.base import Base, JSONType


class LicensePlan(Base):
    __tablename__ = "license_plans"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(120), unique=True, nullable=False)
    code = Column(String(64), unique=True, nullable=False, index=True)

    # Durata di default del periodo e posti (device) di default
    duration_days = Column(Integer, nullable=False, default=settings.DEFAULT_PLAN_DURATION_DAYS)
    max_devices = Column(Integer, nullable=False, default=settings.DEFAULT_PLAN_MAX_DEVICES)

    features = Column(JSONType, nullable=False, default=dict)
    price_cents = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=False), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=False), default=utcnow, onupdate=utcnow, nullable=False)
