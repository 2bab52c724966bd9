import uuid
from sqlalchemy import Column, String, DateTime, Index, Uuid

from app.core.utils import utcnow
from app.db.base import Base, JSONType


class LicenseAuditLog(Base):
    __tablename__ = "license_audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Riferimenti "leggeri" (niente FK: l'audit deve sopravvivere alle righe)
    license_id = Column(Uuid, nullable=True)
    activation_id = Column(Uuid, nullable=True)
    org_id = Column(Uuid, nullable=True)

    actor_id = Column(Uuid, nullable=True)
    actor_role = Column(String(32), nullable=True)

    action = Column(String(64), nullable=False)  # es: license_issued, device_activated
    target_type = Column(String(32), nullable=False)  # license | activation | plan
    target_id = Column(Uuid, nullable=True)

    details = Column(JSONType, nullable=False, default=dict)
    ip_address = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=False), default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_license_audit_logs_license_created_at", "license_id", "created_at"),
        Index("ix_license_audit_logs_org_created_at", "org_id", "created_at"),
        Index("ix_license_audit_logs_action_created_at", "action", "created_at"),
    )
