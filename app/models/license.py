import uuid
from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    ForeignKey,
    Index,
    Text,
    Uuid,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from app.core.utils import effective_status, utcnow
from app.db.base import Base, JSONType

LICENSE_STATUSES = ("active", "expired", "revoked")


class License(Base):
    __tablename__ = "licenses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # SHA-256 della chiave normalizzata: la chiave in chiaro non viene mai salvata
    license_key_hash = Column(String(64), unique=True, nullable=False, index=True)

    status = Column(String(16), nullable=False, default="active")

    plan_id = Column(Uuid, ForeignKey("license_plans.id"), nullable=False)
    plan_code = Column(String(64), nullable=False)

    # Tetto effettivo di device attivi (override o default del piano)
    seats_total = Column(Integer, nullable=False, default=1)

    # Una volta valorizzato non cambia più (first-activation-wins)
    issued_to_org_id = Column(Uuid, ForeignKey("orgs.id"), nullable=True)

    issued_by = Column(Uuid, nullable=True)
    issued_at = Column(DateTime(timezone=False), default=utcnow, nullable=False)

    # None = licenza senza scadenza
    expires_at = Column(DateTime(timezone=False), nullable=True)

    renewed_at = Column(DateTime(timezone=False), nullable=True)
    revoked_at = Column(DateTime(timezone=False), nullable=True)
    revoked_by = Column(Uuid, nullable=True)
    revoked_reason = Column(Text, nullable=True)

    # "metadata" è riservato da SQLAlchemy: attributo `meta`, colonna "metadata"
    meta = Column("metadata", JSONType, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=False), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=False), default=utcnow, onupdate=utcnow, nullable=False)

    # --- RELAZIONI -----------------------------------------------------
    plan = relationship("LicensePlan")
    activations = relationship("Activation", back_populates="license", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("status IN ('active','expired','revoked')", name="ck_licenses_status"),
        CheckConstraint("seats_total >= 1", name="ck_licenses_seats_total_positive"),
        Index("ix_licenses_org_status", "issued_to_org_id", "status"),
        Index("ix_licenses_expires_at", "expires_at"),
    )

    # --- PROPERTY UTILI ------------------------------------------------
    def effective_status(self, now=None) -> str:
        """Stato calcolato da status salvato + expires_at (non si fida della sola colonna)."""
        return effective_status(self.status, self.expires_at, now)

    @property
    def is_revoked(self) -> bool:
        return self.status == "revoked"
