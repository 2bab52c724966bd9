import uuid
from sqlalchemy import (
    Column,
    String,
    DateTime,
    ForeignKey,
    Index,
    Uuid,
    text,
)
from sqlalchemy.orm import relationship

from app.core.utils import utcnow
from app.db.base import Base, JSONType


class Activation(Base):
    __tablename__ = "license_activations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    license_id = Column(
        Uuid,
        ForeignKey("licenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    org_id = Column(Uuid, ForeignKey("orgs.id"), nullable=False)

    # Generato dal client, stabile per macchina
    device_id = Column(String(128), nullable=False)
    device_label = Column(String(200), nullable=True)

    # Utente che ha eseguito l'attivazione
    user_id = Column(Uuid, nullable=True)

    app_version = Column(String(64), nullable=True)
    ip_address = Column(String(64), nullable=True)
    machine_info = Column(JSONType, nullable=False, default=dict)

    activated_at = Column(DateTime(timezone=False), default=utcnow, nullable=False)
    last_heartbeat = Column(DateTime(timezone=False), default=utcnow, nullable=False)
    last_validated_at = Column(DateTime(timezone=False), default=utcnow, nullable=False)

    # None = attivazione ancora attiva (soft delete)
    deactivated_at = Column(DateTime(timezone=False), nullable=True)

    license = relationship("License", back_populates="activations")

    __table_args__ = (
        # Al massimo una riga attiva per (org, device): backstop lato storage
        Index(
            "uq_activations_org_device_active",
            "org_id",
            "device_id",
            unique=True,
            postgresql_where=text("deactivated_at IS NULL"),
            sqlite_where=text("deactivated_at IS NULL"),
        ),
        Index("ix_activations_license_active", "license_id", "deactivated_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.deactivated_at is None

    def deactivate(self, when=None):
        """Imposta deactivated_at se la riga è ancora attiva."""
        if self.deactivated_at is None:
            self.deactivated_at = when or utcnow()
