import uuid
from sqlalchemy import Column, String, DateTime, Uuid

from app.core.utils import utcnow
from app.db.base import Base


class Org(Base):
    """Organizzazione (tenant). Gestita altrove: qui serve solo per lookup e binding."""
    __tablename__ = "orgs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    created_at = Column(DateTime(timezone=False), default=utcnow, nullable=False)
