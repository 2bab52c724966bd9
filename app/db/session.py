import logging

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from app.core.config import settings

logger = logging.getLogger("uvicorn.error")


def _normalize_dsn(url: str) -> str:
    url = (url or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL mancante")
    # Railway/Render possono fornire postgres:// o postgresql:// senza driver
    if url.startswith("postgres://"):
        return "postgresql+psycopg://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return "postgresql+psycopg://" + url[len("postgresql://"):]
    return url


def serialize_sqlite_writes(sqlite_engine) -> None:
    """
    SQLite ignora FOR UPDATE: ogni transazione parte con BEGIN IMMEDIATE,
    così conteggio posti e insert di due attivazioni non si intrecciano.
    Il driver non deve aprire transazioni per conto suo (isolation_level=None).
    """

    @event.listens_for(sqlite_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


DATABASE_URL = _normalize_dsn(settings.DATABASE_URL)
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, pool_pre_ping=True, future=True, connect_args=_connect_args)
# solo SQLite su file: il database in memoria vive su una connessione sola
if engine.dialect.name == "sqlite" and engine.url.database not in (None, "", ":memory:"):
    serialize_sqlite_writes(engine)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None) -> None:
    """Crea le tabelle mancanti (nessun tool di migrazione)."""
    # gli import registrano i modelli su Base.metadata
    from app.db.base import Base
    from app.models import org, plan, license, activation, audit_log  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("[db] schema ready")
