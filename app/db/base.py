from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

# ------------------------------------------------------------
# BASE DICHIARATIVA SQLALCHEMY
# ------------------------------------------------------------
Base = declarative_base()

# JSONB su Postgres, JSON generico altrove (SQLite nei test)
JSONType = JSON().with_variant(JSONB(), "postgresql")
