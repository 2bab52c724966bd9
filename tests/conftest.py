import os

# prima di importare l'app: niente Postgres nei test
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret")

import uuid
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core import security
from app.db.session import get_db, init_db
from app.models.org import Org
from app.models.plan import LicensePlan
from main import app


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# -------------------------
# dati di base
# -------------------------
@pytest.fixture
def org_a(db):
    org = Org(name="Org A")
    db.add(org)
    db.commit()
    db.refresh(org)
    return org


@pytest.fixture
def org_b(db):
    org = Org(name="Org B")
    db.add(org)
    db.commit()
    db.refresh(org)
    return org


@pytest.fixture
def basic_plan(db):
    plan = LicensePlan(name="Basic", code="basic", duration_days=365, max_devices=1, price_cents=9900)
    db.add(plan)
    db.commit()
    db.refresh(plan)
    return plan


@pytest.fixture
def pro_plan(db):
    plan = LicensePlan(name="Professional", code="pro", duration_days=365, max_devices=3, price_cents=29900)
    db.add(plan)
    db.commit()
    db.refresh(plan)
    return plan


# -------------------------
# chiamanti
# -------------------------
def make_actor(org_id=None, role=security.ROLE_USER):
    return SimpleNamespace(
        user_id=uuid.uuid4(),
        org_id=org_id,
        role=role,
        is_super_admin=role == security.ROLE_SUPER_ADMIN,
    )


def auth_headers(org_id=None, role=security.ROLE_USER, **extra):
    token = security.create_access_token(uuid.uuid4(), org_id, role=role)
    headers = {"Authorization": f"Bearer {token}"}
    headers.update(extra)
    return headers


@pytest.fixture
def super_admin():
    return make_actor(role=security.ROLE_SUPER_ADMIN)


@pytest.fixture
def super_headers():
    return auth_headers(role=security.ROLE_SUPER_ADMIN)
