from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from app.core import errors, security
from app.core.utils import as_naive_utc, effective_status
from app.db.session import _normalize_dsn

NOW = datetime(2026, 5, 1, 9, 0, 0)


@pytest.mark.parametrize(
    "status, expires_at, expected",
    [
        ("active", NOW + timedelta(seconds=1), "active"),
        ("active", NOW, "expired"),
        ("active", NOW - timedelta(days=1), "expired"),
        ("active", None, "active"),
        ("expired", NOW - timedelta(days=1), "expired"),
        ("revoked", NOW + timedelta(days=1), "revoked"),
        ("revoked", NOW - timedelta(days=1), "revoked"),
    ],
)
def test_effective_status(status, expires_at, expected):
    assert effective_status(status, expires_at, NOW) == expected


def test_aware_expiry_is_compared_in_utc():
    aware = datetime(2026, 5, 1, 10, 30, tzinfo=timezone(timedelta(hours=2)))
    assert as_naive_utc(aware) == datetime(2026, 5, 1, 8, 30)
    assert effective_status("active", aware, NOW) == "expired"


@pytest.mark.parametrize(
    "reason, status_code",
    [
        (errors.LICENSE_NOT_FOUND, 404),
        (errors.ACTIVATION_NOT_FOUND, 404),
        (errors.REVOKED, 403),
        (errors.EXPIRED, 403),
        (errors.NOT_ACTIVATED, 403),
        (errors.ORG_MISMATCH, 403),
        (errors.SEAT_LIMIT, 409),
        (errors.PLAN_IN_USE, 409),
        (errors.INVALID_KEY, 400),
        ("something_else", 500),
    ],
)
def test_reason_status_mapping(reason, status_code):
    assert errors.status_for(reason) == status_code


def test_token_round_trip():
    token = security.create_access_token("4b0f6a52-8c1e-4a43-9d5c-0a9e9c1c2b11", None, role=security.ROLE_ADMIN)
    claims = security.decode_token(token)
    assert claims["role"] == "admin"
    assert claims["org_id"] is None


def test_expired_token_is_rejected():
    token = security.create_access_token("u", None, expires_minutes=-1)
    with pytest.raises(HTTPException) as exc:
        security.decode_token(token)
    assert exc.value.status_code == 401


@pytest.mark.parametrize(
    "url, expected",
    [
        ("postgres://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
        ("postgresql://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
        ("sqlite://", "sqlite://"),
    ],
)
def test_normalize_dsn(url, expected):
    assert _normalize_dsn(url) == expected


def test_empty_dsn_fails():
    with pytest.raises(RuntimeError):
        _normalize_dsn("  ")
