# app/core/errors.py
from __future__ import annotations

from fastapi import status

# ------------------------------------------------------------
# REASON CODES (esiti di business, non eccezioni)
# ------------------------------------------------------------
LICENSE_NOT_FOUND = "license_not_found"
PLAN_NOT_FOUND = "plan_not_found"
ORG_NOT_FOUND = "org_not_found"
ACTIVATION_NOT_FOUND = "activation_not_found"

REVOKED = "revoked"
EXPIRED = "expired"
NOT_ACTIVATED = "not_activated"
ORG_MISMATCH = "org_mismatch"
SEAT_LIMIT = "seat_limit_reached"
INVALID_KEY = "invalid_key"
INVALID_STATUS = "invalid_status"

PLAN_EXISTS = "plan_exists"
PLAN_IN_USE = "plan_in_use"
KEY_GENERATION_FAILED = "key_generation_failed"


# ------------------------------------------------------------
# TASSONOMIA
# ------------------------------------------------------------
NOT_FOUND = "NotFound"
INVALID_STATE = "InvalidState"
LIMIT_EXCEEDED = "LimitExceeded"
UNAUTHORIZED = "Unauthorized"
CONFLICT = "Conflict"
BAD_REQUEST = "BadRequest"
INTERNAL = "Internal"

REASON_KIND = {
    LICENSE_NOT_FOUND: NOT_FOUND,
    PLAN_NOT_FOUND: NOT_FOUND,
    ORG_NOT_FOUND: NOT_FOUND,
    ACTIVATION_NOT_FOUND: NOT_FOUND,
    REVOKED: INVALID_STATE,
    EXPIRED: INVALID_STATE,
    NOT_ACTIVATED: INVALID_STATE,
    SEAT_LIMIT: LIMIT_EXCEEDED,
    ORG_MISMATCH: UNAUTHORIZED,
    PLAN_EXISTS: CONFLICT,
    PLAN_IN_USE: CONFLICT,
    INVALID_KEY: BAD_REQUEST,
    INVALID_STATUS: BAD_REQUEST,
    KEY_GENERATION_FAILED: INTERNAL,
}

KIND_STATUS = {
    NOT_FOUND: status.HTTP_404_NOT_FOUND,
    INVALID_STATE: status.HTTP_403_FORBIDDEN,
    UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    LIMIT_EXCEEDED: status.HTTP_409_CONFLICT,
    CONFLICT: status.HTTP_409_CONFLICT,
    BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
    INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def reason_kind(reason: str) -> str:
    return REASON_KIND.get(reason, INTERNAL)


def status_for(reason: str) -> int:
    """Mappa un reason code sullo status HTTP da restituire."""
    return KIND_STATUS[reason_kind(reason)]
