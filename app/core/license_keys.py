# app/core/license_keys.py
"""
Generazione e validazione chiavi licenza.

Formato: WAB-XXXXX-XXXXX-XXXXX-XXXXX
- alfabeto senza caratteri ambigui (niente 0/O, 1/I/L)
- sorgente random crittografica (secrets)
- su DB si salva SOLO lo SHA-256 della chiave normalizzata
"""
from __future__ import annotations

import hashlib
import math
import re
import secrets
from dataclasses import dataclass
from typing import Iterable, List, Optional

CHARSET = "23456789ABCDEFGHJKMNPQRSTUVWXYZ"
PREFIX = "WAB"
SEGMENT_LENGTH = 5
SEGMENTS = 4

NORMALIZED_LENGTH = len(PREFIX) + SEGMENT_LENGTH * SEGMENTS
_BODY_RE = re.compile(f"^[{CHARSET}]{{{SEGMENT_LENGTH * SEGMENTS}}}$")


@dataclass(frozen=True)
class LicenseKey:
    key: str         # chiave formattata, da consegnare al cliente una sola volta
    hash: str        # SHA-256 hex della chiave normalizzata
    normalized: str


@dataclass(frozen=True)
class KeyValidation:
    valid: bool
    normalized: Optional[str] = None
    hash: Optional[str] = None
    error: Optional[str] = None


def normalize_key(license_key: str) -> str:
    """Rimuove tutto ciò che non è alfanumerico e porta in maiuscolo."""
    return re.sub(r"[^A-Za-z0-9]", "", license_key or "").upper()


def hash_key(license_key: str) -> str:
    """SHA-256 della chiave normalizzata: stessa chiave => stessa riga."""
    return hashlib.sha256(normalize_key(license_key).encode("ascii")).hexdigest()


def format_key(normalized: str) -> str:
    """Reinserisce i trattini: WABXXXXX... -> WAB-XXXXX-..."""
    clean = normalize_key(normalized)
    body = clean[len(PREFIX):]
    groups = [body[i:i + SEGMENT_LENGTH] for i in range(0, len(body), SEGMENT_LENGTH)]
    return "-".join([clean[:len(PREFIX)], *groups])


def generate_license_key() -> LicenseKey:
    segments = [
        "".join(secrets.choice(CHARSET) for _ in range(SEGMENT_LENGTH))
        for _ in range(SEGMENTS)
    ]
    key = "-".join([PREFIX, *segments])
    normalized = normalize_key(key)
    return LicenseKey(key=key, hash=hash_key(normalized), normalized=normalized)


def validate_license_key(license_key: str) -> KeyValidation:
    """
    Verifica solo il formato (prefisso + gruppi), non l'esistenza su DB.
    """
    normalized = normalize_key(license_key)
    if len(normalized) != NORMALIZED_LENGTH:
        return KeyValidation(valid=False, error="invalid_length")
    if not normalized.startswith(PREFIX):
        return KeyValidation(valid=False, error="invalid_prefix")
    if not _BODY_RE.match(normalized[len(PREFIX):]):
        return KeyValidation(valid=False, error="invalid_characters")
    return KeyValidation(valid=True, normalized=normalized, hash=hash_key(normalized))


def validate_format(license_key: str) -> bool:
    return validate_license_key(license_key).valid


def generate_batch(count: int, existing_hashes: Optional[Iterable[str]] = None) -> List[LicenseKey]:
    """
    Genera `count` chiavi uniche, scartando collisioni con `existing_hashes`.
    Limite di sicurezza: count * 10 tentativi.
    """
    seen = set(existing_hashes or ())
    keys: List[LicenseKey] = []
    attempts = 0
    max_attempts = count * 10

    while len(keys) < count and attempts < max_attempts:
        attempts += 1
        candidate = generate_license_key()
        if candidate.hash in seen:
            continue
        seen.add(candidate.hash)
        keys.append(candidate)

    if len(keys) < count:
        raise RuntimeError(f"Could only generate {len(keys)} unique keys out of {count} requested")
    return keys


def collision_probability(key_count: int) -> float:
    """Stima (birthday bound) della probabilità di collisione su key_count chiavi."""
    keyspace = float(len(CHARSET)) ** (SEGMENT_LENGTH * SEGMENTS)
    return -math.expm1(-(key_count * key_count) / (2 * keyspace))
