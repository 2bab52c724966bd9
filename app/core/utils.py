from datetime import datetime, timedelta, timezone
from typing import Optional

# ------------------------------------------------------------
# Time helpers
# ------------------------------------------------------------

def utcnow() -> datetime:
    """Restituisce l'orario UTC corrente (naive, come le colonne DB)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Converte un datetime aware in UTC naive; i naive restano invariati."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def compute_expiry(start: datetime, days: int) -> datetime:
    """Calcola la data di scadenza partendo da un istante e giorni di durata."""
    return start + timedelta(days=days)


# ------------------------------------------------------------
# Stato effettivo licenza (transizione lazy a "expired")
# ------------------------------------------------------------

def effective_status(status: str, expires_at: Optional[datetime], now: Optional[datetime] = None) -> str:
    """
    Stato reale di una licenza in funzione di stato salvato, scadenza e ora.

    - revoked resta revoked (terminale).
    - active con expires_at nel passato diventa expired.
    - expires_at None = licenza senza scadenza.
    """
    if status == "revoked":
        return "revoked"
    now = now or utcnow()
    if expires_at is not None and as_naive_utc(expires_at) <= now:
        return "expired"
    return status
