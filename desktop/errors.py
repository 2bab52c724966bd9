# desktop/errors.py

# Reason lato client (oltre a quelli restituiti dal server: expired, revoked, not_activated, ...)
NOT_ACTIVATED = "not_activated"
EXPIRED = "expired"
REVOKED = "revoked"
VALIDATION_FAILED = "validation_failed"
NETWORK_ERROR = "network_error"
HEARTBEAT_FAILED = "heartbeat_failed"
NO_TOKEN = "no_token"

# Risposte del server che bloccano subito l'app, a prescindere dalla cache
AUTHORITATIVE_REASONS = {EXPIRED, REVOKED, NOT_ACTIVATED}


class LicenseClientError(Exception):
    """Base per gli errori del client licenze."""


class TransientNetworkError(LicenseClientError):
    """Server non raggiungibile (timeout, DNS, connessione rifiutata)."""


class CorruptCacheError(LicenseClientError):
    """Cache locale non decifrabile o non valida: equivale a nessuna cache."""
