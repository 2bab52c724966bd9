# desktop/license_service.py
"""
Giudice della licenza lato desktop.

Stati:
- unactivated:  nessuna cache
- valid:        ultimo heartbeat entro l'intervallo (24h)
- grace_period: heartbeat più vecchio dell'intervallo ma entro la grace offline (3 giorni)
- locked:       scaduta, grace esaurita senza contatto, o rifiuto esplicito del server

La risposta del server (revoked/expired/not_activated) vince sempre sulla cache.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional, Tuple

from desktop import config, errors, fingerprint
from desktop.api import LicenseAPI
from desktop.lock_screen import LockMessage, lock_message
from desktop.storage import LicenseCache, LicenseRecord, parse_datetime

logger = logging.getLogger(__name__)


class LicenseState(str, Enum):
    UNACTIVATED = "unactivated"
    VALID = "valid"
    GRACE_PERIOD = "grace_period"
    LOCKED = "locked"


@dataclass
class StartupResult:
    valid: bool
    state: LicenseState
    reason: Optional[str] = None
    needs_activation: bool = False
    record: Optional[LicenseRecord] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LicenseService:
    def __init__(
        self,
        api: Optional[LicenseAPI] = None,
        cache: Optional[LicenseCache] = None,
        device_id: Optional[str] = None,
        now: Callable[[], datetime] = _utcnow,
        grace_period: timedelta = config.OFFLINE_GRACE_PERIOD,
        heartbeat_interval: timedelta = config.HEARTBEAT_INTERVAL,
        app_version: str = config.APP_VERSION,
    ):
        self.device_id = device_id or fingerprint.device_id()
        self.api = api or LicenseAPI()
        self.cache = cache or LicenseCache(self.device_id)
        self.now = now
        self.grace_period = grace_period
        self.heartbeat_interval = heartbeat_interval
        self.app_version = app_version
        # ultimo rifiuto del server; quelli autorevoli finiscono anche in cache (LicenseRecord.locked_reason)
        self.locked_reason: Optional[str] = None

    # -------------------------
    # stato locale
    # -------------------------
    def needs_revalidation(self, record: LicenseRecord, now: Optional[datetime] = None) -> bool:
        now = now or self.now()
        return now - record.last_heartbeat > self.grace_period

    def state(self) -> LicenseState:
        record = self.cache.load()
        if record is None:
            return LicenseState.UNACTIVATED
        if self.locked_reason or record.locked_reason:
            return LicenseState.LOCKED

        now = self.now()
        if record.is_expired(now):
            return LicenseState.LOCKED
        age = now - record.last_heartbeat
        if age <= self.heartbeat_interval:
            return LicenseState.VALID
        if age <= self.grace_period:
            return LicenseState.GRACE_PERIOD
        return LicenseState.LOCKED

    def lock_message(self) -> LockMessage:
        return lock_message(self.locked_reason)

    # -------------------------
    # avvio
    # -------------------------
    def validate_on_startup(self, bearer_token: Optional[str] = None) -> StartupResult:
        record = self.cache.load()
        if record is None:
            return StartupResult(
                valid=False,
                state=LicenseState.UNACTIVATED,
                reason=errors.NOT_ACTIVATED,
                needs_activation=True,
            )

        # un rifiuto del server, anche di una sessione precedente, vince sulla cache
        locked = record.locked_reason
        if locked is None and self.locked_reason in errors.AUTHORITATIVE_REASONS:
            locked = self.locked_reason
        if locked:
            self.locked_reason = locked
            return StartupResult(valid=False, state=LicenseState.LOCKED, reason=locked, record=record)

        now = self.now()

        # scadenza locale: si blocca subito, senza rete
        if record.is_expired(now):
            self.locked_reason = errors.EXPIRED
            return StartupResult(valid=False, state=LicenseState.LOCKED, reason=errors.EXPIRED, record=record)

        if not self.needs_revalidation(record, now):
            return StartupResult(valid=True, state=self.state(), record=record)

        token = bearer_token or record.access_token
        if not token:
            return StartupResult(valid=False, state=LicenseState.LOCKED, reason=errors.NO_TOKEN, record=record)

        try:
            result = self.api.validate(token, record.device_id)
        except errors.TransientNetworkError:
            return StartupResult(
                valid=False,
                state=LicenseState.LOCKED,
                reason=errors.NETWORK_ERROR,
                record=record,
            )

        if not result["ok"]:
            reason = result["reason"]
            logger.warning("[license] rivalidazione rifiutata: %s", reason)
            if reason in errors.AUTHORITATIVE_REASONS:
                self._lock(record, reason)
            else:
                self.locked_reason = reason
            return StartupResult(valid=False, state=LicenseState.LOCKED, reason=reason, record=record)

        record = self._refresh(record, result["data"], now)
        return StartupResult(valid=True, state=LicenseState.VALID, record=record)

    # -------------------------
    # attivazione / disattivazione
    # -------------------------
    def activate(
        self,
        license_key: str,
        bearer_token: str,
        device_label: Optional[str] = None,
    ) -> Tuple[Optional[LicenseRecord], Optional[str]]:
        try:
            result = self.api.activate(
                bearer_token,
                license_key,
                self.device_id,
                device_label=device_label,
                machine_info=fingerprint.machine_info(self.app_version),
            )
        except errors.TransientNetworkError:
            return None, errors.NETWORK_ERROR

        if not result["ok"]:
            logger.info("[license] attivazione rifiutata: %s", result["reason"])
            return None, result["reason"]

        data = result["data"]
        now = self.now()
        record = LicenseRecord(
            activation_id=str(data["activationId"]),
            license_id=str(data["licenseId"]),
            device_id=self.device_id,
            plan_code=data["planCode"],
            expires_at=parse_datetime(data.get("expiresAt")),
            activated_at=now,
            last_heartbeat=now,
            access_token=bearer_token,
        )
        self.cache.save(record)
        self.locked_reason = None
        logger.info("[license] device attivato plan=%s", record.plan_code)
        return record, None

    def deactivate(self, bearer_token: Optional[str] = None) -> bool:
        """
        Disattiva sul server (se raggiungibile) e cancella sempre la cache locale.
        Ritorna True se il server ha confermato.
        """
        record = self.cache.load()
        confirmed = False
        token = bearer_token or (record.access_token if record else None)
        if record is not None and token:
            try:
                confirmed = self.api.deactivate(token, record.device_id)
            except errors.TransientNetworkError:
                logger.warning("[license] server non raggiungibile, disattivazione solo locale")
        self.clear_cache()
        return confirmed

    def clear_cache(self) -> None:
        self.cache.clear()
        self.locked_reason = None

    # -------------------------
    # esiti heartbeat (usati dallo scheduler)
    # -------------------------
    def record_heartbeat_success(self, data: Optional[dict] = None) -> Optional[LicenseRecord]:
        record = self.cache.load()
        if record is None:
            return None
        return self._refresh(record, data or {}, self.now())

    def record_rejection(self, reason: str) -> None:
        if reason in errors.AUTHORITATIVE_REASONS:
            logger.warning("[license] il server ha rifiutato il device: %s", reason)
            record = self.cache.load()
            if record is None:
                self.locked_reason = reason
            else:
                self._lock(record, reason)

    def _lock(self, record: LicenseRecord, reason: str) -> None:
        self.locked_reason = reason
        record.locked_reason = reason
        self.cache.save(record)

    def _refresh(self, record: LicenseRecord, data: dict, now: datetime) -> LicenseRecord:
        record.last_heartbeat = now
        record.locked_reason = None
        if data.get("expiresAt"):
            # un rinnovo lato server allunga anche la scadenza in cache
            record.expires_at = parse_datetime(data["expiresAt"])
        self.cache.save(record)
        self.locked_reason = None
        return record
