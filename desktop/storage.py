# desktop/storage.py
"""
Cache locale della licenza, cifrata su disco.

- chiave per device: HKDF-SHA256(secret app, salt = device id)
- AES-256-GCM, nonce casuale da 12 byte a ogni scrittura
- formato file: base64(nonce) "." base64(ciphertext)
- scrittura su file temporaneo + os.replace, mai un file scritto a metà

È un deterrente contro la lettura casuale del file, non un secret store.
"""
import base64
import json
import logging
import os
import platform
import tempfile
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from desktop import config
from desktop.errors import CorruptCacheError

logger = logging.getLogger(__name__)

NONCE_SIZE = 12
_HKDF_INFO = b"wabsender-license-cache-v1"


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """ISO 8601 -> datetime aware UTC (i valori senza offset sono UTC)."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class LicenseRecord:
    activation_id: str
    license_id: str
    device_id: str
    plan_code: str
    expires_at: Optional[datetime]
    activated_at: datetime
    last_heartbeat: datetime
    access_token: Optional[str] = None
    # rifiuto esplicito del server (revoked/expired/not_activated), sopravvive al riavvio
    locked_reason: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        # nessuna scadenza = perpetua
        return self.expires_at is not None and self.expires_at <= now

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for field in ("expires_at", "activated_at", "last_heartbeat"):
            data[field] = _iso(data[field])
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LicenseRecord":
        return cls(
            activation_id=str(data["activation_id"]),
            license_id=str(data["license_id"]),
            device_id=str(data["device_id"]),
            plan_code=str(data["plan_code"]),
            expires_at=parse_datetime(data.get("expires_at")),
            activated_at=parse_datetime(data["activated_at"]),
            last_heartbeat=parse_datetime(data["last_heartbeat"]),
            access_token=data.get("access_token"),
            locked_reason=data.get("locked_reason"),
        )


def default_cache_dir() -> Path:
    system = platform.system()
    if system == "Windows":
        return Path(os.environ.get("PROGRAMDATA", r"C:\ProgramData")) / config.APP_DIR_NAME
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / config.APP_DIR_NAME
    base = os.environ.get("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(base) / config.APP_DIR_NAME.lower()


class LicenseCache:
    def __init__(self, device_id: str, path: Optional[Path] = None, secret: Optional[str] = None):
        self.device_id = device_id
        self.path = Path(path) if path is not None else default_cache_dir() / config.CACHE_FILE_NAME
        self._aead = AESGCM(self._derive_key(secret or config.CACHE_SECRET, device_id))

    @staticmethod
    def _derive_key(secret: str, device_id: str) -> bytes:
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=device_id.encode("utf-8"),
            info=_HKDF_INFO,
        )
        return hkdf.derive(secret.encode("utf-8"))

    # -------------------------
    # scrittura
    # -------------------------
    def save(self, record: LicenseRecord) -> None:
        plaintext = json.dumps(record.to_dict(), separators=(",", ":")).encode("utf-8")
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aead.encrypt(nonce, plaintext, None)
        blob = base64.b64encode(nonce) + b"." + base64.b64encode(ciphertext)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".license-", suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(blob)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except Exception:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise
        logger.debug("[cache] salvata in %s", self.path)

    # -------------------------
    # lettura
    # -------------------------
    def read(self) -> Optional[LicenseRecord]:
        """None se il file non esiste, CorruptCacheError se non è leggibile."""
        try:
            blob = self.path.read_bytes()
        except FileNotFoundError:
            return None

        try:
            nonce_b64, ct_b64 = blob.strip().split(b".", 1)
            nonce = base64.b64decode(nonce_b64, validate=True)
            ciphertext = base64.b64decode(ct_b64, validate=True)
            plaintext = self._aead.decrypt(nonce, ciphertext, None)
            return LicenseRecord.from_dict(json.loads(plaintext))
        except (ValueError, KeyError, TypeError, InvalidTag) as e:
            raise CorruptCacheError(f"cache non valida: {e!r}") from e

    def load(self) -> Optional[LicenseRecord]:
        """Come read(), ma una cache corrotta vale come nessuna cache."""
        try:
            return self.read()
        except CorruptCacheError:
            logger.warning("[cache] file %s corrotto, richiesta nuova attivazione", self.path)
            return None

    def clear(self) -> None:
        try:
            self.path.unlink()
            logger.info("[cache] rimossa")
        except FileNotFoundError:
            pass
