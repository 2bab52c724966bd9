import base64
from datetime import datetime, timezone

import pytest

from desktop.errors import CorruptCacheError
from desktop.fingerprint import DEVICE_ID_LENGTH, device_id, fallback_source
from desktop import fingerprint
from desktop.storage import LicenseCache, LicenseRecord

RECORD = LicenseRecord(
    activation_id="act-1",
    license_id="lic-1",
    device_id="device-one",
    plan_code="basic",
    expires_at=datetime(2027, 1, 1, tzinfo=timezone.utc),
    activated_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    last_heartbeat=datetime(2026, 2, 1, tzinfo=timezone.utc),
    access_token="secret-token",
)


def test_cache_is_encrypted_at_rest(tmp_path):
    cache = LicenseCache("device-one", path=tmp_path / "license.dat", secret="s3cret")
    cache.save(RECORD)

    raw = cache.path.read_bytes()
    for leak in (b"basic", b"lic-1", b"secret-token"):
        assert leak not in raw
    assert cache.load() == RECORD


def test_fresh_nonce_per_write(tmp_path):
    cache = LicenseCache("device-one", path=tmp_path / "license.dat", secret="s3cret")
    cache.save(RECORD)
    first = cache.path.read_bytes()
    cache.save(RECORD)
    second = cache.path.read_bytes()
    assert first != second
    assert first.split(b".")[0] != second.split(b".")[0]


def test_key_is_bound_to_device(tmp_path):
    path = tmp_path / "license.dat"
    LicenseCache("device-one", path=path, secret="s3cret").save(RECORD)

    other = LicenseCache("device-two", path=path, secret="s3cret")
    with pytest.raises(CorruptCacheError):
        other.read()
    assert other.load() is None


def test_tampered_file_is_corrupt(tmp_path):
    cache = LicenseCache("device-one", path=tmp_path / "license.dat", secret="s3cret")
    cache.save(RECORD)
    nonce, body = cache.path.read_bytes().split(b".", 1)
    ciphertext = bytearray(base64.b64decode(body))
    ciphertext[0] ^= 0x01
    cache.path.write_bytes(nonce + b"." + base64.b64encode(bytes(ciphertext)))

    with pytest.raises(CorruptCacheError):
        cache.read()
    assert cache.load() is None


def test_missing_file_is_not_an_error(tmp_path):
    cache = LicenseCache("device-one", path=tmp_path / "nested" / "license.dat", secret="s3cret")
    assert cache.read() is None
    cache.clear()


def test_save_creates_directory_and_leaves_no_temp_files(tmp_path):
    path = tmp_path / "nested" / "license.dat"
    cache = LicenseCache("device-one", path=path, secret="s3cret")
    cache.save(RECORD)
    cache.save(RECORD)
    assert sorted(p.name for p in path.parent.iterdir()) == ["license.dat"]


def test_clear_removes_file(tmp_path):
    cache = LicenseCache("device-one", path=tmp_path / "license.dat", secret="s3cret")
    cache.save(RECORD)
    cache.clear()
    assert not cache.path.exists()
    assert cache.load() is None


def test_record_without_expiry_never_expires():
    record = LicenseRecord(**{**RECORD.__dict__, "expires_at": None})
    assert record.is_expired(datetime(2100, 1, 1, tzinfo=timezone.utc)) is False
    assert LicenseRecord.from_dict(record.to_dict()) == record


# -------------------------
# fingerprint
# -------------------------
def test_device_id_is_stable_digest():
    first = device_id()
    assert first == device_id()
    assert len(first) == DEVICE_ID_LENGTH
    int(first, 16)


def test_device_id_fallback_is_hashed(monkeypatch):
    monkeypatch.setattr(fingerprint, "machine_id", lambda: None)
    value = device_id()
    assert len(value) == DEVICE_ID_LENGTH
    assert value == device_id()
    assert fallback_source() not in value
