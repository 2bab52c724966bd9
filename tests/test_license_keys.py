import re

import pytest

from app.core import license_keys
from app.core.license_keys import (
    CHARSET,
    collision_probability,
    format_key,
    generate_batch,
    generate_license_key,
    hash_key,
    normalize_key,
    validate_format,
    validate_license_key,
)

KEY_RE = re.compile(r"^WAB(-[23456789ABCDEFGHJKMNPQRSTUVWXYZ]{5}){4}$")


def test_generated_key_shape():
    key = generate_license_key()
    assert KEY_RE.match(key.key)
    assert key.normalized == key.key.replace("-", "")
    assert key.hash == hash_key(key.key)
    assert len(key.hash) == 64


def test_charset_has_no_ambiguous_symbols():
    for ch in "01OIL":
        assert ch not in CHARSET


def test_hash_ignores_case_and_hyphens():
    key = generate_license_key().key
    variants = [
        key,
        key.lower(),
        key.replace("-", ""),
        " " + key.lower().replace("-", " ") + " ",
    ]
    assert {hash_key(v) for v in variants} == {hash_key(key)}
    assert hash_key(key) == hash_key(normalize_key(key))


def test_format_key_reinserts_hyphens():
    key = generate_license_key()
    assert format_key(key.normalized) == key.key
    assert format_key(key.key.lower()) == key.key


@pytest.mark.parametrize(
    "value, error",
    [
        ("WAB-ABCDE", "invalid_length"),
        ("XYZ-22222-33333-44444-55555", "invalid_prefix"),
        ("WAB-0AAAA-22222-33333-44444", "invalid_characters"),
        ("WAB-IAAAA-22222-33333-44444", "invalid_characters"),
        ("", "invalid_length"),
    ],
)
def test_validate_rejects_malformed(value, error):
    result = validate_license_key(value)
    assert result.valid is False
    assert result.error == error
    assert result.hash is None
    assert validate_format(value) is False


def test_validate_accepts_lowercase_variant():
    key = generate_license_key()
    result = validate_license_key(key.key.lower())
    assert result.valid
    assert result.normalized == key.normalized
    assert result.hash == key.hash


def test_generate_batch_skips_existing_hashes(monkeypatch):
    taken = generate_license_key()
    fresh = generate_license_key()
    sequence = iter([taken, taken, fresh])
    monkeypatch.setattr(license_keys, "generate_license_key", lambda: next(sequence))

    keys = generate_batch(1, existing_hashes=[taken.hash])
    assert keys == [fresh]


def test_generate_batch_gives_up_after_attempt_budget(monkeypatch):
    same = generate_license_key()
    monkeypatch.setattr(license_keys, "generate_license_key", lambda: same)
    with pytest.raises(RuntimeError):
        generate_batch(2)


def test_generate_batch_unique():
    keys = generate_batch(50)
    assert len({k.hash for k in keys}) == 50


def test_collision_probability_is_tiny_and_monotonic():
    assert collision_probability(0) == 0
    small = collision_probability(1_000)
    large = collision_probability(1_000_000)
    assert 0 < small < large < 1e-15
