"""
tests/test_passwords.py -- Unit tests for bcrypt hashing.
"""

from __future__ import annotations

import bcrypt
import pytest

from auth.passwords import BCRYPT_ROUNDS, DUMMY_HASH, hash_password, verify_password


def test_hash_verifies_and_rejects() -> None:
    hashed = hash_password("s3cret!")
    assert verify_password("s3cret!", hashed)
    assert not verify_password("s3cret?", hashed)
    assert not verify_password("", hashed)


def test_hash_is_salted() -> None:
    first, second = hash_password("same-password"), hash_password("same-password")
    assert first != second
    assert verify_password("same-password", first)
    assert verify_password("same-password", second)


def test_hash_never_contains_plaintext() -> None:
    assert "hunter22" not in hash_password("hunter22")


def test_cost_factor_is_embedded() -> None:
    # bcrypt records look like $2b$10$<salt+hash>
    assert hash_password("pw").split("$")[2] == f"{BCRYPT_ROUNDS:02d}"


def test_hash_is_standard_bcrypt() -> None:
    hashed = hash_password("interop")
    assert bcrypt.checkpw(b"interop", hashed.encode())


def test_dummy_hash_is_a_real_hash() -> None:
    assert not verify_password("anything", DUMMY_HASH)


def test_corrupt_hash_raises() -> None:
    with pytest.raises(ValueError):
        verify_password("pw", "not-a-bcrypt-hash")
