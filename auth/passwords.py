"""
auth/passwords.py -- bcrypt password hashing and verification.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error. Direct bcrypt usage is simpler and has no
compatibility shim.

Cost factor: BCRYPT_ROUNDS is fixed at 10 (2^10 iterations), which keeps a
single verification in the tens of milliseconds. It is a constant, not a
setting -- lowering it for throughput trades away brute-force resistance.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import bcrypt

BCRYPT_ROUNDS = 10


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    The salt and cost are embedded in the returned string, so hashing the
    same password twice yields two different records that both verify.

    Passwords longer than 72 bytes are truncated by bcrypt. The API layer caps
    password length at 100 characters (Pydantic field).
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A wrong password returns False. A structurally corrupt hash record raises
    ValueError from bcrypt -- that is a data problem, not a failed login, and
    must surface as one.
    """
    return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Login verifies against this when the username
# does not exist, so both failure paths pay the same bcrypt cost.
DUMMY_HASH: str = hash_password("icafe_timing_dummy")
