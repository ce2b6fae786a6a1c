"""
auth/hashing.py -- Password hashing and session-token digests.

Two primitives with different jobs:

  Passwords: bcrypt directly (no passlib wrapper). Passwords are low-entropy,
       so bcrypt's tunable cost factor is what makes offline brute force
       expensive. HashService.dummy_digest is computed once at construction so
       an unknown-email sign-in can run the same bcrypt work as a wrong-password
       sign-in, and response time does not reveal whether an account exists.

  Session tokens: HMAC-SHA256(SECRET_KEY, raw_token). Tokens come from
       secrets.token_urlsafe(32) (256 bits), so bcrypt's slowness buys nothing
       and would make every authenticated request pay ~100ms. A stolen
       database does not yield usable tokens without SECRET_KEY as well.

bcrypt only reads the first 72 bytes of its input (bcrypt>=5 raises instead
of truncating). Both hash() and verify() cut the encoded secret at 72 bytes,
so the two always agree.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets

import bcrypt

logger = logging.getLogger("sessionguard.auth")

_BCRYPT_MAX_BYTES = 72


def _encode(secret: str) -> bytes:
    return secret.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class HashService:
    """One-way password hashing with bcrypt.

    Usage:
        hasher = HashService(cost_factor=12)
        digest = hasher.hash("correct horse")
        hasher.verify("correct horse", digest)   # True
    """

    def __init__(self, cost_factor: int = 12) -> None:
        self.cost_factor = cost_factor
        # Random input: nobody knows a password that verifies against it.
        self.dummy_digest: str = self.hash(secrets.token_urlsafe(24))

    def hash(self, secret: str) -> str:
        """Return a salted bcrypt digest of secret."""
        return bcrypt.hashpw(_encode(secret), bcrypt.gensalt(rounds=self.cost_factor)).decode("utf-8")

    def verify(self, secret: str, digest: str) -> bool:
        """Return True if secret matches digest.

        bcrypt.checkpw compares in constant time. A malformed digest (e.g. a
        truncated value in the store) raises ValueError inside bcrypt; that is
        reported as a non-match rather than an error.
        """
        try:
            return bcrypt.checkpw(_encode(secret), digest.encode("utf-8"))
        except ValueError:
            logger.warning("Malformed password digest encountered during verification")
            return False

    def verify_dummy(self, secret: str) -> bool:
        """Burn one bcrypt verification. Always False."""
        self.verify(secret, self.dummy_digest)
        return False


class TokenDigester:
    """Keyed fast hash for high-entropy session tokens."""

    def __init__(self, secret_key: str) -> None:
        self._key = secret_key.encode("utf-8")

    def digest(self, raw_token: str) -> str:
        return hmac.new(self._key, raw_token.encode("utf-8"), hashlib.sha256).hexdigest()

    def matches(self, raw_token: str, digest: str) -> bool:
        return hmac.compare_digest(self.digest(raw_token), digest)
