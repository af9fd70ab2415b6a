"""
Credential material for self-service reservations.

Phones are stored only as a deterministic fingerprint usable for equality
lookup. Passwords are stored as scheme-tagged one-way hashes:

- ``$argon2id$...``: current scheme, used for every new write
- ``scrypt$<salt hex>$<hash hex>``: legacy scheme, verification only

Verification dispatches on the tag so reservations created under either
scheme keep working for the same phone.
"""
import hashlib
import hmac
import logging
import re
import secrets
from typing import Callable, Dict, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

logger = logging.getLogger(__name__)

CURRENT_SCHEME = "argon2id"
LEGACY_SCHEME = "scrypt"

# scrypt cost parameters of the legacy writer
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
SCRYPT_KEY_LEN = 32


def normalize_phone(raw: str) -> str:
    return re.sub(r"\D", "", raw or "")


def phone_fingerprint(raw: str) -> str:
    return hashlib.sha256(normalize_phone(raw).encode("utf-8")).hexdigest()


def hash_scheme(stored: str) -> Optional[str]:
    """Return the scheme tag of a stored hash, or None if it has none."""
    if not stored:
        return None
    if stored.startswith("$"):
        parts = stored.split("$")
        return parts[1] if len(parts) > 2 else None
    if "$" in stored:
        return stored.split("$", 1)[0]
    return None


def _scrypt(password: str, salt: bytes) -> bytes:
    return hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt,
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        dklen=SCRYPT_KEY_LEN,
    )


def scrypt_hash(password: str, salt: Optional[bytes] = None) -> str:
    """Encode a password in the legacy scheme."""
    salt = salt if salt is not None else secrets.token_bytes(16)
    return f"{LEGACY_SCHEME}${salt.hex()}${_scrypt(password, salt).hex()}"


def _verify_scrypt(password: str, stored: str) -> bool:
    try:
        _, salt_hex, hash_hex = stored.split("$")
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(hash_hex)
    except ValueError:
        return False
    return hmac.compare_digest(_scrypt(password, salt), expected)


class PasswordHashing:
    """Hashes with the current scheme and verifies against any known one."""

    def __init__(self, argon2_hasher: Optional[PasswordHasher] = None):
        self._argon2 = argon2_hasher or PasswordHasher()
        self._dummy_hash: Optional[str] = None
        self._verifiers: Dict[str, Callable[[str, str], bool]] = {
            CURRENT_SCHEME: self._verify_argon2,
            "argon2i": self._verify_argon2,
            LEGACY_SCHEME: _verify_scrypt,
        }

    def hash(self, password: str) -> str:
        return self._argon2.hash(password)

    def verify(self, password: str, stored: str) -> bool:
        scheme = hash_scheme(stored)
        verifier = self._verifiers.get(scheme)
        if verifier is None:
            logger.warning("stored password hash has unknown scheme %r", scheme)
            return False
        return verifier(password, stored)

    def verify_nothing(self, password: str) -> None:
        """Spend one verification on a throwaway hash when no candidate exists."""
        if self._dummy_hash is None:
            self._dummy_hash = self.hash(secrets.token_urlsafe(16))
        self.verify(password, self._dummy_hash)

    def _verify_argon2(self, password: str, stored: str) -> bool:
        try:
            return self._argon2.verify(stored, password)
        except (VerificationError, InvalidHashError):
            return False
