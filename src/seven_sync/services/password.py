"""Salted scrypt hashes of the backup password, stored in the configuration file."""

import base64
import hashlib
import hmac
import secrets

SALT_BYTES = 16
HASH_BYTES = 64
SCRYPT_COST = 1024


def create_salted_hash(password: str) -> str:
    """Hash a password with a random salt, formatted as 'salt:base64-hash'."""
    return _create_hash(secrets.token_hex(SALT_BYTES), password)


def validate_password(password: str, salted_hash: str) -> bool:
    salt, separator, _ = salted_hash.partition(":")
    if not separator:
        return False
    return hmac.compare_digest(salted_hash, _create_hash(salt, password))


def _create_hash(salt: str, password: str) -> str:
    digest = hashlib.scrypt(
        password.encode("utf-8"), salt=salt.encode("utf-8"), n=SCRYPT_COST, r=8, p=1, dklen=HASH_BYTES
    )
    return f"{salt}:{base64.b64encode(digest).decode('ascii')}"
