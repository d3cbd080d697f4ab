import hashlib
import hmac

from passlib.context import CryptContext

# bcrypt for everything we write
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Accounts imported from the previous portal carry "<hex digest>.<salt>"
# scrypt hashes (N=16384, r=8, p=1, 64-byte key).
_LEGACY_SCRYPT_PARAMS = {"n": 16384, "r": 8, "p": 1, "dklen": 64}


def is_legacy_hash(hashed_password: str) -> bool:
    if not hashed_password or hashed_password.startswith("$"):
        return False
    digest, sep, salt = hashed_password.partition(".")
    return bool(sep and digest and salt)


def _verify_legacy_scrypt(plain_password: str, hashed_password: str) -> bool:
    digest_hex, _, salt = hashed_password.partition(".")
    try:
        expected = bytes.fromhex(digest_hex)
    except ValueError:
        return False
    derived = hashlib.scrypt(
        plain_password.encode("utf-8"),
        salt=salt.encode("utf-8"),
        maxmem=64 * 1024 * 1024,
        **_LEGACY_SCRYPT_PARAMS,
    )
    return hmac.compare_digest(derived, expected)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verifies a plain password against a stored hash.
    Args:
        plain_password: The password attempt.
        hashed_password: The stored bcrypt hash, or a legacy scrypt "digest.salt" value.
    Returns:
        True if the password matches the hash, False otherwise.
    """
    if not plain_password or not hashed_password:
        return False
    if is_legacy_hash(hashed_password):
        return _verify_legacy_scrypt(plain_password, hashed_password)
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def needs_rehash(hashed_password: str) -> bool:
    """True for legacy scrypt values and for bcrypt hashes passlib considers outdated."""
    if is_legacy_hash(hashed_password):
        return True
    return pwd_context.needs_update(hashed_password)
