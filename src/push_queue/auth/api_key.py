"""
Module: api_key.py
Description: Operator API key generation, hashing and validation.

Operator keys protect the queue status endpoint. Only a PBKDF2-SHA256
hash of the key is configured (STATUS_API_KEY_HASH); the plaintext is
shown once when generated.

Key Components:
- generate_api_key(): New random operator key (sk_ prefix)
- hash_api_key(): Hash plain API keys with PBKDF2-SHA256
- verify_api_key(): Verify plain keys against PBKDF2 hashes
- needs_rehash(): Check if hash needs updating

Dependencies: hashlib, secrets
Author: Push Queue Team
"""

import hashlib
import secrets

from push_queue.utils.logger import get_logger

logger = get_logger(__name__)

PBKDF2_ITERATIONS = 100000  # High iteration count for security
PBKDF2_SALT_LENGTH = 32     # 256-bit salt
PBKDF2_KEY_LENGTH = 32      # 256-bit derived key
PBKDF2_ALGORITHM = 'pbkdf2_sha256'  # Hash format identifier
API_KEY_PREFIX = 'sk_'


def generate_api_key() -> str:
    """
    Generate a secure random operator API key.

    Returns:
        API key in format: sk_{32 url-safe characters}
    """
    return f"{API_KEY_PREFIX}{secrets.token_urlsafe(32)[:32]}"


def _derive(api_key: str, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac(
        'sha256',
        api_key.encode('utf-8'),
        salt,
        iterations,
        dklen=PBKDF2_KEY_LENGTH
    )


def hash_api_key(api_key: str) -> str:
    """
    Hash an API key using PBKDF2-SHA256.

    Args:
        api_key: Plain text API key to hash

    Returns:
        Hashed API key string in format: pbkdf2_sha256$iterations$salt$hash

    Raises:
        ValueError: If api_key is empty, whitespace or not a string

    Example:
        >>> hash_api_key("sk_abc123xyz")
        'pbkdf2_sha256$100000$...'
    """
    if not api_key or not isinstance(api_key, str):
        raise ValueError("api_key must be a non-empty string")

    if not api_key.strip():
        raise ValueError("api_key cannot be only whitespace")

    salt = secrets.token_bytes(PBKDF2_SALT_LENGTH)
    key = _derive(api_key, salt, PBKDF2_ITERATIONS)

    logger.info("Operator API key hashed", key_length=len(api_key))

    return f"{PBKDF2_ALGORITHM}${PBKDF2_ITERATIONS}${salt.hex()}${key.hex()}"


def verify_api_key(plain_key: str, hashed_key: str) -> bool:
    """
    Verify an API key against its PBKDF2 hash.

    Never raises: malformed input or hashes verify as False.

    Args:
        plain_key: Plain text API key from request
        hashed_key: Configured hashed API key

    Returns:
        True if key matches hash, False otherwise
    """
    if not plain_key or not isinstance(plain_key, str):
        logger.warning("Invalid plain API key provided for verification")
        return False

    if not hashed_key or not isinstance(hashed_key, str):
        logger.warning("Invalid hashed API key provided for verification")
        return False

    parts = hashed_key.split('$')
    if len(parts) != 4 or parts[0] != PBKDF2_ALGORITHM:
        logger.warning("Invalid hash format for verification")
        return False

    _, iterations_str, salt_hex, expected_key_hex = parts

    try:
        iterations = int(iterations_str)
        salt = bytes.fromhex(salt_hex)
    except (ValueError, TypeError):
        logger.warning("Invalid hash parameters")
        return False

    if iterations < 1:
        logger.warning("Invalid hash parameters")
        return False

    computed_key_hex = _derive(plain_key, salt, iterations).hex()

    # Use constant-time comparison to prevent timing attacks
    is_valid = secrets.compare_digest(computed_key_hex, expected_key_hex)

    if not is_valid:
        logger.warning("Operator API key verification failed")

    return is_valid


def needs_rehash(hashed_key: str) -> bool:
    """
    Check if a hashed API key was made with outdated parameters.

    Example:
        >>> needs_rehash("pbkdf2_sha256$50000$...")
        True   # Old iteration count
    """
    if not hashed_key or not isinstance(hashed_key, str):
        return False

    parts = hashed_key.split('$')
    if len(parts) != 4 or parts[0] != PBKDF2_ALGORITHM:
        # Unknown format - needs rehashing
        return True

    try:
        return int(parts[1]) < PBKDF2_ITERATIONS
    except ValueError:
        # Invalid iteration count - needs rehashing
        return True
