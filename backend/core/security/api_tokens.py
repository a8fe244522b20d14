"""
API token secrets.

Tokens are high-entropy generated strings stored as a single salted SHA-256
digest, not a password hash.
"""

import hashlib
import secrets

DEFAULT_TOKEN_SALT = "eips_prod_v1"
DEFAULT_TOKEN_PREFIX = "eips_"

# Characters of the plaintext kept for display ("eips_AbCd...")
DISPLAY_PREFIX_LENGTH = 12


def hash_api_token(token: str, salt: str = DEFAULT_TOKEN_SALT) -> str:
    """Hex SHA-256 of ``token + salt``."""
    return hashlib.sha256(f"{token}{salt}".encode("utf-8")).hexdigest()


def generate_api_token(prefix: str = DEFAULT_TOKEN_PREFIX) -> str:
    """New plaintext token; shown to the user once and never stored."""
    return f"{prefix}{secrets.token_urlsafe(32)}"


def display_prefix(token: str) -> str:
    return token[:DISPLAY_PREFIX_LENGTH]
