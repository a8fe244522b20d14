"""
Security utilities for authentication and authorization.
"""

from .api_tokens import display_prefix, generate_api_token, hash_api_token
from .password import PasswordHasher, password_hasher
from .tokens import TokenPayload, TokenService

__all__ = [
    "PasswordHasher",
    "password_hasher",
    "TokenService",
    "TokenPayload",
    "hash_api_token",
    "generate_api_token",
    "display_prefix",
]
