"""
TATAME security helpers: secret encryption at rest, access tokens and
account passwords.
"""

from .auth import Role, TokenPayload, extract_bearer_token, generate_token, verify_token
from .crypto import decrypt, encrypt, get_encryption_key, is_encrypted, mask_api_key
from .passwords import hash_password, password_problems, verify_password

__all__ = [
    "Role",
    "TokenPayload",
    "extract_bearer_token",
    "generate_token",
    "verify_token",
    "decrypt",
    "encrypt",
    "get_encryption_key",
    "is_encrypted",
    "mask_api_key",
    "hash_password",
    "password_problems",
    "verify_password",
]
