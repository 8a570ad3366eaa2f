"""Encryption of upstream OAuth tokens at rest."""

from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from app.config import settings


def get_fernet_key() -> Fernet:
    """Returns the Fernet instance built from settings."""
    return Fernet(settings.encryption_key.encode('utf-8'))


def encrypt_token(value: Optional[str]) -> Optional[str]:
    """Encrypts a token; None and empty strings pass through."""
    if not value:
        return value
    return get_fernet_key().encrypt(value.encode('utf-8')).decode('utf-8')


def decrypt_token(encrypted: Optional[str]) -> Optional[str]:
    """Decrypts a stored token. Raises ValueError if the key does not match."""
    if not encrypted:
        return encrypted
    try:
        return get_fernet_key().decrypt(encrypted.encode('utf-8')).decode('utf-8')
    except InvalidToken as e:
        raise ValueError("Stored token cannot be decrypted with the configured ENCRYPTION_KEY") from e
