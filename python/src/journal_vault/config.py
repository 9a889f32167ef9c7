"""
Vault configuration: master key loading.

The master key is read from the ENCRYPTION_MASTER_KEY setting:
    ENCRYPTION_MASTER_KEY = <base64-encoded 32-byte key>

Values are taken from the process environment, with a `.env` file loaded
on first use if present.

Security Note:
    Never log key material. Only log whether a key was found and its length.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import secrets
from typing import Optional, Union

from dotenv import load_dotenv

from .crypto import AES_256_KEY_SIZE, SecureKey
from .errors import ConfigurationError

logger = logging.getLogger("journal_vault.config")

MASTER_KEY_ENV: str = "ENCRYPTION_MASTER_KEY"
NEW_MASTER_KEY_ENV: str = "NEW_ENCRYPTION_MASTER_KEY"
DATABASE_URL_ENV: str = "DATABASE_URL"

_dotenv_loaded = False


def _load_env() -> None:
    global _dotenv_loaded
    if not _dotenv_loaded:
        load_dotenv()
        _dotenv_loaded = True


def get_setting(name: str) -> Optional[str]:
    """Read a setting from the environment (after loading `.env` once)."""
    _load_env()
    return os.environ.get(name)


def parse_master_key(value: Union[str, bytes, bytearray, SecureKey, None], name: str = MASTER_KEY_ENV) -> SecureKey:
    """
    Validate master key material.

    Args:
        value: Base64 text, raw key bytes, or a SecureKey
        name: Setting name used in error messages

    Returns:
        SecureKey holding exactly 32 bytes

    Raises:
        ConfigurationError: If the value is missing, not base64, or not 32 bytes
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigurationError(f"{name} is not set")

    if isinstance(value, SecureKey):
        key_bytes = value.as_bytes()
    elif isinstance(value, (bytes, bytearray)):
        key_bytes = bytes(value)
    elif not isinstance(value, str):
        raise ConfigurationError(f"{name} must be base64 text, bytes or a SecureKey")
    else:
        try:
            key_bytes = base64.b64decode(value.strip(), validate=True)
        except (binascii.Error, ValueError):
            raise ConfigurationError(f"{name} is not valid base64") from None

    if len(key_bytes) != AES_256_KEY_SIZE:
        raise ConfigurationError(
            f"{name} must decode to exactly {AES_256_KEY_SIZE} bytes, got {len(key_bytes)}"
        )
    return SecureKey(key_bytes)


def resolve_master_key(value: Optional[str] = None) -> SecureKey:
    """
    Resolve the process master key.

    Args:
        value: Explicit base64 value; read from ENCRYPTION_MASTER_KEY when None

    Returns:
        SecureKey master key

    Raises:
        ConfigurationError: If the key is absent or malformed
    """
    if value is None:
        value = get_setting(MASTER_KEY_ENV)
    key = parse_master_key(value)
    logger.debug("Master key resolved from configuration")
    return key


def generate_master_key() -> str:
    """Generate a random 32-byte master key and return it as base64 text.

    Operator utility for provisioning a deployment or a rotation target.
    """
    return base64.b64encode(secrets.token_bytes(AES_256_KEY_SIZE)).decode("ascii")
