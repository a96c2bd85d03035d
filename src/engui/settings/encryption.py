"""Encryption of sensitive settings at rest.

Enabled only when a Fernet key is configured (ENGUI_SECRET_KEY). Without
a key values pass through unchanged and are stored with is_encrypted=False.
"""

from __future__ import annotations

from cryptography.fernet import Fernet, InvalidToken


class SettingsDecryptionError(ValueError):
    """Stored ciphertext could not be decrypted with the configured key."""


class SecretCipher:
    def __init__(self, key: str | bytes | None = None):
        if isinstance(key, str):
            key = key.encode()
        self._fernet = Fernet(key) if key else None

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def encrypt(self, value: str) -> str:
        if self._fernet is None:
            return value
        return self._fernet.encrypt(value.encode()).decode()

    def decrypt(self, token: str) -> str:
        if self._fernet is None:
            raise SettingsDecryptionError("Encrypted setting found but no ENGUI_SECRET_KEY is set")
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except InvalidToken as e:
            raise SettingsDecryptionError("Stored setting could not be decrypted") from e


def mask_secret(value: str, visible: int = 4) -> str:
    """Keep the first characters and star out the rest."""
    if not value:
        return value
    if len(value) <= visible:
        return "*" * len(value)
    return value[:visible] + "*" * (len(value) - visible)


def is_masked(value: str, visible: int = 4) -> bool:
    """True for values produced by mask_secret (they must not be saved back)."""
    if value and set(value) == {"*"}:
        return True
    return len(value) > visible and set(value[visible:]) == {"*"}
