"""Optional at-rest encryption for the Twitch token columns."""

from __future__ import annotations

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from twitchfax.models.token import Token

ENCRYPTED_PREFIX = "enc:"


class TokenCipherService:
    """Encrypt token strings with a Fernet key derived from a passphrase.

    Values are tagged with ``enc:`` so rows written before encryption was
    enabled keep working and are returned untouched by :meth:`decrypt`.
    """

    def __init__(self, *, secret: Optional[str]) -> None:
        self._fernet: Optional[Fernet] = None
        if secret:
            digest = hashlib.sha256(secret.encode("utf-8")).digest()
            self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def encrypt(self, plaintext: str) -> str:
        if self._fernet is None or not plaintext:
            return plaintext
        ciphertext = self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")
        return f"{ENCRYPTED_PREFIX}{ciphertext}"

    def decrypt(self, value: str) -> str:
        if not value.startswith(ENCRYPTED_PREFIX):
            return value
        if self._fernet is None:
            raise ValueError("Stored token is encrypted but no encryption secret is configured.")
        try:
            plaintext = self._fernet.decrypt(value[len(ENCRYPTED_PREFIX):].encode("utf-8"))
        except InvalidToken as exc:
            raise ValueError("Failed to decrypt token; invalid ciphertext provided.") from exc
        return plaintext.decode("utf-8")

    def seal(self, token: Token) -> Token:
        """Return a copy of ``token`` suitable for storage."""
        return Token(
            access_token=self.encrypt(token.access_token),
            refresh_token=self.encrypt(token.refresh_token),
            scope=token.scope,
            expires_at=token.expires_at,
        )

    def unseal(self, token: Token) -> Token:
        return Token(
            access_token=self.decrypt(token.access_token),
            refresh_token=self.decrypt(token.refresh_token),
            scope=token.scope,
            expires_at=token.expires_at,
        )


__all__ = ["ENCRYPTED_PREFIX", "TokenCipherService"]
