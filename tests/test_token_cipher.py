try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from twitchfax.models.token import Token
from twitchfax.services.token_cipher import TokenCipherService


def test_token_cipher_roundtrip() -> None:
    cipher = TokenCipherService(secret="super-secret-key")

    encrypted = cipher.encrypt("sensitive-token")

    assert encrypted.startswith("enc:")
    assert cipher.decrypt(encrypted) == "sensitive-token"


def test_token_cipher_rejects_bad_ciphertext() -> None:
    cipher = TokenCipherService(secret="another-secret")

    with pytest.raises(ValueError):
        cipher.decrypt("enc:not-valid")


def test_plaintext_rows_pass_through() -> None:
    cipher = TokenCipherService(secret="another-secret")

    assert cipher.decrypt("legacy-token") == "legacy-token"


def test_disabled_cipher_cannot_read_encrypted_rows() -> None:
    sealed = TokenCipherService(secret="key").encrypt("value")
    disabled = TokenCipherService(secret=None)

    assert disabled.enabled is False
    assert disabled.encrypt("value") == "value"
    with pytest.raises(ValueError):
        disabled.decrypt(sealed)


def test_seal_keeps_scope_and_expiry() -> None:
    cipher = TokenCipherService(secret="key")
    token = Token("access", "refresh", "bits:read", 123)

    sealed = cipher.seal(token)

    assert sealed.scope == "bits:read"
    assert sealed.expires_at == 123
    assert sealed.access_token != "access"
    assert cipher.unseal(sealed) == token
