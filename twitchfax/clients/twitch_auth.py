"""
Twitch OAuth utilities.

These helpers manage the authorization-code flow and the refresh lifecycle
against the Twitch identity endpoint.
"""

from __future__ import annotations

import base64
import hmac
import json
import time
from hashlib import sha256
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from fastapi import HTTPException, status

from twitchfax.core.config import OAuthSettings
from twitchfax.models.token import Token
from twitchfax.services.settings import SettingsManager

_REQUIRED_TOKEN_FIELDS = ("access_token", "refresh_token", "scope", "expires_in")


class OAuthStateEncoder:
    """Sign OAuth state values so the callback can reject forged requests."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
        signature = hmac.new(self._secret_key, serialized, sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (ValueError, TypeError) as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Malformed OAuth state.",
            ) from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid OAuth state signature.",
            )
        return json.loads(serialized)


class OAuthTokenExchangeError(Exception):
    """Raised when the identity endpoint rejects a grant; re-authentication is needed."""


class TokenError(OAuthTokenExchangeError):
    """Raised when the identity endpoint answers with an incomplete token payload."""


class OAuthTokenNotFoundError(Exception):
    """Raised when no usable Twitch token is stored."""


def token_from_payload(payload: Dict[str, Any], *, now: Optional[float] = None) -> Token:
    """Build a :class:`Token` from an identity endpoint response body."""
    missing = [field for field in _REQUIRED_TOKEN_FIELDS if not payload.get(field)]
    if missing:
        raise TokenError(f"Token payload is missing fields: {', '.join(missing)}")

    scope = payload["scope"]
    if isinstance(scope, (list, tuple)):
        scope = " ".join(scope)
    issued_at = time.time() if now is None else now
    return Token(
        access_token=payload["access_token"],
        refresh_token=payload["refresh_token"],
        scope=str(scope),
        expires_at=int(issued_at) + int(payload["expires_in"]),
    )


class TwitchOAuthClient:
    """Build Twitch authorization URLs and run token grants."""

    AUTH_BASE_URL = "https://id.twitch.tv/oauth2/authorize"
    TOKEN_URL = "https://id.twitch.tv/oauth2/token"

    def __init__(
        self,
        settings: SettingsManager,
        oauth_settings: OAuthSettings,
        redirect_uri: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._oauth = oauth_settings
        self._redirect_uri = redirect_uri
        self._transport = transport

    @property
    def redirect_uri(self) -> str:
        return self._redirect_uri

    def build_authorization_url(self, state: Optional[str] = None) -> str:
        """Construct the Twitch consent URL."""
        params = {
            "response_type": "code",
            "client_id": self._settings.get("CLIENT_ID"),
            "redirect_uri": self._redirect_uri,
            "scope": " ".join(self._oauth.scopes),
        }
        if state:
            params["state"] = state
        return f"{self.AUTH_BASE_URL}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str) -> Token:
        """Exchange an authorization code for a new token pair."""
        return await self._grant(
            {
                "client_id": self._settings.get("CLIENT_ID"),
                "client_secret": self._settings.get("CLIENT_SECRET"),
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self._redirect_uri,
            }
        )

    async def refresh_token(self, refresh_token: str) -> Token:
        """Exchange a refresh token for a new token pair."""
        return await self._grant(
            {
                "client_id": self._settings.get("CLIENT_ID"),
                "client_secret": self._settings.get("CLIENT_SECRET"),
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            }
        )

    async def _grant(self, form: Dict[str, str]) -> Token:
        async with httpx.AsyncClient(
            timeout=self._oauth.http_timeout_seconds, transport=self._transport
        ) as client:
            response = await client.post(self.TOKEN_URL, data=form)

        if response.status_code != status.HTTP_200_OK:
            raise OAuthTokenExchangeError(
                f"{form['grant_type']} grant failed ({response.status_code}): {response.text}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise TokenError("Identity endpoint returned a non-JSON body.") from exc
        if not isinstance(payload, dict):
            raise TokenError("Identity endpoint returned an unexpected body.")
        return token_from_payload(payload)


__all__ = [
    "OAuthStateEncoder",
    "OAuthTokenExchangeError",
    "OAuthTokenNotFoundError",
    "TokenError",
    "TwitchOAuthClient",
    "token_from_payload",
]
