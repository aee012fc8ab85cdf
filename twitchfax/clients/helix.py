"""
Authenticated client for the Twitch Helix REST API.

Every request carries the stored bearer token. A 401 answer triggers exactly
one refresh-and-retry; anything after that is handed back to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from twitchfax.clients.twitch_auth import OAuthTokenNotFoundError
from twitchfax.models.token import Token
from twitchfax.services.settings import SettingsManager
from twitchfax.services.twitch_tokens import TwitchTokenService

logger = logging.getLogger(__name__)


class HelixAPIError(Exception):
    """Raised when Helix answers with an unexpected status or body."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TwitchAPIClient:
    """Send Helix requests with token refresh handling."""

    BASE_URL = "https://api.twitch.tv/helix"

    def __init__(
        self,
        token_service: TwitchTokenService,
        settings: SettingsManager,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._tokens = token_service
        self._settings = settings
        self._timeout = timeout
        self._transport = transport

    def _url(self, url: str) -> str:
        if url.startswith("http://") or url.startswith("https://"):
            return url
        return f"{self.BASE_URL}/{url.lstrip('/')}"

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        token: Token,
        json: Any,
        params: Optional[Dict[str, Any]],
    ) -> httpx.Response:
        headers = {
            "Client-Id": self._settings.get("CLIENT_ID"),
            "Authorization": f"Bearer {token.access_token}",
        }
        return await client.request(method, url, headers=headers, json=json, params=params)

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Perform an authenticated request, refreshing the token at most once on 401."""
        token, valid = self._tokens.get_latest_token()
        if not valid:
            if not token.refresh_token:
                raise OAuthTokenNotFoundError("No valid Twitch token; authenticate via /auth.")
            await self._tokens.refresh_token(token)

        target = self._url(url)
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await self._send(client, method, target, token, json, params)
            if response.status_code == httpx.codes.UNAUTHORIZED:
                logger.info("Helix returned 401 for %s %s; refreshing token once", method, target)
                await self._tokens.refresh_token(token)
                response = await self._send(client, method, target, token, json, params)
        return response

    async def _get_data(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.request("GET", url, params=params)
        if response.status_code != httpx.codes.OK:
            raise HelixAPIError(
                f"GET {url} failed: {response.text}", status_code=response.status_code
            )
        return response.json()

    async def get_user(self) -> Dict[str, Any]:
        """Return the user the current token belongs to."""
        body = await self._get_data("users", {})
        users = body.get("data") or []
        if not users:
            raise HelixAPIError("Token is not associated with a user.")
        return users[0]

    async def get_stream_info(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        broadcaster = user_id or self._settings.get("TWITCH_USER_ID")
        body = await self._get_data("streams", {"user_id": broadcaster})
        streams = body.get("data") or []
        if not streams:
            return {"is_live": False, "viewer_count": 0, "started_at": None}
        stream = streams[0]
        return {
            "is_live": stream.get("type") == "live",
            "viewer_count": int(stream.get("viewer_count", 0)),
            "started_at": stream.get("started_at"),
        }

    async def get_follower_count(self, user_id: Optional[str] = None) -> int:
        broadcaster = user_id or self._settings.get("TWITCH_USER_ID")
        body = await self._get_data("channels/followers", {"broadcaster_id": broadcaster})
        return int(body.get("total", 0))

    async def get_bits_leaderboard(self, period: str = "week", count: int = 5) -> list[Dict[str, Any]]:
        body = await self._get_data("bits/leaderboard", {"count": count, "period": period})
        return [
            {
                "rank": int(entry.get("rank", 0)),
                "user_id": entry.get("user_id", ""),
                "user_name": entry.get("user_name", ""),
                "score": int(entry.get("score", 0)),
            }
            for entry in body.get("data") or []
        ]

    async def get_user_avatar(self, user_id: str) -> str:
        """Best-effort profile image lookup; returns an empty string on any failure."""
        try:
            body = await self._get_data("users", {"id": user_id})
        except (httpx.HTTPError, HelixAPIError, OAuthTokenNotFoundError) as exc:
            logger.debug("Avatar lookup for %s failed: %s", user_id, exc)
            return ""
        users = body.get("data") or []
        return users[0].get("profile_image_url", "") if users else ""

    async def create_eventsub_subscription(
        self,
        *,
        subscription_type: str,
        version: str,
        condition: Dict[str, str],
        session_id: str,
    ) -> Dict[str, Any]:
        response = await self.request(
            "POST",
            "eventsub/subscriptions",
            json={
                "type": subscription_type,
                "version": version,
                "condition": condition,
                "transport": {"method": "websocket", "session_id": session_id},
            },
        )
        if response.status_code not in (httpx.codes.OK, httpx.codes.ACCEPTED):
            raise HelixAPIError(
                f"Subscribing to {subscription_type} failed: {response.text}",
                status_code=response.status_code,
            )
        return response.json()


__all__ = ["HelixAPIError", "TwitchAPIClient"]
