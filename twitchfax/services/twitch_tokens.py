"""
Helpers for retrieving, persisting and refreshing the Twitch OAuth token.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from twitchfax.clients.sqlite_store import SQLiteStore
from twitchfax.clients.twitch_auth import OAuthTokenNotFoundError, TwitchOAuthClient
from twitchfax.models.token import Token
from twitchfax.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)


class TwitchTokenService:
    """Owns the append-only token history.

    New tokens are always inserted; the most recent row is the current one.
    """

    REFRESH_BEFORE_EXPIRY_SECONDS = 30 * 60
    RETRY_AFTER_FAILURE_SECONDS = 5 * 60
    MAX_SLEEP_SECONDS = 60 * 60

    def __init__(
        self,
        store: SQLiteStore,
        oauth_client: TwitchOAuthClient,
        token_cipher: TokenCipherService,
    ) -> None:
        self._store = store
        self._oauth = oauth_client
        self._cipher = token_cipher
        self._token_available = asyncio.Event()
        self._refresh_lock = asyncio.Lock()

    def get_latest_token(self) -> tuple[Token, bool]:
        """Return the newest stored token and whether it is still valid."""
        stored = self._store.latest_token()
        if stored is None:
            return Token(), False
        try:
            token = self._cipher.unseal(stored)
        except ValueError:
            logger.warning("Stored Twitch token could not be decrypted; re-authentication required")
            return Token(), False
        return token, token.is_valid()

    def save_token(self, token: Token) -> None:
        self._store.insert_token(self._cipher.seal(token))
        if token.access_token:
            self._token_available.set()
        logger.info("Stored new Twitch token (expires_at=%s)", token.expires_at)

    async def refresh_token(self, token: Token) -> Token:
        """Refresh ``token`` in place and persist the result as a new row."""
        if not token.refresh_token:
            raise OAuthTokenNotFoundError("No refresh token available; run the OAuth flow.")
        async with self._refresh_lock:
            try:
                refreshed = await self._oauth.refresh_token(token.refresh_token)
            except Exception:
                self._token_available.clear()
                raise
            token.access_token = refreshed.access_token
            token.refresh_token = refreshed.refresh_token
            token.scope = refreshed.scope
            token.expires_at = refreshed.expires_at
            self.save_token(token)
        logger.info("Refreshed Twitch token")
        return token

    async def exchange_code(self, code: str) -> Token:
        token = await self._oauth.exchange_authorization_code(code)
        self.save_token(token)
        return token

    async def ensure_valid_token(self) -> Optional[Token]:
        """Return a valid token, refreshing an expired one when possible."""
        token, valid = self.get_latest_token()
        if valid:
            self._token_available.set()
            return token
        if not token.refresh_token:
            return None
        return await self.refresh_token(token)

    async def wait_for_token(self) -> Token:
        """Block until a valid token has been stored."""
        while True:
            token, valid = self.get_latest_token()
            if valid:
                return token
            self._token_available.clear()
            await self._token_available.wait()

    def next_refresh_delay(self, now: Optional[float] = None) -> float:
        token, _ = self.get_latest_token()
        if not token.access_token:
            return self.MAX_SLEEP_SECONDS
        current = time.time() if now is None else now
        delay = token.seconds_until_expiry(current) - self.REFRESH_BEFORE_EXPIRY_SECONDS
        return max(0.0, min(delay, self.MAX_SLEEP_SECONDS))

    async def refresh_loop(self) -> None:
        """Refresh the token shortly before it expires, forever."""
        while True:
            delay = self.next_refresh_delay()
            if delay > 0:
                await asyncio.sleep(delay)
                continue
            token, _ = self.get_latest_token()
            if not token.refresh_token:
                await asyncio.sleep(self.MAX_SLEEP_SECONDS)
                continue
            try:
                await self.refresh_token(token)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    "Scheduled token refresh failed; retrying in %s seconds",
                    self.RETRY_AFTER_FAILURE_SECONDS,
                )
                await asyncio.sleep(self.RETRY_AFTER_FAILURE_SECONDS)


__all__ = ["TwitchTokenService"]
