"""
Twitch EventSub over WebSocket.

One connection is opened per session. When Twitch sends ``session_welcome``
the session subscribes to every event type the service handles, scoped to the
configured broadcaster. Notifications are handed to the dispatcher. Lost
connections are not re-established.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx
import websockets

from twitchfax.clients.helix import HelixAPIError, TwitchAPIClient
from twitchfax.clients.twitch_auth import OAuthTokenExchangeError, OAuthTokenNotFoundError
from twitchfax.services.event_handlers import EventDispatcher
from twitchfax.services.settings import SettingsManager

logger = logging.getLogger(__name__)

EVENTSUB_URL = "wss://eventsub.wss.twitch.tv/ws"


@dataclass(frozen=True)
class SubscriptionSpec:
    type: str
    version: str
    condition_keys: tuple[str, ...]

    def condition(self, user_id: str) -> Dict[str, str]:
        return {key: user_id for key in self.condition_keys}


SUBSCRIPTIONS: tuple[SubscriptionSpec, ...] = (
    SubscriptionSpec("channel.follow", "2", ("broadcaster_user_id", "moderator_user_id")),
    SubscriptionSpec("channel.cheer", "1", ("broadcaster_user_id",)),
    SubscriptionSpec("channel.raid", "1", ("to_broadcaster_user_id",)),
    SubscriptionSpec("channel.subscribe", "1", ("broadcaster_user_id",)),
    SubscriptionSpec("channel.subscription.gift", "1", ("broadcaster_user_id",)),
    SubscriptionSpec("channel.subscription.message", "1", ("broadcaster_user_id",)),
    SubscriptionSpec("channel.chat.message", "1", ("broadcaster_user_id", "user_id")),
    SubscriptionSpec("channel.shoutout.receive", "1", ("broadcaster_user_id", "moderator_user_id")),
    SubscriptionSpec("stream.online", "1", ("broadcaster_user_id",)),
    SubscriptionSpec("stream.offline", "1", ("broadcaster_user_id",)),
    SubscriptionSpec(
        "channel.channel_points_custom_reward_redemption.add", "1", ("broadcaster_user_id",)
    ),
)


class EventSubSession:
    """A single EventSub WebSocket session."""

    def __init__(
        self,
        api_client: TwitchAPIClient,
        settings: SettingsManager,
        dispatcher: EventDispatcher,
        *,
        url: str = EVENTSUB_URL,
        connect: Callable[..., Any] = websockets.connect,
    ) -> None:
        self._api = api_client
        self._settings = settings
        self._dispatcher = dispatcher
        self._url = url
        self._connect = connect
        self._ws: Optional[Any] = None
        self._closing = False
        self.session_id: Optional[str] = None
        self.subscribed: list[str] = []

    async def run(self) -> None:
        """Connect and process messages until the connection ends."""
        url: Optional[str] = self._url
        subscribe = True
        while url is not None and not self._closing:
            logger.info("Opening EventSub connection to %s", url)
            async with self._connect(url, open_timeout=10, close_timeout=2) as ws:
                self._ws = ws
                try:
                    url = await self._receive(ws, subscribe=subscribe)
                finally:
                    self._ws = None
            # Subscriptions carry over to the reconnect URL.
            subscribe = False
        logger.info("EventSub session closed")

    async def _receive(self, ws: Any, *, subscribe: bool) -> Optional[str]:
        async for raw in ws:
            try:
                message = json.loads(raw)
            except (TypeError, ValueError):
                logger.warning("Ignoring non-JSON EventSub frame")
                continue
            reconnect_url = await self.handle_message(message, subscribe=subscribe)
            if reconnect_url:
                return reconnect_url
        return None

    async def handle_message(self, message: Dict[str, Any], *, subscribe: bool = True) -> Optional[str]:
        """Process one EventSub message; returns a reconnect URL when asked to move."""
        metadata = message.get("metadata") or {}
        payload = message.get("payload") or {}
        message_type = metadata.get("message_type")

        if message_type == "session_welcome":
            self.session_id = (payload.get("session") or {}).get("id")
            logger.info("EventSub session established: %s", self.session_id)
            if subscribe and self.session_id:
                await self.subscribe_all()
        elif message_type == "session_keepalive":
            pass
        elif message_type == "notification":
            subscription_type = (payload.get("subscription") or {}).get("type") or metadata.get(
                "subscription_type", ""
            )
            await self._dispatcher.dispatch(subscription_type, payload.get("event") or {})
        elif message_type == "session_reconnect":
            reconnect_url = (payload.get("session") or {}).get("reconnect_url")
            logger.info("EventSub asked to reconnect to %s", reconnect_url)
            return reconnect_url
        elif message_type == "revocation":
            subscription = payload.get("subscription") or {}
            logger.warning(
                "EventSub subscription %s revoked: %s",
                subscription.get("type"),
                subscription.get("status"),
            )
        else:
            logger.debug("Ignoring EventSub message type %s", message_type)
        return None

    async def subscribe_all(self) -> list[str]:
        user_id = self._settings.get("TWITCH_USER_ID")
        self.subscribed = []
        for spec in SUBSCRIPTIONS:
            try:
                await self._api.create_eventsub_subscription(
                    subscription_type=spec.type,
                    version=spec.version,
                    condition=spec.condition(user_id),
                    session_id=self.session_id or "",
                )
            except (HelixAPIError, httpx.HTTPError, OAuthTokenExchangeError, OAuthTokenNotFoundError):
                logger.exception("Failed to subscribe to %s", spec.type)
                continue
            self.subscribed.append(spec.type)
        logger.info("Subscribed to %d/%d EventSub types", len(self.subscribed), len(SUBSCRIPTIONS))
        return self.subscribed

    async def shutdown(self) -> None:
        self._closing = True
        ws = self._ws
        if ws is not None:
            await ws.close()


__all__ = ["EVENTSUB_URL", "EventSubSession", "SUBSCRIPTIONS", "SubscriptionSpec"]
