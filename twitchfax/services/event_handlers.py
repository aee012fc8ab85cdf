"""
EventSub notification handlers.

Handlers translate typed event payloads into fax text and hand it to the
print pipeline. A failed print is logged and the event is dropped.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from twitchfax.schemas.events import (
    ChannelChatMessageEvent,
    ChannelCheerEvent,
    ChannelFollowEvent,
    ChannelPointsRedemptionEvent,
    ChannelRaidEvent,
    ChannelShoutoutReceiveEvent,
    ChannelSubscribeEvent,
    ChannelSubscriptionGiftEvent,
    ChannelSubscriptionMessageEvent,
    MessageFragment,
    StreamOfflineEvent,
    StreamOnlineEvent,
)
from twitchfax.services.broadcast import EventBroadcaster
from twitchfax.services.print_pipeline import PrintPipeline
from twitchfax.services.settings import SettingsManager
from twitchfax.services.status import StreamStatus

logger = logging.getLogger(__name__)

ANONYMOUS_NAME = "Anonymous"
_TIER_NAMES = {"1000": "Tier 1", "2000": "Tier 2", "3000": "Tier 3", "prime": "Prime"}

Handler = Callable[[Any], Awaitable[None]]
Route = Tuple[Type[BaseModel], Handler]


def tier_name(tier: str) -> str:
    return _TIER_NAMES.get(tier, tier)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


class EventHandlers:
    """One coroutine per supported EventSub subscription type."""

    def __init__(
        self,
        pipeline: PrintPipeline,
        settings: SettingsManager,
        stream_status: StreamStatus,
        broadcaster: EventBroadcaster,
    ) -> None:
        self._pipeline = pipeline
        self._settings = settings
        self._stream = stream_status
        self._broadcaster = broadcaster

    async def _print_titled(self, title: str, user: str, extra: str = "", details: str = "") -> None:
        try:
            await self._pipeline.print_out_with_title(
                title, user, extra, details, datetime.now(timezone.utc)
            )
        except Exception:
            logger.exception("Failed to print %r for %s", title, user)

    async def handle_channel_points_redemption(self, event: ChannelPointsRedemptionEvent) -> None:
        trigger = self._settings.get("TRIGGER_CUSTOM_REWORD_ID")
        if not trigger or event.reward.id != trigger:
            logger.info(
                "Ignoring redemption of %r by %s", event.reward.title, event.user_name
            )
            return
        fragments = [MessageFragment(type="text", text=event.user_input)]
        try:
            await self._pipeline.print_out(event.user_name, fragments, datetime.now(timezone.utc))
        except Exception:
            logger.exception("Failed to print redemption for %s", event.user_name)

    async def handle_chat_message(self, event: ChannelChatMessageEvent) -> None:
        logger.debug("Chat from %s: %s", event.chatter_user_name, event.message.text)

    async def handle_cheer(self, event: ChannelCheerEvent) -> None:
        user = ANONYMOUS_NAME if event.is_anonymous or not event.user_name else event.user_name
        await self._print_titled("Thanks for the bits!", user, _plural(event.bits, "bit"), event.message)

    async def handle_follow(self, event: ChannelFollowEvent) -> None:
        await self._print_titled("Thanks for the follow!", event.user_name)

    async def handle_raid(self, event: ChannelRaidEvent) -> None:
        await self._print_titled(
            "Thanks for the raid!",
            event.from_broadcaster_user_name,
            _plural(event.viewers, "viewer"),
        )

    async def handle_shoutout_receive(self, event: ChannelShoutoutReceiveEvent) -> None:
        await self._print_titled("Thanks for the shoutout!", event.from_broadcaster_user_name)

    async def handle_subscribe(self, event: ChannelSubscribeEvent) -> None:
        if event.is_gift:
            await self._print_titled("Congrats on the gift sub!", event.user_name, tier_name(event.tier))
        else:
            await self._print_titled("Thanks for subscribing!", event.user_name, tier_name(event.tier))

    async def handle_subscription_gift(self, event: ChannelSubscriptionGiftEvent) -> None:
        user = ANONYMOUS_NAME if event.is_anonymous or not event.user_name else event.user_name
        details = ""
        if event.cumulative_total and not event.is_anonymous:
            details = f"{_plural(event.cumulative_total, 'gift')} in total"
        await self._print_titled(
            "Thanks for the gift subs!",
            user,
            f"{_plural(event.total, 'gift')} ({tier_name(event.tier)})",
            details,
        )

    async def handle_subscription_message(self, event: ChannelSubscriptionMessageEvent) -> None:
        await self._print_titled(
            "Thanks for resubscribing!",
            event.user_name,
            _plural(event.cumulative_months, "month"),
            event.message.text,
        )

    async def handle_stream_online(self, event: StreamOnlineEvent) -> None:
        started_at = event.started_at or datetime.now(timezone.utc)
        self._stream.set_online(started_at)
        logger.info("Stream went online: %s", event.broadcaster_user_name)
        self._broadcaster.publish(
            {
                "type": "stream_online",
                "data": {
                    "broadcaster_id": event.broadcaster_user_id,
                    "broadcaster_name": event.broadcaster_user_name,
                    "started_at": started_at.isoformat(),
                    "is_live": True,
                },
            }
        )

    async def handle_stream_offline(self, event: StreamOfflineEvent) -> None:
        self._stream.set_offline()
        logger.info("Stream went offline: %s", event.broadcaster_user_name)
        self._broadcaster.publish(
            {
                "type": "stream_offline",
                "data": {
                    "broadcaster_id": event.broadcaster_user_id,
                    "broadcaster_name": event.broadcaster_user_name,
                    "is_live": False,
                },
            }
        )

    def routes(self) -> Dict[str, Route]:
        return {
            "channel.channel_points_custom_reward_redemption.add": (
                ChannelPointsRedemptionEvent,
                self.handle_channel_points_redemption,
            ),
            "channel.chat.message": (ChannelChatMessageEvent, self.handle_chat_message),
            "channel.cheer": (ChannelCheerEvent, self.handle_cheer),
            "channel.follow": (ChannelFollowEvent, self.handle_follow),
            "channel.raid": (ChannelRaidEvent, self.handle_raid),
            "channel.shoutout.receive": (ChannelShoutoutReceiveEvent, self.handle_shoutout_receive),
            "channel.subscribe": (ChannelSubscribeEvent, self.handle_subscribe),
            "channel.subscription.gift": (ChannelSubscriptionGiftEvent, self.handle_subscription_gift),
            "channel.subscription.message": (
                ChannelSubscriptionMessageEvent,
                self.handle_subscription_message,
            ),
            "stream.online": (StreamOnlineEvent, self.handle_stream_online),
            "stream.offline": (StreamOfflineEvent, self.handle_stream_offline),
        }


class EventDispatcher:
    """Decode a notification by its subscription type and run its handler."""

    def __init__(self, routes: Mapping[str, Route]) -> None:
        self._routes = dict(routes)

    @property
    def subscription_types(self) -> list[str]:
        return sorted(self._routes)

    async def dispatch(self, subscription_type: str, payload: Dict[str, Any]) -> bool:
        route: Optional[Route] = self._routes.get(subscription_type)
        if route is None:
            logger.warning("Dropping unhandled EventSub notification type %s", subscription_type)
            return False
        model, handler = route
        try:
            event = model.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Dropping malformed %s notification: %s", subscription_type, exc)
            return False
        try:
            await handler(event)
        except Exception:
            logger.exception("Handler for %s failed", subscription_type)
            return False
        return True


__all__ = ["ANONYMOUS_NAME", "EventDispatcher", "EventHandlers", "tier_name"]
