"""
Pydantic models for the EventSub notification payloads the service consumes.

Only the fields used by the handlers are declared; everything else in the
Twitch payload is ignored.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class BroadcasterFields(BaseModel):
    broadcaster_user_id: str = ""
    broadcaster_user_login: str = ""
    broadcaster_user_name: str = ""


class MessageFragment(BaseModel):
    """A piece of a chat message: plain text, emote, cheermote or mention."""

    type: str = "text"
    text: str = ""
    emote: Optional[Dict[str, Any]] = None
    cheermote: Optional[Dict[str, Any]] = None
    mention: Optional[Dict[str, Any]] = None


class ChatMessageBody(BaseModel):
    text: str = ""
    fragments: List[MessageFragment] = Field(default_factory=list)


class ChannelFollowEvent(BroadcasterFields):
    user_id: str
    user_login: str = ""
    user_name: str
    followed_at: Optional[datetime] = None


class ChannelCheerEvent(BroadcasterFields):
    is_anonymous: bool = False
    user_id: Optional[str] = None
    user_login: Optional[str] = None
    user_name: Optional[str] = None
    message: str = ""
    bits: int


class ChannelRaidEvent(BaseModel):
    from_broadcaster_user_id: str
    from_broadcaster_user_login: str = ""
    from_broadcaster_user_name: str
    to_broadcaster_user_id: str = ""
    to_broadcaster_user_login: str = ""
    to_broadcaster_user_name: str = ""
    viewers: int = 0


class ChannelSubscribeEvent(BroadcasterFields):
    user_id: str
    user_login: str = ""
    user_name: str
    tier: str = "1000"
    is_gift: bool = False


class ChannelSubscriptionGiftEvent(BroadcasterFields):
    user_id: Optional[str] = None
    user_login: Optional[str] = None
    user_name: Optional[str] = None
    total: int = 1
    tier: str = "1000"
    cumulative_total: Optional[int] = None
    is_anonymous: bool = False


class ResubMessage(BaseModel):
    text: str = ""


class ChannelSubscriptionMessageEvent(BroadcasterFields):
    user_id: str
    user_login: str = ""
    user_name: str
    tier: str = "1000"
    message: ResubMessage = Field(default_factory=ResubMessage)
    cumulative_months: int = 0
    streak_months: Optional[int] = None
    duration_months: int = 1


class ChannelChatMessageEvent(BroadcasterFields):
    chatter_user_id: str
    chatter_user_login: str = ""
    chatter_user_name: str
    message_id: str = ""
    message: ChatMessageBody = Field(default_factory=ChatMessageBody)
    message_type: str = "text"
    channel_points_custom_reward_id: Optional[str] = None


class ChannelShoutoutReceiveEvent(BroadcasterFields):
    from_broadcaster_user_id: str
    from_broadcaster_user_login: str = ""
    from_broadcaster_user_name: str
    viewer_count: int = 0
    started_at: Optional[datetime] = None


class StreamOnlineEvent(BroadcasterFields):
    id: str = ""
    type: str = "live"
    started_at: Optional[datetime] = None


class StreamOfflineEvent(BroadcasterFields):
    pass


class RedemptionReward(BaseModel):
    id: str
    title: str = ""
    cost: int = 0
    prompt: str = ""


class ChannelPointsRedemptionEvent(BroadcasterFields):
    id: str = ""
    user_id: str
    user_login: str = ""
    user_name: str
    user_input: str = ""
    status: str = ""
    reward: RedemptionReward
    redeemed_at: Optional[datetime] = None


__all__ = [
    "ChannelChatMessageEvent",
    "ChannelCheerEvent",
    "ChannelFollowEvent",
    "ChannelPointsRedemptionEvent",
    "ChannelRaidEvent",
    "ChannelShoutoutReceiveEvent",
    "ChannelSubscribeEvent",
    "ChannelSubscriptionGiftEvent",
    "ChannelSubscriptionMessageEvent",
    "ChatMessageBody",
    "MessageFragment",
    "RedemptionReward",
    "ResubMessage",
    "StreamOfflineEvent",
    "StreamOnlineEvent",
]
