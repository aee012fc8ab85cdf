"""Public schema exports."""

from .api import (
    DebugEventRequest,
    FontPreviewRequest,
    PlaylistCreateRequest,
    PlaylistTrackRequest,
    PlaylistUpdateRequest,
    PrinterTestRequest,
)
from .events import (
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
    "DebugEventRequest",
    "FontPreviewRequest",
    "MessageFragment",
    "PlaylistCreateRequest",
    "PlaylistTrackRequest",
    "PlaylistUpdateRequest",
    "PrinterTestRequest",
    "StreamOfflineEvent",
    "StreamOnlineEvent",
]
