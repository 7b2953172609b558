"""Realtime delivery: committed-insert change feed and the subscriber dispatcher."""
from frontline.realtime.changefeed import (
    RESOURCES,
    ChangeEvent,
    ChangeFeed,
    ChannelClosed,
    ChannelInterrupted,
    FeedChannel,
)
from frontline.realtime.dispatcher import RealtimeDispatcher, Subscription

__all__ = [
    "RESOURCES",
    "ChangeEvent",
    "ChangeFeed",
    "ChannelClosed",
    "ChannelInterrupted",
    "FeedChannel",
    "RealtimeDispatcher",
    "Subscription",
]
