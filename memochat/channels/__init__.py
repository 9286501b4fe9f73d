"""Delivery of turn events to chat subscribers."""

from memochat.channels.broadcast import Broadcaster, BroadcastHub, NullBroadcaster

__all__ = ["Broadcaster", "BroadcastHub", "NullBroadcaster"]
